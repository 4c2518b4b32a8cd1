"""AI task handlers, one per job kind, run by the job worker."""

import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Tuple

from armour.errors import ExternalServiceError
from armour.prompts.default_prompts import SAFE_CLAUSE_PROMPT, SAFE_CONTRACT_PROMPT, NEGOTIATION_PROMPT
from armour.services.llm_provider import LLMProviderService

logger = logging.getLogger(__name__)

SAFE_CLAUSE = "safe_clause"
SAFE_CONTRACT = "safe_contract"
NEGOTIATION_MESSAGE = "negotiation_message"

CACHEABLE_KINDS = {SAFE_CLAUSE, SAFE_CONTRACT}

RISKY_SEVERITIES = ("high", "medium")
MISSING_SEVERITIES = ("warning",)
NEGOTIABLE_SEVERITIES = RISKY_SEVERITIES + MISSING_SEVERITIES


def partition_issues(issues: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Split issues into risky clauses (high/medium) and missing clauses (warning)."""
    risky = [i for i in issues if i.get("severity") in RISKY_SEVERITIES]
    missing = [i for i in issues if i.get("severity") in MISSING_SEVERITIES]
    return risky, missing


def _clause_line(issue: Dict[str, Any]) -> str:
    clause = issue.get("clause_reference") or issue.get("clause")
    return f"Clause Reference: {clause}" if clause else ""


def _risky_context(issues: List[Dict[str, Any]]) -> str:
    blocks = []
    for n, issue in enumerate(issues, 1):
        label = "HIGH PRIORITY" if issue.get("severity") == "high" else "MEDIUM PRIORITY"
        blocks.append(
            f"{n}. [{label}] {issue.get('title') or 'Issue'}\n\n"
            f"Category: {issue.get('category') or 'General'}\n\n"
            f"Description: {issue.get('description') or 'No description'}\n\n"
            f"Recommendation: {issue.get('recommendation') or 'Please review and revise this clause.'}\n\n"
            f"{_clause_line(issue)}"
        )
    return "\n\n".join(blocks)


def _missing_context(issues: List[Dict[str, Any]]) -> str:
    blocks = []
    for n, issue in enumerate(issues, 1):
        blocks.append(
            f"{n}. {issue.get('title') or 'Missing Clause'}\n\n"
            f"Category: {issue.get('category') or 'General'}\n\n"
            f"Description: {issue.get('description') or 'This important point is not specified in the contract.'}\n\n"
            f"Recommendation: {issue.get('recommendation') or 'Please add this clause to the contract.'}\n\n"
            f"{_clause_line(issue)}"
        )
    return "\n\n".join(blocks)


def build_negotiation_prompt(brand_name: str, issues: List[Dict[str, Any]]) -> str:
    """Two-section negotiation prompt: clauses to improve, then points missing."""
    risky, missing = partition_issues(issues)

    sections = ""
    requirements = []
    if risky:
        sections += (
            "A. CLAUSES TO IMPROVE (These terms are in the contract but need revision):\n"
            f"{_risky_context(risky)}\n\n"
        )
        requirements.append('   - Section A: "Clauses to improve" - List the risky/unfair clauses that need revision')
    if missing:
        sections += (
            "B. IMPORTANT POINTS MISSING (These clauses are not written anywhere yet):\n"
            f"{_missing_context(missing)}\n\n"
        )
        requirements.append('   - Section B: "Important points missing" - List the missing clauses that need to be added')

    return NEGOTIATION_PROMPT.format(
        brand_name=brand_name or "the Brand",
        sections=sections,
        section_requirements="\n".join(requirements),
    )


def _format_issue_list(issues: List[Dict[str, Any]]) -> str:
    if not issues:
        return "- No specific issues were recorded; apply standard creator protections."
    lines = []
    for issue in issues:
        line = f"- [{(issue.get('severity') or 'medium').upper()}] {issue.get('title') or 'Issue'}"
        if issue.get("recommendation"):
            line += f": {issue['recommendation']}"
        lines.append(line)
    return "\n".join(lines)


def _strip_fences(text: str) -> str:
    return re.sub(r"^```(?:html)?\s*|\s*```$", "", text.strip())


async def handle_safe_clause(llm: LLMProviderService, payload: Dict[str, Any]) -> Dict[str, Any]:
    prompt = SAFE_CLAUSE_PROMPT.format(
        original_clause=payload.get("originalClause") or "(clause text not provided)",
        issue_category=payload.get("issueCategory") or "General",
        issue_context=payload.get("issueContext") or "",
    )
    data = await llm.complete_json(prompt)
    safe_clause = str(data.get("safeClause") or "").strip()
    if not safe_clause:
        raise ExternalServiceError("AI did not return a safe clause")
    return {"safeClause": safe_clause, "explanation": str(data.get("explanation") or "").strip()}


async def handle_safe_contract(llm: LLMProviderService, payload: Dict[str, Any]) -> Dict[str, Any]:
    contract_text = payload.get("contractText") or ""
    if not contract_text.strip():
        raise ExternalServiceError("No contract text to rewrite")
    prompt = SAFE_CONTRACT_PROMPT.format(
        issues=_format_issue_list(payload.get("issues") or []),
        contract_text=contract_text,
    )
    html = _strip_fences(await llm.complete(prompt))
    if not html:
        raise ExternalServiceError("Failed to generate contract HTML")
    return {"contractHtml": html}


async def handle_negotiation_message(llm: LLMProviderService, payload: Dict[str, Any]) -> Dict[str, Any]:
    prompt = build_negotiation_prompt(payload.get("brandName"), payload.get("issues") or [])
    message = (await llm.complete(prompt)).strip()
    if not message:
        raise ExternalServiceError("AI returned an empty negotiation message")
    return {"message": message}


TaskHandler = Callable[[LLMProviderService, Dict[str, Any]], Awaitable[Dict[str, Any]]]

TASK_HANDLERS: Dict[str, TaskHandler] = {
    SAFE_CLAUSE: handle_safe_clause,
    SAFE_CONTRACT: handle_safe_contract,
    NEGOTIATION_MESSAGE: handle_negotiation_message,
}
