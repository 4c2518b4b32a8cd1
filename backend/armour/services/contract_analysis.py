"""AI contract analysis: extract text, ask the LLM, validate the answer."""

import asyncio
import logging
from typing import Any, Dict, List

from fastapi import Depends

from armour.config import settings
from armour.errors import ContractValidationError, ExternalServiceError
from armour.prompts.default_prompts import CONTRACT_ANALYSIS_PROMPT
from armour.services.document_extractor import extract_text
from armour.services.llm_provider import LLMProviderService, get_llm_service
from armour.services.normalizer import normalize

logger = logging.getLogger(__name__)

ISSUE_SEVERITIES = {"high", "medium", "warning", "low"}


def _clean_issue(issue: Dict[str, Any]) -> Dict[str, Any]:
    severity = str(issue.get("severity") or "medium").lower()
    return {
        "severity": severity if severity in ISSUE_SEVERITIES else "medium",
        "category": issue.get("category") or "General",
        "title": issue.get("title") or "Issue",
        "description": issue.get("description") or "",
        "clause": issue.get("clause") or issue.get("clause_reference"),
        "recommendation": issue.get("recommendation") or "",
    }


def _clean_verified(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "category": item.get("category") or "General",
        "title": item.get("title") or "",
        "description": item.get("description") or "",
        "clause": item.get("clause") or item.get("clause_reference"),
    }


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    return [v for v in _as_list(value) if isinstance(v, dict)]


class ContractAnalyzer:
    """Runs the analysis stage for one downloaded contract."""

    def __init__(self, llm: LLMProviderService, max_chars: int = None):
        self.llm = llm
        self.max_chars = max_chars or settings.analysis_max_chars

    @property
    def model_label(self) -> str:
        return self.llm.model_label

    async def analyze_contract(self, file_bytes: bytes, source_url: str) -> Dict[str, Any]:
        """Return the AnalysisResult dict, or raise an AnalysisError subclass."""
        if not file_bytes:
            raise ContractValidationError("Contract file is empty")

        # pypdf is synchronous; keep the event loop free
        loop = asyncio.get_running_loop()
        text = await loop.run_in_executor(None, extract_text, file_bytes, source_url)

        if len(text) > self.max_chars:
            logger.info(f"[Analysis] Truncating contract text from {len(text)} to {self.max_chars} chars")
            text = text[:self.max_chars]

        prompt = CONTRACT_ANALYSIS_PROMPT.format(contract_text=text)
        raw = await self.llm.complete_json(prompt)

        if raw.get("isContract") is False:
            raise ContractValidationError(
                "The uploaded document does not appear to be a brand collaboration contract.",
                details={
                    "documentType": raw.get("documentType"),
                    "reason": raw.get("validationReason"),
                },
            )

        if "protectionScore" not in raw and "overallRisk" not in raw:
            raise ExternalServiceError("AI analysis is missing protectionScore and overallRisk", details=raw)

        normalized = normalize(raw)
        return {
            "protectionScore": normalized["protectionScore"],
            "overallRisk": normalized["overallRisk"],
            "negotiationPowerScore": raw.get("negotiationPowerScore"),
            "documentType": raw.get("documentType"),
            "detectedContractCategory": raw.get("detectedContractCategory"),
            "brandDetected": raw.get("brandDetected"),
            "issues": [_clean_issue(i) for i in _dict_items(raw.get("issues"))],
            "verified": [_clean_verified(v) for v in _dict_items(raw.get("verified"))],
            "keyTerms": raw.get("keyTerms") if isinstance(raw.get("keyTerms"), dict) else {},
            "recommendations": [str(r) for r in _as_list(raw.get("recommendations")) if r],
        }


def get_contract_analyzer(llm: LLMProviderService = Depends(get_llm_service)) -> ContractAnalyzer:
    return ContractAnalyzer(llm)
