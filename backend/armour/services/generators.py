"""Derived artifacts: safe clauses, safe contracts, generated contracts and negotiation drafts."""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from armour.auth import CurrentUser
from armour.config import settings
from armour.database import get_db
from armour.errors import (
    BadRequest,
    NotFound,
    AccessDenied,
    ProtectionError,
    DocumentParsingError,
    DocumentRenderError,
    ExternalServiceError,
)
from armour.models import (
    BrandDeal,
    Profile,
    ProtectionIssue,
    SafeClause,
    NegotiationMessage,
    ContractSignature,
)
from armour.services.access import can_access, load_report, require_report, require_deal
from armour.services.ai_tasks import SAFE_CLAUSE, SAFE_CONTRACT, NEGOTIATION_MESSAGE, NEGOTIABLE_SEVERITIES
from armour.services.contract_docx import build_contract_docx, html_to_text, DOCX_CONTENT_TYPE
from armour.services.contract_template import (
    ContractParty,
    ContractSignatureInfo,
    ContractTerms,
    derive_jurisdiction,
    parse_deliverables,
    render_contract_text,
    validate_required_contract_fields,
)
from armour.services.document_extractor import extract_text
from armour.services.job_client import AsyncTaskClient, get_task_client
from armour.services.report_persister import write_with_fallback
from armour.services.storage import StorageService, get_storage

logger = logging.getLogger(__name__)

UUID_LENGTH = 36
CONTRACT_VERSION = "v3"
SAFE_CONTRACT_VERSION = "safe_final"
DEAL_OPTIONAL_COLUMNS = ("contract_html", "contract_version", "contract_metadata", "safe_contract_url")


def issue_to_dict(issue: ProtectionIssue) -> Dict[str, Any]:
    return {
        "id": issue.id,
        "severity": issue.severity,
        "category": issue.category,
        "title": issue.title,
        "description": issue.description,
        "clause_reference": issue.clause_reference,
        "recommendation": issue.recommendation,
    }


def _display_name(profile: Optional[Profile]) -> str:
    if profile is None:
        return "Creator"
    full = f"{(profile.first_name or '').strip()} {(profile.last_name or '').strip()}".strip()
    return full or "Creator"


def _missing_fields_message(missing: List[str]) -> str:
    return f"Please provide the following information before generating the contract: {', '.join(missing)}"


class ArtifactGenerator:
    """Orchestrates access checks, AI jobs and persistence for derived artifacts."""

    def __init__(self, db: AsyncSession, tasks: AsyncTaskClient, storage: StorageService):
        self.db = db
        self.tasks = tasks
        self.storage = storage

    # Safe clause

    async def _find_issue(
        self,
        issue_id: Optional[str],
        report_id: Optional[str],
        issue_index: Optional[int],
        original_clause: Optional[str],
    ) -> ProtectionIssue:
        if issue_id and len(issue_id) == UUID_LENGTH:
            issue = await self.db.get(ProtectionIssue, issue_id, populate_existing=True)
            if issue is None:
                raise NotFound("Issue not found")
            return issue

        if report_id and (issue_index is not None or original_clause):
            result = await self.db.execute(
                select(ProtectionIssue)
                .where(ProtectionIssue.report_id == report_id)
                .order_by(ProtectionIssue.created_at.asc(), ProtectionIssue.position.asc())
            )
            issues = list(result.scalars().unique().all())
            if not issues:
                raise NotFound("Issues not found for this report")

            issue = None
            if issue_index is not None:
                if 0 <= issue_index < len(issues):
                    issue = issues[issue_index]
            else:
                issue = next(
                    (i for i in issues if original_clause in (i.clause_reference, i.title)),
                    None,
                )
            if issue is None:
                raise NotFound("Issue not found")
            return issue

        raise BadRequest("issueId (UUID) or (reportId + issueIndex/originalClause) required")

    async def generate_safe_clause(
        self,
        user: CurrentUser,
        issue_id: Optional[str] = None,
        report_id: Optional[str] = None,
        issue_index: Optional[int] = None,
        original_clause: Optional[str] = None,
    ) -> Dict[str, str]:
        issue = await self._find_issue(issue_id, report_id, issue_index, original_clause)
        await require_report(self.db, issue.report_id, user.id, user.role)

        existing = (await self.db.execute(
            select(SafeClause).where(SafeClause.issue_id == issue.id)
        )).scalar_one_or_none()
        if existing:
            logger.info(f"[Protection] Returning stored safe clause for issue {issue.id}")
            return {"safeClause": existing.safe_clause, "explanation": existing.explanation or ""}

        clause = original_clause or issue.clause_reference or issue.title
        result = await self.tasks.run(SAFE_CLAUSE, {
            "originalClause": clause,
            "issueContext": issue.description,
            "issueCategory": issue.category,
        })
        safe_clause = (result or {}).get("safeClause")
        if not safe_clause:
            raise ExternalServiceError("Failed to generate safe clause")
        explanation = result.get("explanation") or ""

        try:
            self.db.add(SafeClause(
                report_id=issue.report_id,
                issue_id=issue.id,
                original_clause=clause,
                safe_clause=safe_clause,
                explanation=explanation,
            ))
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"[Protection] Safe clause for issue {issue.id} was saved concurrently")
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"[Protection] Failed to save safe clause: {e}")

        return {"safeClause": safe_clause, "explanation": explanation}

    # Safe contract

    async def _report_issues(self, report_id: str, severities=None) -> List[Dict[str, Any]]:
        query = select(ProtectionIssue).where(ProtectionIssue.report_id == report_id)
        if severities:
            query = query.where(ProtectionIssue.severity.in_(severities))
        result = await self.db.execute(
            query.order_by(ProtectionIssue.created_at.asc(), ProtectionIssue.position.asc())
        )
        return [issue_to_dict(i) for i in result.scalars().unique().all()]

    async def _read_contract_text(self, original_file_path: str) -> str:
        path = self.storage.path_from_url(original_file_path)
        if not path:
            raise NotFound("Original contract file not found")
        try:
            data = self.storage.read(path)
        except (FileNotFoundError, ValueError):
            raise NotFound("Original contract file not found")

        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, extract_text, data, path)
        except DocumentParsingError as e:
            raise BadRequest(
                "Invalid document file. Please ensure the file is a valid PDF, DOCX, or DOC document.",
                details=e.message,
            )
        return text[:settings.analysis_max_chars]

    async def _update_deal(self, deal_id: str, values: Dict[str, Any]) -> bool:
        """Update a deal, dropping optional columns the table lacks. Returns success."""
        values = {**values, "updated_at": datetime.utcnow()}
        try:
            await write_with_fallback(
                self.db, BrandDeal.__table__, values, DEAL_OPTIONAL_COLUMNS,
                where=BrandDeal.__table__.c.id == deal_id,
            )
        except Exception as e:
            logger.error(f"[Protection] Failed to update deal {deal_id}: {e}")
            return False
        return True

    async def generate_safe_contract(
        self,
        user: CurrentUser,
        original_file_path: Optional[str],
        report_id: Optional[str] = None,
        deal_id: Optional[str] = None,
    ) -> str:
        if not original_file_path or not original_file_path.strip():
            raise BadRequest("originalFilePath is required and cannot be empty")

        issues: List[Dict[str, Any]] = []
        if report_id:
            report = await load_report(self.db, report_id)
            if report is None:
                logger.warning(f"[Protection] Report not found, continuing with originalFilePath only: {report_id}")
            elif not can_access(report, user.id, user.role):
                raise AccessDenied()
            else:
                issues = await self._report_issues(report_id)

        if deal_id:
            await require_deal(self.db, deal_id, user.id, user.role)

        contract_text = await self._read_contract_text(original_file_path)
        result = await self.tasks.run(SAFE_CONTRACT, {
            "reportId": report_id,
            "contractText": contract_text,
            "issues": issues,
        })
        contract_html = (result or {}).get("contractHtml")
        if not contract_html:
            raise ExternalServiceError("Failed to generate contract HTML")

        if deal_id:
            values: Dict[str, Any] = {"contract_html": contract_html, "contract_version": SAFE_CONTRACT_VERSION}
            try:
                docx_bytes = build_contract_docx(html_to_text(contract_html))
                path = f"safe-contracts/{deal_id}/{int(time.time() * 1000)}_safe_contract.docx"
                url = self.storage.upload(path, docx_bytes, DOCX_CONTENT_TYPE)
                values["safe_contract_url"] = url
                values["contract_file_url"] = url
            except (DocumentRenderError, OSError, ValueError) as e:
                logger.warning(f"[Protection] Safe contract file upload skipped: {e}")
            await self._update_deal(deal_id, values)

        return contract_html

    # Generated contracts

    async def signatures(self, deal_id: str) -> Dict[str, ContractSignature]:
        """Signature rows of a deal, keyed by signer role."""
        result = await self.db.execute(select(ContractSignature).where(ContractSignature.deal_id == deal_id))
        return {s.signer_role: s for s in result.scalars().all()}

    async def _contract_parties(
        self,
        deal: BrandDeal,
        user: Optional[CurrentUser],
        signatures: Dict[str, ContractSignature] = None,
    ) -> Tuple[ContractParty, ContractParty]:
        profile = await self.db.get(Profile, deal.creator_id)
        creator_email = profile.email if profile else None
        if user is not None and deal.creator_id == user.id:
            creator_email = user.email or creator_email

        address = None
        if profile is not None:
            address = (profile.location or "").strip() or (profile.address or "").strip() or None
        address = address or (deal.creator_address or "").strip() or None

        creator_name = _display_name(profile)
        creator_sig = (signatures or {}).get("creator")
        if creator_name == "Creator" and creator_sig is not None and creator_sig.signer_name:
            creator_name = creator_sig.signer_name

        brand = ContractParty(name=deal.brand_name or "Brand", address=deal.brand_address, email=deal.brand_email)
        creator = ContractParty(name=creator_name, address=address, email=creator_email)
        return brand, creator

    def _terms(self, deal: BrandDeal, signatures: Dict[str, ContractSignature] = None) -> ContractTerms:
        def _sig(role):
            sig = (signatures or {}).get(role)
            if sig is None:
                return None
            return ContractSignatureInfo(
                signer_name=sig.signer_name,
                signer_email=sig.signer_email,
                signed_at=sig.signed_at,
                otp_verified_at=sig.otp_verified_at,
                ip_address=sig.ip_address,
                user_agent=sig.user_agent,
            )

        return ContractTerms(
            deliverables=parse_deliverables(deal.deliverables),
            deal_amount=deal.deal_amount or 0,
            platform=deal.platform,
            due_date=deal.due_date,
            payment_expected_date=deal.payment_expected_date,
            brand_signature=_sig("brand"),
            creator_signature=_sig("creator"),
        )

    async def render_contract(
        self,
        deal: BrandDeal,
        user: Optional[CurrentUser],
        signatures: Dict[str, ContractSignature] = None,
    ) -> Tuple[bytes, str, Dict[str, Any]]:
        """Validate the parties and build the agreement DOCX.

        Returns (docx bytes, file name, metadata). Raises BadRequest with
        `missingFields` when party details are incomplete, and a 500
        ProtectionError flagged `requiresPuppeteer` when rendering fails.
        """
        brand, creator = await self._contract_parties(deal, user, signatures)
        missing = validate_required_contract_fields(brand, creator)
        if missing:
            raise BadRequest(
                "Missing required contract fields",
                missingFields=missing,
                message=_missing_fields_message(missing),
            )

        jurisdiction = derive_jurisdiction(brand.address, creator.address)
        if not jurisdiction:
            missing = ["Jurisdiction city"]
            raise BadRequest(
                "Jurisdiction could not be determined. Please include a city in the brand or creator address.",
                missingFields=missing,
                message=_missing_fields_message(missing),
            )

        terms = self._terms(deal, signatures)
        text = render_contract_text(brand, creator, terms, jurisdiction)
        try:
            docx_bytes = build_contract_docx(text)
        except DocumentRenderError as e:
            raise ProtectionError(str(e), requiresPuppeteer=True)

        file_name = f"CREATOR_BRAND_COLLABORATION_AGREEMENT_{deal.id}_{int(time.time() * 1000)}.docx"
        metadata = {
            "templateVersion": CONTRACT_VERSION,
            "generatedAt": datetime.utcnow().isoformat(),
            "jurisdiction": jurisdiction,
            "deliverables": terms.deliverables,
        }
        return docx_bytes, file_name, metadata

    async def generate_contract_from_scratch(self, user: CurrentUser, deal_id: Optional[str]) -> Dict[str, Any]:
        if not deal_id:
            raise BadRequest("dealId is required")
        deal = await require_deal(self.db, deal_id, user.id, user.role)

        docx_bytes, file_name, metadata = await self.render_contract(deal, user)

        path = f"contracts/{deal_id}/{int(time.time() * 1000)}_{file_name}"
        try:
            contract_url = self.storage.upload(path, docx_bytes, DOCX_CONTENT_TYPE)
        except (OSError, ValueError) as e:
            logger.error(f"[Protection] Contract upload failed: {e}")
            raise ProtectionError("Failed to upload contract DOCX to storage")

        database_updated = await self._update_deal(deal_id, {
            "contract_file_url": contract_url,
            "contract_version": CONTRACT_VERSION,
            "contract_metadata": metadata,
        })

        return {
            "success": True,
            "contractDocxUrl": contract_url,
            "fileName": file_name,
            "contentType": DOCX_CONTENT_TYPE,
            "contractVersion": CONTRACT_VERSION,
            "databaseUpdated": database_updated,
            "metadata": metadata,
        }

    async def generate_contract_docx(self, user: CurrentUser, deal_id: Optional[str]) -> Tuple[bytes, str]:
        if not deal_id:
            raise BadRequest("dealId is required")
        deal = await require_deal(self.db, deal_id, user.id, user.role)
        signatures = await self.signatures(deal_id)
        docx_bytes, file_name, _ = await self.render_contract(deal, user, signatures)
        return docx_bytes, file_name

    # Negotiation message

    async def generate_negotiation_message(
        self,
        user: CurrentUser,
        report_id: Optional[str] = None,
        brand_name: Optional[str] = None,
        issues: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        if report_id:
            await require_report(self.db, report_id, user.id, user.role)
            issue_list = await self._report_issues(report_id, NEGOTIABLE_SEVERITIES)
            if not issue_list:
                raise BadRequest("No issues found for this report")
        elif issues:
            issue_list = [i for i in issues if isinstance(i, dict) and i.get("severity") in NEGOTIABLE_SEVERITIES]
            if not issue_list:
                raise BadRequest("No issues provided")
        else:
            raise BadRequest("reportId or issues array is required")

        result = await self.tasks.run(NEGOTIATION_MESSAGE, {"brandName": brand_name, "issues": issue_list})
        message = str((result or {}).get("message") or "").strip()
        if not message:
            raise ExternalServiceError("Failed to generate negotiation message")

        if report_id:
            try:
                self.db.add(NegotiationMessage(
                    report_id=report_id,
                    user_id=user.id,
                    message=message,
                    brand_name=brand_name or None,
                ))
                await self.db.commit()
            except Exception as e:
                await self.db.rollback()
                logger.warning(f"[Protection] Failed to save negotiation message: {e}")

        return message


def get_artifact_generator(
    db: AsyncSession = Depends(get_db),
    tasks: AsyncTaskClient = Depends(get_task_client),
    storage: StorageService = Depends(get_storage),
) -> ArtifactGenerator:
    return ArtifactGenerator(db, tasks, storage)
