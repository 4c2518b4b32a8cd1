import asyncio
import logging
import re
import time
import traceback
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse, Response
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from armour.auth import CurrentUser, get_current_user
from armour.config import settings
from armour.database import get_db
from armour.errors import (
    AccessDenied,
    BadRequest,
    NotFound,
    ProtectionError,
    ContractValidationError,
    DocumentParsingError,
    DocumentRenderError,
)
from armour.models import Profile, ProtectionReport, LegalReviewRequest, SavedReport
from armour.services.access import can_access, load_report, require_report
from armour.services.contract_analysis import ContractAnalyzer, get_contract_analyzer
from armour.services.contract_docx import DOCX_CONTENT_TYPE
from armour.services.contract_fetcher import ContractFetcher, get_contract_fetcher
from armour.services.generators import ArtifactGenerator, get_artifact_generator
from armour.services.report_pdf import generate_report_pdf
from armour.services.report_persister import ReportPersister
from armour.services.storage import StorageService, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NEGOTIATION_EMAIL_SUBJECT = "Request for Contract Revisions – Legal Review Applied"
PARSING_ERROR_MESSAGE = "Invalid document file. Please ensure the file is a valid PDF, DOCX, or DOC document."


class AnalyzeRequest(BaseModel):
    """Contract to analyze, as a storage URL."""
    contract_url: Optional[str] = None
    deal_id: Optional[str] = None


class SafeContractRequest(BaseModel):
    originalFilePath: Optional[str] = None
    reportId: Optional[str] = None
    dealId: Optional[str] = None


class DealRequest(BaseModel):
    dealId: Optional[str] = None


class GenerateFixRequest(BaseModel):
    """Issue to rewrite: by id, or by position/clause within a report."""
    issueId: Optional[str] = None
    reportId: Optional[str] = None
    issueIndex: Optional[int] = None
    originalClause: Optional[str] = None


class NegotiationMessageRequest(BaseModel):
    reportId: Optional[str] = None
    brandName: Optional[str] = None
    issues: Optional[List[Dict[str, Any]]] = None


class NegotiationEmailRequest(BaseModel):
    toEmail: Optional[str] = None
    message: Optional[str] = None
    reportId: Optional[str] = None


class LegalReviewRequestBody(BaseModel):
    reportId: Optional[str] = None
    userEmail: Optional[str] = None
    userPhone: Optional[str] = None


class ReportRequest(BaseModel):
    reportId: Optional[str] = None


def _analysis_failure(status_code: int, **content: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, **content})


def _redirect_to_pdf(report: ProtectionReport, storage: StorageService) -> RedirectResponse:
    if not report.pdf_report_url:
        raise NotFound("PDF report not available")
    path = storage.path_from_url(report.pdf_report_url)
    if not path:
        raise NotFound("PDF report not available")
    return RedirectResponse(storage.signed_url(path, expires_in=3600), status_code=302)


@router.post("/analyze")
async def analyze_contract(
    request: AnalyzeRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    fetcher: ContractFetcher = Depends(get_contract_fetcher),
    analyzer: ContractAnalyzer = Depends(get_contract_analyzer),
    storage: StorageService = Depends(get_storage),
):
    """Download a contract, analyze it, and store the report.

    Persistence is best effort: a failed database write still returns the
    analysis, with `report_id` set to null.
    """
    contract_url = request.contract_url
    if not contract_url:
        return JSONResponse(status_code=400, content={"error": "contract_url required"})

    try:
        file_bytes = await fetcher.fetch(contract_url)
        analysis = await analyzer.analyze_contract(file_bytes, contract_url)
    except ProtectionError as e:
        return _analysis_failure(e.status_code, error=e.message)
    except ContractValidationError as e:
        logger.info(f"[Protection] Contract rejected: {e.message}")
        return _analysis_failure(400, validationError=True, error=e.message, details=e.details)
    except DocumentParsingError as e:
        logger.warning(f"[Protection] Document parsing failed: {e.message}")
        return _analysis_failure(400, error=PARSING_ERROR_MESSAGE, details=e.message)
    except Exception as e:
        logger.error(f"[Protection] Unhandled error in /analyze for user {user.id}: {type(e).__name__}: {e}")
        content: Dict[str, Any] = {"error": str(e) or "Internal Server Error"}
        if settings.is_development:
            content["details"] = {"name": type(e).__name__, "stack": traceback.format_exc()}
        return _analysis_failure(500, **content)

    pdf_url = None
    try:
        loop = asyncio.get_running_loop()
        pdf_bytes = await loop.run_in_executor(None, generate_report_pdf, analysis)
        pdf_path = f"protection-reports/{user.id}/{int(time.time() * 1000)}_analysis_report.pdf"
        pdf_url = storage.upload(pdf_path, pdf_bytes, "application/pdf")
    except (DocumentRenderError, OSError, ValueError) as e:
        logger.warning(f"[Protection] Continuing without PDF report: {e}")

    report_id = await ReportPersister(db).persist_analysis(
        analysis,
        user.id,
        contract_url,
        deal_id=request.deal_id,
        pdf_url=pdf_url,
        model_used=analyzer.model_label,
    )

    return {
        "ok": True,
        "data": {
            "analysis_json": analysis,
            "report_id": report_id,
            "pdf_report_url": pdf_url,
        },
    }


@router.get("/{report_id}/report.pdf")
async def report_pdf(
    report_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    """Redirect to a short-lived signed URL for the report PDF."""
    report = await require_report(db, report_id, user.id, user.role)
    return _redirect_to_pdf(report, storage)


@router.get("/download-report/{report_id}")
async def download_report(
    report_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
):
    report = await require_report(db, report_id, user.id, user.role)
    return _redirect_to_pdf(report, storage)


@router.post("/generate-safe-contract")
async def generate_safe_contract(
    request: SafeContractRequest,
    user: CurrentUser = Depends(get_current_user),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
):
    contract_html = await generator.generate_safe_contract(
        user, request.originalFilePath, report_id=request.reportId, deal_id=request.dealId
    )
    return {"success": True, "contractHtml": contract_html}


@router.post("/generate-contract-from-scratch")
async def generate_contract_from_scratch(
    request: DealRequest,
    user: CurrentUser = Depends(get_current_user),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
):
    return await generator.generate_contract_from_scratch(user, request.dealId)


@router.post("/generate-contract-docx")
async def generate_contract_docx(
    request: DealRequest,
    user: CurrentUser = Depends(get_current_user),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
):
    docx_bytes, file_name = await generator.generate_contract_docx(user, request.dealId)
    return Response(
        content=docx_bytes,
        media_type=DOCX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.post("/generate-fix")
async def generate_fix(
    request: GenerateFixRequest,
    user: CurrentUser = Depends(get_current_user),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
):
    """Rewrite a risky clause. Repeated calls for one issue return the stored rewrite."""
    result = await generator.generate_safe_clause(
        user,
        issue_id=request.issueId,
        report_id=request.reportId,
        issue_index=request.issueIndex,
        original_clause=request.originalClause,
    )
    return {"success": True, **result}


@router.post("/generate-negotiation-message")
async def generate_negotiation_message(
    request: NegotiationMessageRequest,
    user: CurrentUser = Depends(get_current_user),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
):
    message = await generator.generate_negotiation_message(
        user, report_id=request.reportId, brand_name=request.brandName, issues=request.issues
    )
    return {"success": True, "message": message}


@router.post("/send-negotiation-email")
async def send_negotiation_email(
    request: NegotiationEmailRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not request.toEmail or not request.message:
        raise BadRequest("toEmail and message are required")
    if not EMAIL_PATTERN.match(request.toEmail):
        raise BadRequest("Invalid email address")

    if request.reportId:
        report = await load_report(db, request.reportId)
        if report is not None and not can_access(report, user.id, user.role):
            raise AccessDenied()

    profile = await db.get(Profile, user.id)
    from_email = (profile.email if profile else None) or user.email or settings.default_from_email
    if profile and profile.first_name and profile.last_name:
        from_name = f"{profile.first_name} {profile.last_name}"
    else:
        from_name = "CreatorArmour User"

    # No mail transport is configured; the message is logged for delivery by an operator
    logger.info(
        f"[Protection] Negotiation email from {from_name} <{from_email}> to {request.toEmail}, "
        f"subject '{NEGOTIATION_EMAIL_SUBJECT}' ({len(request.message)} chars)"
    )
    logger.debug(f"[Protection] Negotiation email body:\n{request.message}")

    return {"success": True, "message": "Email sent successfully"}


@router.post("/send-for-legal-review")
async def send_for_legal_review(
    request: LegalReviewRequestBody,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not request.reportId:
        raise BadRequest("reportId is required")
    await require_report(db, request.reportId, user.id, user.role)

    profile = await db.get(Profile, user.id)
    try:
        db.add(LegalReviewRequest(
            report_id=request.reportId,
            user_id=user.id,
            user_email=request.userEmail or (profile.email if profile else None) or user.email,
            user_phone=request.userPhone or (profile.phone if profile else None),
            status="pending",
        ))
        await db.commit()
        logger.info(f"[Protection] Legal review requested for report {request.reportId} by user {user.id}")
    except Exception as e:
        await db.rollback()
        logger.warning(f"[Protection] Failed to save legal review request: {e}")

    return {"success": True, "message": "Legal review request submitted successfully"}


@router.post("/save-report")
async def save_report(
    request: ReportRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not request.reportId:
        raise BadRequest("reportId is required")
    await require_report(db, request.reportId, user.id, user.role)

    existing = (await db.execute(
        select(SavedReport).where(SavedReport.user_id == user.id, SavedReport.report_id == request.reportId)
    )).scalars().first()
    if existing:
        return {"success": True, "message": "Report already saved"}

    try:
        db.add(SavedReport(user_id=user.id, report_id=request.reportId))
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.warning(f"[Protection] Failed to save report: {e}")

    return {"success": True, "message": "Report saved successfully"}
