"""Public contract links. Access is a contract-ready token or the deal owner's bearer token."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from armour.auth import bearer_token, resolve_user
from armour.database import get_db
from armour.errors import ProtectionError
from armour.models import BrandDeal, ContractReadyToken
from armour.services.contract_docx import DOCX_CONTENT_TYPE
from armour.services.generators import ArtifactGenerator, get_artifact_generator

logger = logging.getLogger(__name__)

router = APIRouter()

ACCEPTED_STATUS = "accepted_verified"


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, **extra})


async def _token_grants_access(db: AsyncSession, deal_id: str, token: Optional[str]) -> bool:
    if not token:
        return False
    row = await db.get(ContractReadyToken, token)
    return (
        row is not None
        and row.deal_id == deal_id
        and bool(row.is_active)
        and row.revoked_at is None
        and (row.expires_at is None or row.expires_at > datetime.utcnow())
    )


async def _has_access(db: AsyncSession, deal: BrandDeal, request: Request, token: Optional[str]) -> bool:
    if await _token_grants_access(db, deal.id, token):
        return True
    user = await resolve_user(db, bearer_token(request))
    return user is not None and (deal.creator_id == user.id or user.is_admin)


@router.get("/{deal_id}/download-docx")
async def download_contract_docx(
    deal_id: str,
    request: Request,
    token: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    generator: ArtifactGenerator = Depends(get_artifact_generator),
):
    """Signed agreement as DOCX; unsigned legacy contracts redirect to their stored file."""
    logger.info(f"[Protection] Download DOCX request for deal {deal_id}")
    if not deal_id.strip():
        return _error(400, "Deal ID is required")

    deal = await db.get(BrandDeal, deal_id, populate_existing=True)
    if deal is None:
        return _error(404, "Deal not found")
    if not await _has_access(db, deal, request, token):
        return _error(401, "Unauthorized")

    signatures = await generator.signatures(deal_id)
    both_signed = all(
        signatures.get(role) is not None and bool(signatures[role].signed)
        for role in ("brand", "creator")
    )
    if deal.brand_response_status != ACCEPTED_STATUS and not both_signed:
        return _error(403, "Contract is not yet available for download")

    contract_file_url = deal.contract_file_url or deal.safe_contract_url
    if contract_file_url and not both_signed:
        return RedirectResponse(contract_file_url, status_code=302)

    if not both_signed:
        return _error(
            404,
            "Contract not available. Both parties must sign before downloading.",
            hint="Please ensure both brand and creator have signed the agreement.",
            contractFileUrl=contract_file_url,
            bothSigned=False,
        )

    try:
        docx_bytes, file_name, _ = await generator.render_contract(deal, None, signatures)
    except ProtectionError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_body())
    except Exception as e:
        logger.error(f"[Protection] Failed to generate contract DOCX for deal {deal_id}: {e}")
        return _error(500, "Failed to generate contract", hint="Please try again or contact support.", details=str(e))

    return Response(
        content=docx_bytes,
        media_type=DOCX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@router.get("/{deal_id}/view")
async def view_contract(
    deal_id: str,
    request: Request,
    token: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    if not deal_id.strip():
        return _error(400, "Deal ID is required")

    deal = await db.get(BrandDeal, deal_id, populate_existing=True)
    if deal is None:
        return _error(404, "Deal not found")
    if not await _has_access(db, deal, request, token):
        return _error(401, "Unauthorized")

    if deal.brand_response_status != ACCEPTED_STATUS:
        return _error(403, "Contract is not yet available for viewing")

    if deal.contract_html:
        return HTMLResponse(deal.contract_html)

    contract_file_url = deal.contract_file_url or deal.safe_contract_url
    if contract_file_url:
        return RedirectResponse(contract_file_url, status_code=302)

    return _error(
        404,
        "Contract HTML not found. Please regenerate the contract.",
        hint="No HTML or file version of this contract is stored.",
    )
