"""Ownership rules for reports and deals."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from armour.errors import AccessDenied, NotFound
from armour.models import BrandDeal, ProtectionReport

logger = logging.getLogger(__name__)


def can_access(report: ProtectionReport, caller_id: str, caller_role: Optional[str] = None) -> bool:
    """A caller may use a report they created, one on a deal they own, any report
    without a deal, or any report at all when they are an admin."""
    deal = report.deal
    return (
        (report.user_id is not None and report.user_id == caller_id)
        or (deal is not None and deal.creator_id == caller_id)
        or report.deal_id is None
        or caller_role == "admin"
    )


def can_access_deal(deal: BrandDeal, caller_id: str, caller_role: Optional[str] = None) -> bool:
    return deal.creator_id == caller_id or caller_role == "admin"


async def load_report(db: AsyncSession, report_id: str) -> Optional[ProtectionReport]:
    """Fetch a report with its deal; always a fresh read."""
    if not report_id:
        return None
    return await db.get(ProtectionReport, report_id, populate_existing=True)


async def require_report(db: AsyncSession, report_id: str, caller_id: str, caller_role: Optional[str]) -> ProtectionReport:
    """Load a report and enforce `can_access`; raises NotFound or AccessDenied."""
    report = await load_report(db, report_id)
    if report is None:
        raise NotFound("Report not found")
    if not can_access(report, caller_id, caller_role):
        logger.warning(f"[Access] User {caller_id} denied access to report {report_id}")
        raise AccessDenied()
    return report


async def require_deal(db: AsyncSession, deal_id: str, caller_id: str, caller_role: Optional[str]) -> BrandDeal:
    deal = await db.get(BrandDeal, deal_id, populate_existing=True) if deal_id else None
    if deal is None:
        raise NotFound("Deal not found")
    if not can_access_deal(deal, caller_id, caller_role):
        raise AccessDenied()
    return deal
