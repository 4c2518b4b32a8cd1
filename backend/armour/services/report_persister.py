"""Persist analysis results, tolerating tables that lag behind the models."""

import hashlib
import json
import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import insert, update, Table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from armour.errors import classify_write_error
from armour.models import ProtectionReport, ProtectionIssue, ProtectionVerified, ContractAILog
from armour.services.normalizer import normalize

logger = logging.getLogger(__name__)

# Columns added after the first release; a write may drop them if the table lacks them.
REPORT_OPTIONAL_COLUMNS = (
    "user_id",
    "negotiation_power_score",
    "document_type",
    "detected_contract_category",
    "brand_detected",
)


async def write_with_fallback(
    db: AsyncSession,
    table: Table,
    values: Dict[str, Any],
    optional_columns: Iterable[str],
    where=None,
) -> Dict[str, Any]:
    """Insert (or update when `where` is given) `values`, retrying once without unknown optional columns.

    Returns the values that were actually written. Any failure that is not an
    unknown-column error, or a failing retry, propagates.
    """
    optional_columns = tuple(optional_columns)

    def _statement(payload):
        if where is None:
            return insert(table).values(**payload)
        return update(table).where(where).values(**payload)

    try:
        await db.execute(_statement(values))
        await db.commit()
        return values
    except SQLAlchemyError as e:
        await db.rollback()
        unknown = classify_write_error(e, optional_columns)
        if unknown is None:
            raise
        logger.warning(f"[Persist] {table.name}: retrying without column(s) {', '.join(unknown.columns)}")

    reduced = {k: v for k, v in values.items() if k not in unknown.columns}
    try:
        await db.execute(_statement(reduced))
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        raise
    return reduced


def _or_none(value: Any) -> Any:
    return value if value not in ("", 0) else None


class ReportPersister:
    """Writes reports, their issues and verified items. Never raises to the caller."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save_report(
        self,
        analysis: Dict[str, Any],
        user_id: str,
        contract_url: str,
        deal_id: Optional[str] = None,
        pdf_url: Optional[str] = None,
    ) -> Optional[str]:
        """Insert the report row. Returns its id, or None when it could not be saved."""
        normalized = normalize(analysis)
        report_id = str(uuid.uuid4())
        values = {
            "id": report_id,
            "deal_id": deal_id or None,
            "user_id": user_id,
            "contract_file_url": contract_url,
            "pdf_report_url": pdf_url,
            "protection_score": normalized["protectionScore"],
            "negotiation_power_score": _or_none(analysis.get("negotiationPowerScore")),
            "overall_risk": normalized["overallRisk"],
            "analysis_json": analysis,
            "document_type": analysis.get("documentType") or None,
            "detected_contract_category": analysis.get("detectedContractCategory") or None,
            "brand_detected": analysis.get("brandDetected"),
        }

        try:
            written = await write_with_fallback(
                self.db, ProtectionReport.__table__, values, REPORT_OPTIONAL_COLUMNS
            )
        except Exception as e:
            logger.error(f"[Protection] Failed to save report to database: {e}")
            return None

        if "user_id" not in written:
            logger.info(f"[Protection] Report saved without user_id: {report_id}")
        else:
            logger.info(f"[Protection] Report saved to database: {report_id}")
        return report_id

    async def save_issues(self, report_id: str, issues: List[Dict[str, Any]]) -> List[str]:
        """Batch insert issues in order. Returns their ids, or [] on failure."""
        if not issues:
            return []
        rows = []
        for position, issue in enumerate(issues):
            rows.append({
                "id": str(uuid.uuid4()),
                "report_id": report_id,
                "position": position,
                "severity": issue.get("severity") or "medium",
                "category": issue.get("category") or "",
                "title": issue.get("title") or "",
                "description": issue.get("description") or "",
                "clause_reference": issue.get("clause"),
                "recommendation": issue.get("recommendation"),
            })
        try:
            await self.db.execute(insert(ProtectionIssue.__table__), rows)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"[Protection] Failed to save issues: {e}")
            return []
        return [row["id"] for row in rows]

    async def save_verified(self, report_id: str, items: List[Dict[str, Any]]) -> bool:
        if not items:
            return True
        rows = [
            {
                "id": str(uuid.uuid4()),
                "report_id": report_id,
                "category": item.get("category") or "",
                "title": item.get("title") or "",
                "description": item.get("description") or "",
                "clause_reference": item.get("clause"),
            }
            for item in items
        ]
        try:
            await self.db.execute(insert(ProtectionVerified.__table__), rows)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"[Protection] Failed to save verified items: {e}")
            return False
        return True

    async def log_ai_decision(
        self,
        analysis: Dict[str, Any],
        user_id: str,
        model_used: str,
        report_id: Optional[str] = None,
    ) -> None:
        """Record which model produced the analysis. Failures are only logged."""
        prompt_hash = hashlib.sha256(
            json.dumps({"model": model_used, "timestamp": time.time()}).encode()
        ).hexdigest()
        try:
            self.db.add(ContractAILog(
                report_id=report_id,
                user_id=user_id,
                model_used=model_used,
                prompt_hash=prompt_hash,
                risk_score=normalize(analysis)["protectionScore"],
                detected_type=analysis.get("documentType"),
                detected_category=analysis.get("detectedContractCategory"),
                brand_detected=analysis.get("brandDetected"),
                analysis_metadata={
                    "keyTerms": analysis.get("keyTerms"),
                    "recommendations": analysis.get("recommendations"),
                },
            ))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.warning(f"[Protection] Failed to log AI decision: {e}")

    async def persist_analysis(
        self,
        analysis: Dict[str, Any],
        user_id: str,
        contract_url: str,
        deal_id: Optional[str] = None,
        pdf_url: Optional[str] = None,
        model_used: str = "unknown",
    ) -> Optional[str]:
        """Save the report and its children; back-fill issue ids onto `analysis`."""
        report_id = await self.save_report(analysis, user_id, contract_url, deal_id, pdf_url)
        await self.log_ai_decision(analysis, user_id, model_used, report_id)
        if not report_id:
            logger.warning("[Protection] Report was not saved to database. report_id will be null in response.")
            return None

        issues = analysis.get("issues") or []
        issue_ids = await self.save_issues(report_id, issues)
        await self.save_verified(report_id, analysis.get("verified") or [])

        # Response-only ids; the stored analysis_json keeps its original shape
        if issue_ids:
            analysis["issues"] = [
                {**issue, "db_id": issue_ids[i] if i < len(issue_ids) else None}
                for i, issue in enumerate(issues)
            ]
        return report_id
