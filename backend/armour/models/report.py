"""Protection reports and the rows derived from them."""

import uuid

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, Boolean, Float
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from armour.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class ProtectionReport(Base):
    """Persisted outcome of one contract analysis."""
    __tablename__ = "protection_reports"

    id = Column(String(36), primary_key=True, default=_uuid)
    deal_id = Column(String(36), ForeignKey("brand_deals.id"), nullable=True)
    user_id = Column(String(36), nullable=True, index=True)  # Older databases lack this column
    contract_file_url = Column(Text, nullable=False)
    pdf_report_url = Column(Text, nullable=True)
    protection_score = Column(Float, nullable=False, default=0)
    negotiation_power_score = Column(Float, nullable=True)
    overall_risk = Column(String(10), nullable=False, default="medium")  # low, medium, high
    analysis_json = Column(JSON, nullable=False)
    document_type = Column(String(100), nullable=True)
    detected_contract_category = Column(String(100), nullable=True)
    brand_detected = Column(Boolean, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    deal = relationship("BrandDeal", lazy="joined")


class ProtectionIssue(Base):
    """One detected contract risk."""
    __tablename__ = "protection_issues"

    id = Column(String(36), primary_key=True, default=_uuid)
    report_id = Column(String(36), ForeignKey("protection_reports.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)  # Insertion order within the report
    severity = Column(String(20), nullable=False)  # high, medium, warning, low
    category = Column(String(200), default="")
    title = Column(Text, default="")
    description = Column(Text, default="")
    clause_reference = Column(Text, nullable=True)
    recommendation = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    report = relationship("ProtectionReport", lazy="joined")


class ProtectionVerified(Base):
    """A clause confirmed as acceptable."""
    __tablename__ = "protection_verified"

    id = Column(String(36), primary_key=True, default=_uuid)
    report_id = Column(String(36), ForeignKey("protection_reports.id"), nullable=False, index=True)
    category = Column(String(200), default="")
    title = Column(Text, default="")
    description = Column(Text, default="")
    clause_reference = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class SafeClause(Base):
    """AI rewrite of a risky clause, at most one per issue."""
    __tablename__ = "safe_clauses"

    id = Column(String(36), primary_key=True, default=_uuid)
    report_id = Column(String(36), nullable=True)
    issue_id = Column(String(36), nullable=False, unique=True, index=True)
    original_clause = Column(Text, nullable=True)
    safe_clause = Column(Text, nullable=False)
    explanation = Column(Text, default="")
    created_at = Column(DateTime, server_default=func.now())


class NegotiationMessage(Base):
    """Drafted negotiation message for a brand."""
    __tablename__ = "negotiation_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    report_id = Column(String(36), nullable=True)
    user_id = Column(String(36), nullable=False)
    message = Column(Text, nullable=False)
    brand_name = Column(String(300), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class LegalReviewRequest(Base):
    __tablename__ = "legal_review_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    report_id = Column(String(36), nullable=False)
    user_id = Column(String(36), nullable=False)
    user_email = Column(String(300), nullable=True)
    user_phone = Column(String(50), nullable=True)
    status = Column(String(20), default="pending")
    requested_at = Column(DateTime, server_default=func.now())


class SavedReport(Base):
    __tablename__ = "saved_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False, index=True)
    report_id = Column(String(36), nullable=False)
    saved_at = Column(DateTime, server_default=func.now())


class ContractAILog(Base):
    """Audit row recording which model produced an analysis."""
    __tablename__ = "contract_ai_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(String(36), nullable=True)
    user_id = Column(String(36), nullable=True)
    model_used = Column(String(200), nullable=False)
    prompt_hash = Column(String(64), nullable=False)
    risk_score = Column(Float, nullable=True)
    detected_type = Column(String(100), nullable=True)
    detected_category = Column(String(100), nullable=True)
    brand_detected = Column(Boolean, nullable=True)
    analysis_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
