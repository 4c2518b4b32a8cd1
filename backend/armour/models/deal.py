"""Brand deals, creator profiles and contract signing records."""

import uuid

from sqlalchemy import Column, String, Text, DateTime, JSON, Boolean, Float
from sqlalchemy.sql import func
from armour.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class BrandDeal(Base):
    """A brand collaboration; anchors report ownership."""
    __tablename__ = "brand_deals"

    id = Column(String(36), primary_key=True, default=_uuid)
    creator_id = Column(String(36), nullable=False, index=True)
    brand_name = Column(String(300), nullable=True)
    brand_email = Column(String(300), nullable=True)
    brand_address = Column(Text, nullable=True)
    brand_phone = Column(String(50), nullable=True)
    deal_amount = Column(Float, default=0)
    deliverables = Column(JSON, nullable=True)  # list of strings, or a JSON-encoded string
    platform = Column(String(100), nullable=True)
    due_date = Column(DateTime, nullable=True)
    payment_expected_date = Column(DateTime, nullable=True)
    creator_address = Column(Text, nullable=True)
    brand_response_status = Column(String(50), nullable=True)  # pending, accepted_verified, ...
    contract_file_url = Column(Text, nullable=True)
    safe_contract_url = Column(Text, nullable=True)
    contract_html = Column(Text, nullable=True)
    contract_version = Column(String(30), nullable=True)
    contract_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    first_name = Column(String(200), nullable=True)
    last_name = Column(String(200), nullable=True)
    email = Column(String(300), nullable=True)
    phone = Column(String(50), nullable=True)
    location = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    role = Column(String(30), nullable=True)  # creator, admin, lawyer


class ContractSignature(Base):
    __tablename__ = "contract_signatures"

    id = Column(String(36), primary_key=True, default=_uuid)
    deal_id = Column(String(36), nullable=False, index=True)
    signer_role = Column(String(20), nullable=False)  # brand, creator
    signed = Column(Boolean, default=False)
    signer_name = Column(String(300), nullable=True)
    signer_email = Column(String(300), nullable=True)
    signed_at = Column(DateTime, nullable=True)
    otp_verified_at = Column(DateTime, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)


class ContractReadyToken(Base):
    """Grants link-based access to a deal's contract without a login."""
    __tablename__ = "contract_ready_tokens"

    id = Column(String(36), primary_key=True, default=_uuid)
    deal_id = Column(String(36), nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    revoked_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
