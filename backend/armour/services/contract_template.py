"""Creator-brand collaboration agreement: field validation and text rendering."""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MAJOR_CITIES = [
    "Mumbai", "Delhi", "Bangalore", "Kolkata", "Chennai", "Hyderabad",
    "Pune", "Ahmedabad", "Jaipur", "Surat", "Lucknow", "Kanpur",
    "Nagpur", "Indore", "Thane", "Bhopal", "Visakhapatnam", "Patna",
    "Vadodara", "Ghaziabad", "Ludhiana", "Agra", "Nashik", "Faridabad",
    "Meerut", "Rajkot", "Varanasi", "Srinagar", "Amritsar", "Chandigarh",
]

LOCATION_KEYWORDS = re.compile(
    r"\b(city|state|nagar|colony|sector|road|street|area|district|pincode|pin|block|phase|"
    r"extension|layout|village|town|taluk|tehsil)\b",
    re.IGNORECASE,
)
ADDRESS_WORDS = re.compile(r"\b(flat|house|apartment|building|plot|no\.?|number)\b", re.IGNORECASE)

PLACEHOLDERS = {"not specified", "n/a", "na"}


@dataclass
class ContractParty:
    name: str = ""
    address: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ContractSignatureInfo:
    signer_name: Optional[str] = None
    signer_email: Optional[str] = None
    signed_at: Optional[datetime] = None
    otp_verified_at: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class ContractTerms:
    """Everything the agreement text needs besides the parties."""
    deliverables: List[str] = field(default_factory=list)
    deal_amount: float = 0
    platform: Optional[str] = None
    due_date: Optional[datetime] = None
    payment_expected_date: Optional[datetime] = None
    usage_duration: str = "6 months"
    termination_notice_days: int = 7
    jurisdiction_city: Optional[str] = None
    brand_signature: Optional[ContractSignatureInfo] = None
    creator_signature: Optional[ContractSignatureInfo] = None


def _clean(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""


def _is_placeholder(value: str) -> bool:
    return not value or value.lower() in PLACEHOLDERS


def _is_email(value: str) -> bool:
    return bool(value) and value.lower() != "not specified" and "@" in value and "." in value


def validate_required_contract_fields(brand: ContractParty, creator: ContractParty) -> List[str]:
    """Return the list of missing or placeholder party fields; empty means valid."""
    missing = []

    brand_name = _clean(brand.name)
    if not brand_name or brand_name == "Brand" or brand_name.lower() in ("brand name", "notice"):
        missing.append("Brand legal name")

    if _is_placeholder(_clean(brand.address)):
        missing.append("Brand registered address (full address required)")

    if not _is_email(_clean(brand.email)):
        missing.append("Brand email")

    creator_name = _clean(creator.name)
    if len(creator_name) < 2 or creator_name.lower() in ("creator", "creator name"):
        missing.append("Creator full name")

    creator_address = _clean(creator.address)
    if _is_placeholder(creator_address):
        missing.append("Creator address (city and state minimum required)")
    elif len(creator_address) < 3:
        missing.append("Creator address (must include city and state)")
    else:
        has_location_info = (
            "," in creator_address
            or len(creator_address) >= 5
            or bool(LOCATION_KEYWORDS.search(creator_address))
            or bool(re.search(r"\d+", creator_address))
            or bool(ADDRESS_WORDS.search(creator_address))
        )
        if not has_location_info:
            missing.append("Creator address (must include city and state)")

    if not _is_email(_clean(creator.email)):
        missing.append("Creator email")

    if missing:
        logger.info(f"[Contract] Missing required fields: {', '.join(missing)}")
    return missing


def parse_deliverables(raw: Any) -> List[str]:
    """Deliverables may be stored as a list, a JSON-encoded list, or free text."""
    if isinstance(raw, list):
        return [str(d) for d in raw if d] or ["As per agreement"]
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except ValueError:
            return [raw.strip()]
        if isinstance(parsed, list):
            return [str(d) for d in parsed if d] or ["As per agreement"]
        return [str(parsed)]
    return ["As per agreement"]


def extract_city(address: Optional[str]) -> Optional[str]:
    addr = _clean(address)
    if _is_placeholder(addr):
        return None
    for city in MAJOR_CITIES:
        if re.search(rf"\b{city}\b", addr, re.IGNORECASE):
            return city
    match = re.search(r",\s*([^,]+?),\s*([^,]+?),\s*\d{6}", addr)
    if match:
        return match.group(1).strip()
    match = re.match(r"^([^,]+?),\s*([^,]+)$", addr)
    if match and len(match.group(1).strip()) > 2:
        return match.group(1).strip()
    return None


def derive_jurisdiction(brand_address: Optional[str], creator_address: Optional[str], explicit: Optional[str] = None) -> str:
    """Explicit city, else the creator's city, else the brand's. Empty when none is found."""
    explicit = _clean(explicit)
    if explicit and not _is_placeholder(explicit):
        return explicit
    return extract_city(creator_address) or extract_city(brand_address) or ""


def _format_date(value: Optional[datetime], fallback: str) -> str:
    return value.strftime("%d %B %Y") if value else fallback


def _format_amount(amount: float) -> str:
    return f"INR {amount:,.2f}" if amount else "As mutually agreed"


def _signature_block(role: str, party: ContractParty, sig: Optional[ContractSignatureInfo]) -> str:
    lines = [role, f"Name: {party.name}", f"Email: {party.email or ''}"]
    if sig and sig.otp_verified_at:
        lines.append(f"OTP Verified: {sig.otp_verified_at.strftime('%d %B %Y %H:%M:%S')}")
    else:
        lines.append("Status: Pending signature")
    if sig and sig.ip_address:
        lines.append(f"IP Address: {sig.ip_address}")
    if sig and sig.user_agent:
        lines.append(f"Device: {sig.user_agent}")
    if sig and sig.signed_at:
        lines.append(f"Executed At: {sig.signed_at.strftime('%d %B %Y %H:%M:%S')}")
    return "\n".join(lines)


def render_contract_text(brand: ContractParty, creator: ContractParty, terms: ContractTerms, jurisdiction: str) -> str:
    """Plain-text agreement; sections are separated by blank lines, headings are numbered."""
    deliverables = "\n".join(f"• {d}" for d in (terms.deliverables or ["As per agreement"]))
    deadline = _format_date(terms.due_date, "As mutually agreed")
    if terms.payment_expected_date:
        payment_timeline = f"Payment expected by {_format_date(terms.payment_expected_date, '')}"
    else:
        payment_timeline = "Within 7 days of content delivery"
    notice_days = terms.termination_notice_days if terms.termination_notice_days in (7, 15, 30) else 7

    return f"""CREATOR–BRAND COLLABORATION AGREEMENT

This Agreement is made on: {datetime.now().strftime('%d %B %Y')}

BETWEEN

Brand:
Name: {brand.name}
Registered Address: {brand.address}
Email: {brand.email}

AND

Creator:
Name: {creator.name}
Address: {creator.address}
Email: {creator.email}

Collectively referred to as the "Parties".

1. Scope of Work

The Creator agrees to deliver the following content ("Deliverables"):

{deliverables}

Content shall be delivered on or before {deadline}, unless otherwise mutually agreed in writing.

2. Compensation & Payment Terms

• Total Fee: {_format_amount(terms.deal_amount)}
• Payment Method: Bank Transfer
• Payment Timeline: {payment_timeline}

If payment is delayed beyond 7 days from the due date, the Brand shall be liable to pay interest at 18% per annum, calculated daily until settlement.

3. Intellectual Property Ownership

The Creator retains full ownership of all original content created. No ownership transfer is implied unless expressly stated.

4. Usage Rights (License)

The Creator grants the Brand a non-exclusive license to use the content under the following conditions:
• Platforms: {terms.platform or 'Instagram only, organic usage'}
• Duration: {terms.usage_duration}
• Paid Advertising: No
• Whitelisting: No

Any usage beyond the above requires written consent and may attract additional fees.

5. Exclusivity

No exclusivity period applies.

6. Compliance & Disclosures

The Creator shall comply with ASCI Advertising Guidelines and platform-specific disclosure requirements (#ad / #sponsored).

7. Termination

Either Party may terminate this Agreement by giving {notice_days} days' written notice. Completed or in-progress work shall be paid on a pro-rata basis.

8. Confidentiality

Both Parties agree to keep confidential all commercial and non-public information shared during the collaboration.

9. Limitation of Liability

Neither Party shall be liable for indirect, incidental, or consequential damages.

10. Dispute Resolution & Jurisdiction

• Governing Law: Indian Contract Act, 1872
• Jurisdiction: Courts of {jurisdiction}, India

11. Entire Agreement

This Agreement constitutes the entire understanding between the Parties and supersedes all prior communications.

DIGITAL ACCEPTANCE & EXECUTION

This Agreement is executed electronically through OTP verification and click-to-accept confirmation, which constitute valid electronic signatures under the Information Technology Act, 2000.

{_signature_block('BRAND', brand, terms.brand_signature)}

{_signature_block('CREATOR', creator, terms.creator_signature)}

DISCLAIMER

This agreement was generated using the CreatorArmour Contract Scanner. CreatorArmour is not a party to this agreement and does not provide legal representation."""
