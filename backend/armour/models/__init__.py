from armour.models.job import AIJob, AICacheEntry
from armour.models.deal import BrandDeal, Profile, ContractSignature, ContractReadyToken
from armour.models.report import (
    ProtectionReport,
    ProtectionIssue,
    ProtectionVerified,
    SafeClause,
    NegotiationMessage,
    LegalReviewRequest,
    SavedReport,
    ContractAILog,
)

__all__ = [
    "AIJob",
    "AICacheEntry",
    "BrandDeal",
    "Profile",
    "ContractSignature",
    "ContractReadyToken",
    "ProtectionReport",
    "ProtectionIssue",
    "ProtectionVerified",
    "SafeClause",
    "NegotiationMessage",
    "LegalReviewRequest",
    "SavedReport",
    "ContractAILog",
]
