"""Insurer claim lifecycle and remittance settlement."""

from ledger_modules.claims.models import CLAIM_TRANSITIONS, ClaimSettlementResult, can_transition
from ledger_modules.claims.service import ClaimSettlementService

__all__ = [
    "CLAIM_TRANSITIONS",
    "ClaimSettlementResult",
    "ClaimSettlementService",
    "can_transition",
]
