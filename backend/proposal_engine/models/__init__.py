"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from proposal_engine.models.base import Base, TimestampMixin, PrimaryKeyMixin, JSONType
from proposal_engine.models.account import Account, SowPrefix
from proposal_engine.models.proposal import (
    Proposal,
    ProposalSignature,
    ProposalStatus,
    PricingType,
    DiscountType,
    SectionType,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "JSONType",
    "Account",
    "SowPrefix",
    "Proposal",
    "ProposalSignature",
    "ProposalStatus",
    "PricingType",
    "DiscountType",
    "SectionType",
]
