"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from proposal_engine.dao.base import BaseDAO
from proposal_engine.dao.proposal import ProposalDAO, ProposalSignatureDAO
from proposal_engine.dao.sow_prefix import SowPrefixDAO, AccountDAO

__all__ = [
    "BaseDAO",
    "ProposalDAO",
    "ProposalSignatureDAO",
    "SowPrefixDAO",
    "AccountDAO",
]
