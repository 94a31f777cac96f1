"""
SOW document numbering.

WHAT: Per-account prefix management and sequential number allocation.

WHY: Document numbers are what clients quote back on invoices and
calls, so they must be unique per account and never change once issued.

HOW:
- The prefix is 1-10 ASCII digits, settable until first use, then locked
- The next number is max(sow_number of the account's non-template
  proposals) + 1, so gaps left by deletions are never refilled
- Allocation inserts inside a SAVEPOINT; the unique
  (account_id, sow_number) constraint rejects a number a concurrent
  request already took, and we retry with a fresh max + 1
- Display form is prefix followed directly by the sequence: "031" + 5 -> "0315"
"""

import logging
import re
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_engine.core.config import settings
from proposal_engine.core.exceptions import (
    InvalidPrefixError,
    PrefixLockedError,
    SowNumberAllocationError,
)
from proposal_engine.dao.proposal import ProposalDAO
from proposal_engine.dao.sow_prefix import SowPrefixDAO
from proposal_engine.models.account import SowPrefix
from proposal_engine.models.proposal import Proposal

logger = logging.getLogger(__name__)

# [0-9] rather than \d: \d also matches non-ASCII digits
PREFIX_PATTERN = re.compile(r"[0-9]{1,10}")


def validate_prefix(candidate: Any) -> str:
    """
    Check a prefix candidate.

    Raises:
        InvalidPrefixError: Unless the candidate is 1-10 ASCII digits
    """
    if not isinstance(candidate, str) or not PREFIX_PATTERN.fullmatch(candidate):
        raise InvalidPrefixError(candidate=str(candidate)[:32])
    return candidate


def format_sow_number(prefix: Optional[str], sequence: Optional[int]) -> Optional[str]:
    """
    Render a document number.

    Example:
        >>> format_sow_number("031", 5)
        '0315'
    """
    if sequence is None:
        return None
    return f"{prefix or ''}{sequence}"


class SowNumberingService:
    """
    Allocates SOW numbers and manages the account prefix.

    Attributes:
        session: Request-scoped database session
        max_retries: Allocation attempts before giving up
    """

    def __init__(self, session: AsyncSession, max_retries: Optional[int] = None):
        self.session = session
        self.prefix_dao = SowPrefixDAO(session)
        self.proposal_dao = ProposalDAO(session)
        self.max_retries = max_retries or settings.SOW_NUMBER_MAX_RETRIES

    async def get_prefix(self, account_id: int) -> Optional[SowPrefix]:
        return await self.prefix_dao.get_for_account(account_id)

    async def ensure_prefix(self, account_id: int, candidate: str) -> SowPrefix:
        """
        Return the account's prefix, creating it from `candidate` if absent.

        WHY: The prefix is chosen once. A differing candidate for an
        account that already has a prefix is ignored, not an error.

        Raises:
            InvalidPrefixError: If the candidate is not 1-10 digits
        """
        prefix = validate_prefix(candidate)

        existing = await self.prefix_dao.get_for_account(account_id)
        if existing is not None:
            return existing

        record = SowPrefix(account_id=account_id, prefix=prefix, locked=False)
        try:
            async with self.session.begin_nested():
                self.session.add(record)
                await self.session.flush()
        except IntegrityError:
            # A concurrent first save created it; theirs wins
            logger.info(f"SOW prefix for account {account_id} created concurrently")
            existing = await self.prefix_dao.get_for_account(account_id)
            if existing is None:
                raise
            return existing

        logger.info(f"Created SOW prefix {prefix} for account {account_id}")
        return record

    async def set_prefix(self, account_id: int, candidate: str) -> SowPrefix:
        """
        Owner prefix-set operation.

        Raises:
            InvalidPrefixError: If the candidate is not 1-10 digits
            PrefixLockedError: If the prefix is locked and the candidate differs
        """
        prefix = validate_prefix(candidate)

        record = await self.prefix_dao.get_for_account(account_id)
        if record is None:
            record = await self.ensure_prefix(account_id, prefix)

        if record.prefix == prefix:
            return record

        if record.locked or not await self.prefix_dao.update_if_unlocked(account_id, prefix):
            raise PrefixLockedError(
                account_id=account_id,
                current_prefix=record.prefix,
            )

        await self.session.refresh(record)
        logger.info(f"Changed SOW prefix for account {account_id} to {prefix}")
        return record

    async def lock_prefix(self, account_id: int) -> bool:
        """Latch the account's prefix. Returns True if this call locked it."""
        locked = await self.prefix_dao.lock(account_id)
        if locked:
            record = await self.prefix_dao.get_for_account(account_id)
            if record is not None:
                await self.session.refresh(record)
            logger.info(f"Locked SOW prefix for account {account_id}")
        return locked

    async def next_sequence(self, account_id: int) -> int:
        """max(sow_number over non-template proposals) + 1, or 1 for the first."""
        current = await self.proposal_dao.max_sow_number(account_id)
        return (current or 0) + 1

    async def insert_numbered(self, proposal: Proposal) -> Proposal:
        """
        Insert a non-template proposal with the next free number.

        Raises:
            SowNumberAllocationError: If every attempt collided
        """
        for attempt in range(1, self.max_retries + 1):
            proposal.sow_number = await self.next_sequence(proposal.account_id)
            try:
                async with self.session.begin_nested():
                    self.session.add(proposal)
                    await self.session.flush()
            except IntegrityError:
                logger.warning(
                    f"SOW number {proposal.sow_number} taken for account "
                    f"{proposal.account_id} (attempt {attempt}/{self.max_retries})"
                )
                continue

            await self.lock_prefix(proposal.account_id)
            return proposal

        proposal.sow_number = None
        raise SowNumberAllocationError(
            account_id=proposal.account_id,
            attempts=self.max_retries,
        )
