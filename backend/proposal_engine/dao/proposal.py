"""
Proposal Data Access Object (DAO).

WHAT: Database operations for the Proposal and ProposalSignature models.

WHY: The DAO pattern:
1. Separates data access from business logic
2. Enforces account-scoping for multi-tenancy
3. Keeps the race-sensitive writes (first view, expiry, signing) as
   single conditional UPDATE statements so two concurrent requests can
   never both win

HOW: Extends BaseDAO with proposal-specific queries:
- Token lookup for the recipient-facing page
- Account listing with template/status filters
- max(sow_number) for sequencing
- Compare-and-set status updates that report whether they applied
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_engine.dao.base import BaseDAO
from proposal_engine.models.proposal import Proposal, ProposalSignature, ProposalStatus
from proposal_engine.services.lifecycle import EDITABLE_STATUSES


class ProposalDAO(BaseDAO[Proposal]):
    """
    Data Access Object for Proposal model.

    WHAT: Provides CRUD and query operations for proposals.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize ProposalDAO.

        Args:
            session: Async database session
        """
        super().__init__(Proposal, session)

    async def get_by_token(self, token: str) -> Optional[Proposal]:
        """
        Get a proposal by its public token.

        WHY: Recipients address proposals by token only; the internal id
        is never exposed on the public surface.
        """
        result = await self.session.execute(
            select(Proposal).where(Proposal.token == token)
        )
        return result.scalar_one_or_none()

    async def list_for_account(
        self,
        account_id: int,
        is_template: Optional[bool] = None,
        status: Optional[ProposalStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        """
        List an account's proposals, newest first.

        Args:
            account_id: Owning account
            is_template: Filter to templates (True) or documents (False)
            status: Optional status filter
            skip: Pagination offset
            limit: Pagination limit
        """
        query = select(Proposal).where(Proposal.account_id == account_id)
        if is_template is not None:
            query = query.where(Proposal.is_template == is_template)
        if status is not None:
            query = query.where(Proposal.status == status)

        result = await self.session.execute(
            query.order_by(Proposal.created_at.desc(), Proposal.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_for_account(
        self,
        account_id: int,
        is_template: Optional[bool] = None,
        status: Optional[ProposalStatus] = None,
    ) -> int:
        filters: Dict[str, Any] = {"account_id": account_id}
        if is_template is not None:
            filters["is_template"] = is_template
        if status is not None:
            filters["status"] = status
        return await self.count(**filters)

    async def count_by_status(self, account_id: int) -> Dict[str, int]:
        """
        Count non-template proposals by status for an account.

        WHY: Dashboard statistics.
        """
        result = await self.session.execute(
            select(Proposal.status, func.count(Proposal.id))
            .where(
                Proposal.account_id == account_id,
                Proposal.is_template.is_(False),
            )
            .group_by(Proposal.status)
        )
        return {ProposalStatus(row[0]).value: row[1] for row in result.all()}

    async def max_sow_number(self, account_id: int) -> Optional[int]:
        """
        Highest SOW number issued to the account's non-template proposals.

        Returns:
            The maximum, or None when no numbered proposal exists
        """
        result = await self.session.execute(
            select(func.max(Proposal.sow_number)).where(
                Proposal.account_id == account_id,
                Proposal.is_template.is_(False),
            )
        )
        return result.scalar_one_or_none()

    async def list_expirable_ids(self, account_id: int, today: date) -> List[int]:
        """Ids of the account's non-terminal proposals whose expiration date has passed."""
        result = await self.session.execute(
            select(Proposal.id).where(
                Proposal.account_id == account_id,
                Proposal.is_template.is_(False),
                Proposal.expiration_date.is_not(None),
                Proposal.expiration_date <= today,
                Proposal.status.in_(list(EDITABLE_STATUSES)),
            )
        )
        return list(result.scalars().all())

    async def update_if_editable(self, proposal_id: int, **values: Any) -> bool:
        """
        Write content fields only while the proposal is still editable.

        WHY: A check-then-write in Python would let an edit land on a
        proposal that was signed in between. The status condition lives
        in the UPDATE itself.

        Returns:
            True if the row was updated
        """
        result = await self.session.execute(
            update(Proposal)
            .where(
                Proposal.id == proposal_id,
                Proposal.status.in_(list(EDITABLE_STATUSES)),
            )
            .values(updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def compare_and_set_status(
        self,
        proposal_id: int,
        expected: Iterable[ProposalStatus],
        new_status: ProposalStatus,
        **values: Any,
    ) -> bool:
        """
        Set status only if the row is still in one of the expected statuses.

        WHY: A single UPDATE ... WHERE status IN (...) is atomic, so of two
        concurrent requests exactly one sees rowcount == 1.

        Args:
            proposal_id: Proposal to update
            expected: Statuses the row must currently have
            new_status: Status to write
            **values: Extra columns to write in the same statement

        Returns:
            True if the row was updated
        """
        result = await self.session.execute(
            update(Proposal)
            .where(
                Proposal.id == proposal_id,
                Proposal.status.in_(list(expected)),
            )
            .values(status=new_status, updated_at=datetime.utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_viewed(self, proposal_id: int, viewed_at: datetime) -> bool:
        """
        Move a sent proposal to viewed, at most once.

        WHY: viewed_at IS NULL in the WHERE clause makes the first-view
        transition (and the notification that follows it) fire exactly
        once even when the recipient reloads concurrently.

        Returns:
            True if this call performed the transition
        """
        result = await self.session.execute(
            update(Proposal)
            .where(
                Proposal.id == proposal_id,
                Proposal.status == ProposalStatus.SENT,
                Proposal.viewed_at.is_(None),
            )
            .values(
                status=ProposalStatus.VIEWED,
                viewed_at=viewed_at,
                updated_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_expired(self, proposal_id: int, today: date) -> bool:
        """
        Expire a non-terminal proposal whose expiration date has passed.

        Returns:
            True if this call performed the transition
        """
        result = await self.session.execute(
            update(Proposal)
            .where(
                Proposal.id == proposal_id,
                Proposal.status.in_(list(EDITABLE_STATUSES)),
                Proposal.expiration_date.is_not(None),
                Proposal.expiration_date <= today,
            )
            .values(status=ProposalStatus.EXPIRED, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class ProposalSignatureDAO(BaseDAO[ProposalSignature]):
    """
    Data Access Object for ProposalSignature model.

    WHY: Signatures are insert-only. There is deliberately no update
    method; the unique proposal_id constraint rejects a second insert.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(ProposalSignature, session)

    async def get_for_proposal(self, proposal_id: int) -> Optional[ProposalSignature]:
        result = await self.session.execute(
            select(ProposalSignature).where(ProposalSignature.proposal_id == proposal_id)
        )
        return result.scalar_one_or_none()
