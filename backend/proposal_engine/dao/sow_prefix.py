"""
SOW prefix and account Data Access Objects.

WHY: The prefix record is the one piece of per-account numbering state.
Its writes are conditional UPDATEs on `locked = false`, so once the latch
is set every later attempt to change the prefix fails without partial
effect, however many run concurrently.
"""

from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_engine.dao.base import BaseDAO
from proposal_engine.models.account import Account, SowPrefix


class SowPrefixDAO(BaseDAO[SowPrefix]):
    """Data Access Object for SowPrefix model."""

    def __init__(self, session: AsyncSession):
        super().__init__(SowPrefix, session)

    async def get_for_account(self, account_id: int) -> Optional[SowPrefix]:
        result = await self.session.execute(
            select(SowPrefix).where(SowPrefix.account_id == account_id)
        )
        return result.scalar_one_or_none()

    async def update_if_unlocked(self, account_id: int, prefix: str) -> bool:
        """
        Change the prefix unless it is locked.

        Returns:
            True if the prefix was changed
        """
        result = await self.session.execute(
            update(SowPrefix)
            .where(
                SowPrefix.account_id == account_id,
                SowPrefix.locked.is_(False),
            )
            .values(prefix=prefix)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def lock(self, account_id: int) -> bool:
        """
        Set the one-way lock.

        Returns:
            True if this call locked the prefix (False if absent or already locked)
        """
        result = await self.session.execute(
            update(SowPrefix)
            .where(
                SowPrefix.account_id == account_id,
                SowPrefix.locked.is_(False),
            )
            .values(locked=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class AccountDAO(BaseDAO[Account]):
    """Data Access Object for Account model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Account, session)
