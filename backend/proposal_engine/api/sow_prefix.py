"""
SOW prefix API endpoints.

WHAT: Read and set the account's document number prefix.

WHY: Owners pick a prefix ("031") so their SOW numbers read 0311, 0312 ...
The prefix can change freely until the first numbered proposal uses it.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_engine.core.deps import Owner, get_current_owner
from proposal_engine.db.session import get_db
from proposal_engine.schemas.sow_prefix import SowPrefixResponse, SowPrefixUpdate
from proposal_engine.services.numbering import SowNumberingService, format_sow_number


router = APIRouter(prefix="/sow-prefix", tags=["sow-prefix"])


async def _prefix_response(numbering: SowNumberingService, account_id: int) -> SowPrefixResponse:
    record = await numbering.get_prefix(account_id)
    prefix = record.prefix if record else None
    return SowPrefixResponse(
        prefix=prefix,
        locked=bool(record and record.locked),
        next_sow_number=format_sow_number(prefix, await numbering.next_sequence(account_id)),
    )


@router.get(
    "",
    response_model=SowPrefixResponse,
    status_code=status.HTTP_200_OK,
    summary="Get SOW prefix",
)
async def get_sow_prefix(
    owner: Owner = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> SowPrefixResponse:
    return await _prefix_response(SowNumberingService(db), owner.account_id)


@router.put(
    "",
    response_model=SowPrefixResponse,
    status_code=status.HTTP_200_OK,
    summary="Set SOW prefix",
    description="Set the 1-10 digit document number prefix (fails once locked)",
)
async def set_sow_prefix(
    data: SowPrefixUpdate,
    owner: Owner = Depends(get_current_owner),
    db: AsyncSession = Depends(get_db),
) -> SowPrefixResponse:
    """
    Set the account's SOW prefix.

    Raises:
        InvalidPrefixError (400): If the prefix is not 1-10 digits
        PrefixLockedError (409): If the prefix is locked and differs
    """
    numbering = SowNumberingService(db)
    await numbering.set_prefix(owner.account_id, data.prefix)
    return await _prefix_response(numbering, owner.account_id)
