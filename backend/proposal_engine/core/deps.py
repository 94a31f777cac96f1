"""
FastAPI dependencies for owner identity.

WHY: Dependencies provide reusable identity resolution that can be
injected into route handlers. Owner routes require a valid token; the
public proposal page accepts an optional one so an owner previewing
their own proposal is never counted as the client viewing it.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_engine.core.auth import verify_token
from proposal_engine.core.exceptions import (
    AuthenticationError,
    TokenExpiredError,
    TokenInvalidError,
)
from proposal_engine.db.session import get_db
from proposal_engine.services.notification_service import NotificationService
from proposal_engine.services.proposal_service import ProposalService
from proposal_engine.services.signature_storage import SignatureStorage


# WHY: auto_error=False lets the optional variant accept anonymous callers
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Owner:
    """Authenticated account owner resolved from a bearer token."""

    user_id: int
    account_id: int

    def owns(self, account_id: int) -> bool:
        return self.account_id == account_id


def _owner_from_token(token: str) -> Owner:
    try:
        payload = verify_token(token)
    except (TokenExpiredError, TokenInvalidError) as e:
        # WHY: Re-raise as AuthenticationError for consistent API responses
        raise AuthenticationError(
            message=str(e),
            status_code=e.status_code,
        )

    user_id = payload.get("user_id")
    account_id = payload.get("account_id")
    if not user_id or not account_id:
        raise AuthenticationError(message="Invalid token: missing user_id or account_id")

    return Owner(user_id=int(user_id), account_id=int(account_id))


async def get_current_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Owner:
    """
    Resolve the authenticated owner from the Authorization header.

    Usage:
        @router.get("/proposals")
        async def list_proposals(owner: Owner = Depends(get_current_owner)):
            ...

    Raises:
        AuthenticationError: If the header is missing or the token is invalid
    """
    if credentials is None:
        raise AuthenticationError(message="Not authenticated")
    return _owner_from_token(credentials.credentials)


async def get_optional_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Owner]:
    """
    Resolve the owner if a valid token is present, else None.

    WHY: The public page must never fail because of a stale owner token;
    an invalid token simply makes the caller a recipient.
    """
    if credentials is None:
        return None
    try:
        return _owner_from_token(credentials.credentials)
    except AuthenticationError:
        return None


@lru_cache
def get_notification_service() -> NotificationService:
    """Process-wide notification service (overridden in tests)."""
    return NotificationService()


@lru_cache
def get_signature_storage() -> SignatureStorage:
    """Process-wide signature storage (overridden in tests)."""
    return SignatureStorage()


async def get_proposal_service(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
    signature_storage: SignatureStorage = Depends(get_signature_storage),
) -> ProposalService:
    """Request-scoped ProposalService bound to the request's session."""
    return ProposalService(
        db,
        notifications=notifications,
        signature_storage=signature_storage,
    )
