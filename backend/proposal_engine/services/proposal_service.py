"""
Proposal Service.

WHAT: Business logic for the proposal lifecycle: create, edit, send,
view, sign, decline, expire, and templates.

WHY: The service layer:
1. Keeps route handlers thin (owner and recipient surfaces share it)
2. Funnels every status change through the lifecycle state machine
3. Issues the race-sensitive writes as conditional UPDATEs so concurrent
   requests resolve to exactly one winner
4. Sends notifications only after the state change is written

HOW: One instance per request, bound to the request's AsyncSession.
The session is committed by get_db when the request succeeds; any
raised exception rolls the whole unit of work back, so a failed
operation leaves the proposal in its prior state.
"""

import logging
import secrets
import uuid
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from proposal_engine.core.config import settings
from proposal_engine.core.exceptions import (
    AlreadySignedError,
    BusinessRuleViolation,
    EditNotAllowedError,
    InvalidTransitionError,
    ProposalNotFoundError,
    ResourceNotFoundError,
    SignatureNotAllowedError,
    TermsNotAcceptedError,
)
from proposal_engine.dao.proposal import ProposalDAO, ProposalSignatureDAO
from proposal_engine.dao.sow_prefix import AccountDAO
from proposal_engine.models.account import Account
from proposal_engine.models.proposal import (
    Proposal,
    ProposalSignature,
    ProposalStatus,
    SectionType,
)
from proposal_engine.schemas.proposal import (
    CustomSection,
    FromTemplateRequest,
    LineItem,
    ProposalCreate,
    ProposalUpdate,
)
from proposal_engine.services.integrity import (
    IntegrityStatus,
    compute_digest,
    ordered_sections,
    verify_digest,
)
from proposal_engine.services.lifecycle import (
    EDITABLE_STATUSES,
    Trigger,
    allowed_sources,
    can_sign,
    is_editable,
    is_past_expiration,
    milestone_values,
    transition,
)
from proposal_engine.services.notification_service import NotificationService
from proposal_engine.services.numbering import SowNumberingService, format_sow_number
from proposal_engine.services.signature_storage import SignatureStorage

logger = logging.getLogger(__name__)

CLIENT_FIELDS = (
    "client_first_name",
    "client_last_name",
    "client_email",
    "client_company",
    "contact_id",
)

# Copied verbatim between proposals and templates
CONTENT_FIELDS = (
    "title",
    "terms_content",
    "show_pricing",
    "show_terms",
    "show_sow_number",
    "require_signature",
    "pricing_type",
    "discount_type",
    "discount_value",
    "tax_rate",
)

NON_NULLABLE_FIELDS = {
    "title",
    "proposal_date",
    "show_pricing",
    "show_terms",
    "show_sow_number",
    "require_signature",
    "pricing_type",
    "discount_type",
    "discount_value",
    "tax_rate",
}


def generate_token() -> str:
    """Unguessable public token for the recipient link."""
    return secrets.token_urlsafe(settings.PROPOSAL_TOKEN_BYTES)


def _new_id() -> str:
    return uuid.uuid4().hex


def _dump(value: Any) -> Dict[str, Any]:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return dict(value)


def normalize_sections(
    sections: Iterable[Any],
    fresh_ids: bool = False,
) -> List[Dict[str, Any]]:
    """
    Order sections and renumber positions densely from 0.

    Submitted positions only decide relative order; sections without a
    position go last in submission order, and ties keep submission order.
    """
    normalized = []
    for position, data in enumerate(ordered_sections([_dump(s) for s in sections or []])):
        section = CustomSection.model_validate(data).model_dump(mode="json")
        if fresh_ids or not section.get("id"):
            section["id"] = _new_id()
        section["position"] = position
        if section["type"] != SectionType.REVIEWS.value:
            section["reviews"] = []
        normalized.append(section)
    return normalized


def normalize_line_items(items: Iterable[Any], fresh_ids: bool = False) -> List[Dict[str, Any]]:
    normalized = []
    for item in items or []:
        data = LineItem.model_validate(_dump(item)).model_dump(mode="json")
        if fresh_ids or not data.get("id"):
            data["id"] = _new_id()
        normalized.append(data)
    return normalized


class ProposalService:
    """
    Proposal lifecycle orchestration.

    Attributes:
        session: Request-scoped database session
        proposal_dao: Proposal data access
        signature_dao: Signature inserts and lookups
        numbering: SOW number allocation and prefix management
        notifications: Milestone notifications (best-effort)
        signature_storage: Signature image storage
    """

    def __init__(
        self,
        session: AsyncSession,
        notifications: Optional[NotificationService] = None,
        signature_storage: Optional[SignatureStorage] = None,
    ):
        self.session = session
        self.proposal_dao = ProposalDAO(session)
        self.signature_dao = ProposalSignatureDAO(session)
        self.account_dao = AccountDAO(session)
        self.numbering = SowNumberingService(session)
        self.notifications = notifications or NotificationService()
        self._signature_storage = signature_storage

    @property
    def signature_storage(self) -> SignatureStorage:
        # WHY: built on first use so read-only requests never create an S3 client
        if self._signature_storage is None:
            self._signature_storage = SignatureStorage()
        return self._signature_storage

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_account(self, account_id: int) -> Account:
        account = await self.account_dao.get_by_id(account_id)
        if account is None:
            raise ResourceNotFoundError(
                message="Account not found",
                resource_type="Account",
                resource_id=account_id,
            )
        return account

    async def _get_owned(self, account_id: int, proposal_id: int) -> Proposal:
        proposal = await self.proposal_dao.get_by_id_and_account(proposal_id, account_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id=proposal_id)
        await self._expire_if_due(proposal)
        return proposal

    async def _get_public(self, token: str) -> Proposal:
        proposal = await self.proposal_dao.get_by_token(token)
        if proposal is None or proposal.is_template:
            raise ProposalNotFoundError()
        await self._expire_if_due(proposal)
        return proposal

    async def _expire_if_due(self, proposal: Proposal, today: Optional[date] = None) -> None:
        """Apply the lazy EXPIRE transition when the expiration date has passed."""
        today = today or date.today()
        if proposal.is_template or ProposalStatus(proposal.status) not in EDITABLE_STATUSES:
            return
        if not is_past_expiration(proposal.expiration_date, today):
            return

        if await self.proposal_dao.mark_expired(proposal.id, today):
            logger.info(
                f"Proposal {proposal.id} expired "
                f"(was {ProposalStatus(proposal.status).value}, expiration {proposal.expiration_date})"
            )
        await self.session.refresh(proposal)

    async def _change_status(
        self,
        proposal: Proposal,
        trigger: Trigger,
        target: Optional[ProposalStatus] = None,
        now: Optional[datetime] = None,
    ) -> ProposalStatus:
        """
        Validate a transition and write it with a compare-and-set.

        The write succeeds while the stored status is any source the
        trigger allows, so a concurrent first view does not block signing.

        Returns:
            The previous status

        Raises:
            InvalidTransitionError: If the transition is not allowed, or the
                status changed since the proposal was read
        """
        previous = ProposalStatus(proposal.status)
        new_status = transition(previous, trigger, target)
        values = milestone_values(proposal, new_status, now)

        applied = await self.proposal_dao.compare_and_set_status(
            proposal.id, allowed_sources(trigger), new_status, **values
        )
        await self.session.refresh(proposal)
        if not applied:
            raise InvalidTransitionError(
                message="Proposal status changed while the request was in progress",
                current_status=ProposalStatus(proposal.status).value,
                trigger=Trigger(trigger).value,
            )

        logger.info(
            f"Proposal {proposal.id} {previous.value} -> {new_status.value} ({Trigger(trigger).value})"
        )
        return previous

    async def account_style(self, account_id: int) -> Dict[str, Any]:
        """Branding settings for the recipient page."""
        account = await self.account_dao.get_by_id(account_id)
        if account is None:
            return {}
        return dict(account.style_settings or {})

    async def formatted_sow_number(self, proposal: Proposal) -> Optional[str]:
        if proposal.sow_number is None:
            return None
        prefix = await self.numbering.get_prefix(proposal.account_id)
        return format_sow_number(prefix.prefix if prefix else None, proposal.sow_number)

    def _business_snapshot(self, account: Account) -> Dict[str, Any]:
        return {
            "business_name": account.name,
            "business_email": account.email,
            "business_phone": account.phone,
            "business_address": account.address,
        }

    async def _insert(self, proposal: Proposal) -> Proposal:
        if proposal.is_template:
            proposal.sow_number = None
            self.session.add(proposal)
            await self.session.flush()
        else:
            await self.numbering.insert_numbered(proposal)
        await self.session.refresh(proposal)
        return proposal

    # =========================================================================
    # Owner Operations
    # =========================================================================

    async def create_proposal(self, account_id: int, data: ProposalCreate) -> Proposal:
        """
        Create a draft proposal or template.

        The business identity is snapshotted from the account so later
        account edits never rewrite documents already created.

        Raises:
            ResourceNotFoundError: If the account does not exist
            InvalidPrefixError: If a supplied prefix is not 1-10 digits
            SowNumberAllocationError: If no number could be allocated
        """
        account = await self._get_account(account_id)

        if data.sow_prefix is not None:
            await self.numbering.ensure_prefix(account_id, data.sow_prefix)

        values = data.model_dump(exclude={"sow_prefix", "custom_sections", "line_items"})
        if values.get("proposal_date") is None:
            values["proposal_date"] = date.today()
        if data.is_template:
            # Templates never carry client identity
            for field in CLIENT_FIELDS:
                values[field] = None
        else:
            values["template_name"] = None

        proposal = Proposal(
            account_id=account_id,
            token=generate_token(),
            status=ProposalStatus.DRAFT,
            custom_sections=normalize_sections(data.custom_sections),
            line_items=normalize_line_items(data.line_items),
            **self._business_snapshot(account),
            **values,
        )
        await self._insert(proposal)

        logger.info(
            f"Created {'template' if proposal.is_template else 'proposal'} {proposal.id} "
            f"for account {account_id} (sow_number={proposal.sow_number})"
        )
        return proposal

    async def update_proposal(
        self,
        account_id: int,
        proposal_id: int,
        data: ProposalUpdate,
    ) -> Proposal:
        """
        Update proposal content.

        Raises:
            ProposalNotFoundError: If the proposal is not the account's
            EditNotAllowedError: If the proposal is accepted, declined or expired
        """
        proposal = await self._get_owned(account_id, proposal_id)
        if not is_editable(proposal.status):
            raise EditNotAllowedError(
                proposal_id=proposal.id,
                status=ProposalStatus(proposal.status).value,
            )

        updates = data.model_dump(exclude_unset=True, exclude={"custom_sections", "line_items"})
        updates = {
            field: value
            for field, value in updates.items()
            if value is not None or field not in NON_NULLABLE_FIELDS
        }
        if proposal.is_template:
            for field in CLIENT_FIELDS:
                updates.pop(field, None)
        else:
            updates.pop("template_name", None)

        if data.custom_sections is not None:
            updates["custom_sections"] = normalize_sections(data.custom_sections)
        if data.line_items is not None:
            updates["line_items"] = normalize_line_items(data.line_items)

        if not updates:
            return proposal

        if not await self.proposal_dao.update_if_editable(proposal.id, **updates):
            await self.session.refresh(proposal)
            raise EditNotAllowedError(
                proposal_id=proposal.id,
                status=ProposalStatus(proposal.status).value,
            )

        await self.session.refresh(proposal)
        logger.info(f"Updated proposal {proposal.id} fields: {sorted(updates)}")
        return proposal

    async def get_proposal(self, account_id: int, proposal_id: int) -> Proposal:
        return await self._get_owned(account_id, proposal_id)

    async def list_proposals(
        self,
        account_id: int,
        is_template: Optional[bool] = None,
        status: Optional[ProposalStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[Proposal], int]:
        """
        List the account's proposals, expiring any that have lapsed first.

        Returns:
            Tuple of (page of proposals, total matching)
        """
        await self.expire_due_proposals(account_id)
        proposals = await self.proposal_dao.list_for_account(
            account_id, is_template=is_template, status=status, skip=skip, limit=limit
        )
        total = await self.proposal_dao.count_for_account(
            account_id, is_template=is_template, status=status
        )
        return proposals, total

    async def expire_due_proposals(self, account_id: int, today: Optional[date] = None) -> int:
        """Expire every lapsed non-terminal proposal of an account. Returns how many."""
        today = today or date.today()
        expired = 0
        for proposal_id in await self.proposal_dao.list_expirable_ids(account_id, today):
            if await self.proposal_dao.mark_expired(proposal_id, today):
                expired += 1
        if expired:
            logger.info(f"Expired {expired} proposal(s) for account {account_id}")
        return expired

    async def get_stats(self, account_id: int) -> Dict[str, Any]:
        await self.expire_due_proposals(account_id)
        by_status = await self.proposal_dao.count_by_status(account_id)
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "pending_count": sum(
                by_status.get(s.value, 0)
                for s in (ProposalStatus.SENT, ProposalStatus.VIEWED, ProposalStatus.ON_HOLD)
            ),
            "template_count": await self.proposal_dao.count_for_account(account_id, is_template=True),
        }

    async def delete_proposal(self, account_id: int, proposal_id: int) -> None:
        """
        Delete an unsigned draft or a template.

        Raises:
            ProposalNotFoundError: If the proposal is not the account's
            BusinessRuleViolation: If the proposal was sent or signed
        """
        proposal = await self._get_owned(account_id, proposal_id)
        deletable = proposal.signature is None and (
            proposal.is_template or ProposalStatus(proposal.status) == ProposalStatus.DRAFT
        )
        if not deletable:
            raise BusinessRuleViolation(
                message="Only unsigned drafts and templates can be deleted",
                proposal_id=proposal.id,
                status=ProposalStatus(proposal.status).value,
            )

        await self.session.delete(proposal)
        await self.session.flush()
        logger.info(f"Deleted proposal {proposal_id} for account {account_id}")

    async def send_proposal(self, account_id: int, proposal_id: int) -> Proposal:
        """
        Mark a proposal as sent to the client.

        Raises:
            InvalidTransitionError: If the proposal is a template or terminal
        """
        proposal = await self._get_owned(account_id, proposal_id)
        if proposal.is_template:
            raise InvalidTransitionError(message="Templates cannot be sent", proposal_id=proposal.id)

        await self._change_status(proposal, Trigger.SEND)
        await self.notifications.notify_proposal_sent(
            proposal, await self.formatted_sow_number(proposal)
        )
        return proposal

    async def set_status(
        self,
        account_id: int,
        proposal_id: int,
        target: ProposalStatus,
    ) -> Proposal:
        """
        Owner's explicit status change.

        Raises:
            InvalidTransitionError: If the target is viewed/expired, the
                proposal is terminal, or it is a template
        """
        proposal = await self._get_owned(account_id, proposal_id)
        if proposal.is_template:
            raise InvalidTransitionError(
                message="Templates have no lifecycle status",
                proposal_id=proposal.id,
            )

        previous = await self._change_status(proposal, Trigger.SET_STATUS, target)

        sow_number = await self.formatted_sow_number(proposal)
        new_status = ProposalStatus(proposal.status)
        if new_status == ProposalStatus.SENT and previous != ProposalStatus.SENT:
            await self.notifications.notify_proposal_sent(proposal, sow_number)
        elif new_status == ProposalStatus.DECLINED:
            await self.notifications.notify_proposal_declined(proposal, "owner", sow_number)
        return proposal

    async def decline_as_owner(self, account_id: int, proposal_id: int) -> Proposal:
        proposal = await self._get_owned(account_id, proposal_id)
        return await self._decline(proposal, declined_by="owner")

    async def verify_integrity(self, account_id: int, proposal_id: int) -> IntegrityStatus:
        """
        Compare current content with the digest captured at signing.

        Advisory only: never raises for a mismatch and never changes state.
        """
        proposal = await self._get_owned(account_id, proposal_id)
        return self.integrity_status(proposal)

    def integrity_status(self, proposal: Proposal) -> IntegrityStatus:
        stored = proposal.signature.document_hash if proposal.signature is not None else None
        result = verify_digest(proposal, stored)
        if result == IntegrityStatus.MODIFIED:
            logger.warning(f"Proposal {proposal.id} content differs from its signed digest")
        return result

    async def save_as_template(
        self,
        account_id: int,
        proposal_id: int,
        template_name: str,
    ) -> Proposal:
        """
        Copy a proposal's content into a new template.

        The template gets no number, no client fields and fresh section
        and line item ids; the source proposal is untouched.
        """
        source = await self._get_owned(account_id, proposal_id)
        account = await self._get_account(account_id)

        template = Proposal(
            account_id=account_id,
            token=generate_token(),
            is_template=True,
            template_name=template_name,
            status=ProposalStatus.DRAFT,
            proposal_date=date.today(),
            custom_sections=normalize_sections(source.custom_sections, fresh_ids=True),
            line_items=normalize_line_items(source.line_items, fresh_ids=True),
            **self._business_snapshot(account),
            **{field: getattr(source, field) for field in CONTENT_FIELDS},
        )
        await self._insert(template)

        logger.info(f"Saved proposal {source.id} as template {template.id} ({template_name!r})")
        return template

    async def create_from_template(
        self,
        account_id: int,
        template_id: int,
        overrides: Optional[FromTemplateRequest] = None,
    ) -> Proposal:
        """
        Instantiate a numbered draft from a template.

        Raises:
            ProposalNotFoundError: If the template is not the account's
            BusinessRuleViolation: If the id is not a template
        """
        template = await self._get_owned(account_id, template_id)
        if not template.is_template:
            raise BusinessRuleViolation(
                message="Proposal is not a template",
                proposal_id=template.id,
            )
        account = await self._get_account(account_id)
        overrides = overrides or FromTemplateRequest()

        if overrides.sow_prefix is not None:
            await self.numbering.ensure_prefix(account_id, overrides.sow_prefix)

        values = {field: getattr(template, field) for field in CONTENT_FIELDS}
        values.update(overrides.model_dump(exclude={"sow_prefix"}, exclude_none=True))
        values.setdefault("proposal_date", date.today())

        proposal = Proposal(
            account_id=account_id,
            token=generate_token(),
            is_template=False,
            status=ProposalStatus.DRAFT,
            custom_sections=normalize_sections(template.custom_sections, fresh_ids=True),
            line_items=normalize_line_items(template.line_items, fresh_ids=True),
            **self._business_snapshot(account),
            **values,
        )
        await self._insert(proposal)

        logger.info(f"Created proposal {proposal.id} from template {template.id}")
        return proposal

    # =========================================================================
    # Recipient Operations
    # =========================================================================

    async def record_public_view(
        self,
        token: str,
        viewer_account_id: Optional[int] = None,
    ) -> Tuple[Proposal, bool]:
        """
        Load a proposal for the recipient page and record the first view.

        WHY: The sent -> viewed move is a single conditional UPDATE on
        viewed_at IS NULL, so concurrent reloads produce exactly one
        transition and one notification. Owner previews never count.

        Args:
            token: Public proposal token
            viewer_account_id: Account of an authenticated caller, if any

        Returns:
            Tuple of (proposal, is_owner_preview)

        Raises:
            ProposalNotFoundError: For unknown tokens and templates
        """
        proposal = await self._get_public(token)
        is_owner = viewer_account_id is not None and viewer_account_id == proposal.account_id

        if (
            not is_owner
            and ProposalStatus(proposal.status) == ProposalStatus.SENT
            and proposal.viewed_at is None
        ):
            first_view = await self.proposal_dao.mark_viewed(proposal.id, datetime.utcnow())
            await self.session.refresh(proposal)
            if first_view:
                logger.info(f"Proposal {proposal.id} sent -> viewed (view)")
                await self.notifications.notify_proposal_viewed(
                    proposal, await self.formatted_sow_number(proposal)
                )

        return proposal, is_owner

    async def sign_proposal(
        self,
        token: str,
        signer_name: str,
        signer_email: str,
        signature_image: str,
        accepted_terms: bool,
    ) -> ProposalSignature:
        """
        Record the recipient's signature and accept the proposal.

        HOW:
        1. Check terms, signature requirement and status
        2. Store the signature image
        3. Fingerprint the content being signed
        4. Insert the signature; the unique proposal_id constraint turns a
           concurrent duplicate into AlreadySignedError
        5. Move the proposal to accepted and notify

        If step 4 or the status write fails, the stored image is deleted.

        Raises:
            TermsNotAcceptedError: If terms were not accepted
            ProposalNotFoundError: For unknown tokens and templates
            AlreadySignedError: If a signature already exists
            SignatureNotAllowedError: If the proposal does not take signatures
            InvalidTransitionError: If the status does not allow signing
            SignatureImageError: If the image is invalid
        """
        if not accepted_terms:
            raise TermsNotAcceptedError()

        proposal = await self._get_public(token)

        if await self.signature_dao.get_for_proposal(proposal.id) is not None:
            raise AlreadySignedError(proposal_id=proposal.id)
        if not proposal.require_signature:
            raise SignatureNotAllowedError(
                message="This proposal does not require a signature",
                proposal_id=proposal.id,
            )
        # Validates the status before anything is stored
        transition(proposal.status, Trigger.SIGN)
        if not can_sign(proposal.status, proposal.require_signature, False):
            raise SignatureNotAllowedError(proposal_id=proposal.id)

        image_ref = await self.signature_storage.store(
            proposal.account_id, proposal.id, signature_image
        )
        signed_at = datetime.utcnow()

        try:
            try:
                async with self.session.begin_nested():
                    signature = await self.signature_dao.create(
                        proposal_id=proposal.id,
                        signer_name=signer_name,
                        signer_email=signer_email,
                        signature_image_url=image_ref,
                        document_hash=compute_digest(proposal),
                        accepted_terms=True,
                        signed_at=signed_at,
                    )
            except IntegrityError as e:
                logger.warning(f"Concurrent signature rejected for proposal {proposal.id}")
                raise AlreadySignedError(proposal_id=proposal.id) from e

            await self._change_status(proposal, Trigger.SIGN, now=signed_at)
        except Exception:
            # The signature row will not persist; drop the uploaded image with it
            await self.signature_storage.discard(image_ref)
            raise

        logger.info(f"Proposal {proposal.id} signed by {signer_email}")

        await self.notifications.notify_proposal_accepted(
            proposal, signer_name, await self.formatted_sow_number(proposal)
        )
        return signature

    async def decline_as_recipient(self, token: str) -> Proposal:
        proposal = await self._get_public(token)
        return await self._decline(proposal, declined_by="client")

    async def _decline(self, proposal: Proposal, declined_by: str) -> Proposal:
        if proposal.is_template:
            raise InvalidTransitionError(message="Templates cannot be declined", proposal_id=proposal.id)

        await self._change_status(proposal, Trigger.DECLINE)
        await self.notifications.notify_proposal_declined(
            proposal, declined_by, await self.formatted_sow_number(proposal)
        )
        return proposal
