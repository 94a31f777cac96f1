"""
Notification Service for proposal milestones.

WHAT: Tells the owning team when a proposal is sent, viewed, signed or
declined.

WHY: Keeps notification formatting out of the lifecycle code, so a new
channel (email, SMS) only touches this module.

HOW: Event methods take the Proposal, build a Slack message and deliver
it with the fire-and-forget send. They never raise: the lifecycle
change that triggered a notification is already written when it is sent.
"""

import logging
from typing import Optional

from proposal_engine.core.config import settings
from proposal_engine.models.proposal import Proposal
from proposal_engine.services.pricing import format_money, totals_for_proposal
from proposal_engine.services.slack_service import (
    SlackService,
    build_proposal_event_message,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Dispatches proposal milestone notifications.

    Attributes:
        slack_service: Service for Slack webhook notifications
        base_url: Base URL for generating action links
    """

    def __init__(
        self,
        slack_service: Optional[SlackService] = None,
        base_url: Optional[str] = None,
    ):
        """
        Initialize NotificationService.

        WHY: Allows dependency injection for testing while defaulting
        to production services.
        """
        self.slack_service = slack_service or SlackService()
        self.base_url = base_url or settings.FRONTEND_URL

    def _build_proposal_url(self, proposal_id: int) -> str:
        return f"{self.base_url}/proposals/{proposal_id}"

    def _format_total(self, proposal: Proposal) -> str:
        totals = totals_for_proposal(proposal)
        if totals.is_mixed:
            return (
                f"{format_money(totals.grand_total_one_time)} + "
                f"{format_money(totals.grand_total_monthly)}/mo"
            )
        if totals.grand_total_monthly and not totals.grand_total_one_time:
            return f"{format_money(totals.grand_total_monthly)}/mo"
        return format_money(totals.grand_total_one_time)

    async def _notify(
        self,
        event: str,
        proposal: Proposal,
        sow_number: Optional[str],
        actor: Optional[str] = None,
    ) -> bool:
        logger.info(f"Sending proposal {event} notification for proposal #{proposal.id}")
        try:
            text, blocks = build_proposal_event_message(
                event=event,
                title=proposal.title,
                sow_number=sow_number,
                client_name=proposal.client_name,
                client_email=proposal.client_email,
                total=self._format_total(proposal),
                proposal_url=self._build_proposal_url(proposal.id),
                actor=actor,
            )
        except Exception as e:
            # WHY: a malformed line item must not surface as a failed send/sign
            logger.error(f"Could not build {event} notification for proposal #{proposal.id}: {e}")
            return False

        return await self.slack_service.send_message_safe(text, blocks)

    async def notify_proposal_sent(self, proposal: Proposal, sow_number: Optional[str] = None) -> bool:
        return await self._notify("sent", proposal, sow_number)

    async def notify_proposal_viewed(self, proposal: Proposal, sow_number: Optional[str] = None) -> bool:
        """
        Client opened the public link for the first time.

        Only ever called after the sent -> viewed update affected a row,
        so reloads never produce a second message.
        """
        return await self._notify("viewed", proposal, sow_number)

    async def notify_proposal_accepted(
        self,
        proposal: Proposal,
        signer_name: str,
        sow_number: Optional[str] = None,
    ) -> bool:
        return await self._notify("accepted", proposal, sow_number, actor=signer_name)

    async def notify_proposal_declined(
        self,
        proposal: Proposal,
        declined_by: str,
        sow_number: Optional[str] = None,
    ) -> bool:
        return await self._notify("declined", proposal, sow_number, actor=declined_by)
