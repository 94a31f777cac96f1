"""
Slack Webhook Integration Service.

WHAT: Posts proposal milestone messages to a Slack channel.

WHY: Owners want to know the moment a client opens, signs or declines
a proposal without polling the dashboard.

HOW: Slack Incoming Webhooks with Block Kit formatting. Delivery is
best-effort; callers use send_message_safe so a Slack outage never
affects the proposal operation that triggered the message.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from proposal_engine.core.config import settings
from proposal_engine.core.exceptions import SlackNotificationError

logger = logging.getLogger(__name__)


class SlackService:
    """
    Sends messages to Slack via an incoming webhook.

    Attributes:
        webhook_url: Slack Incoming Webhook URL
        enabled: Whether Slack notifications are enabled
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        enabled: Optional[bool] = None,
        timeout: float = 10.0,
    ):
        """
        Initialize SlackService.

        WHY: Allows injection of config for testing while defaulting
        to environment settings in production.
        """
        self.webhook_url = webhook_url or settings.SLACK_WEBHOOK_URL
        self.enabled = enabled if enabled is not None else settings.SLACK_WEBHOOK_ENABLED
        self.timeout = timeout

    async def send_message(
        self,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        """
        Send a message to Slack.

        Args:
            text: Plain text message (also the fallback for blocks)
            blocks: Optional Block Kit blocks

        Returns:
            True if Slack accepted the message, False if delivery is
            disabled or unconfigured

        Raises:
            SlackNotificationError: If the webhook call fails
        """
        if not self.enabled:
            logger.debug("Slack notifications disabled, skipping message")
            return False

        if not self.webhook_url:
            logger.warning("Slack webhook URL not configured")
            return False

        payload: Dict[str, Any] = {"text": text}
        if blocks:
            payload["blocks"] = blocks

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Slack webhook timeout: {e}")
            raise SlackNotificationError(
                message="Slack webhook request timed out",
                timeout=self.timeout,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Slack webhook request error: {e}")
            raise SlackNotificationError(
                message="Failed to connect to Slack webhook",
                error=str(e),
            ) from e

        # Slack answers a literal "ok" on success
        if response.status_code == 200 and response.text == "ok":
            logger.info("Slack message sent")
            return True

        logger.error(f"Slack webhook returned error: {response.status_code} - {response.text}")
        raise SlackNotificationError(
            message="Slack webhook returned an error",
            response_status=response.status_code,
            response_text=response.text,
        )

    async def send_message_safe(
        self,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
    ) -> bool:
        """
        Send a message without raising.

        WHY: Notification failures must not undo or block the state
        change that triggered them.

        Returns:
            True if the message was sent, False otherwise
        """
        try:
            return await self.send_message(text, blocks)
        except SlackNotificationError as e:
            logger.error(f"Failed to send Slack notification: {e.message}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error sending Slack notification: {e}")
            return False


# ============================================================================
# Block Kit Builders
# ============================================================================


def build_header_block(text: str) -> Dict[str, Any]:
    return {
        "type": "header",
        "text": {
            "type": "plain_text",
            "text": text[:150],  # Slack header limit
            "emoji": True,
        },
    }


def build_section_block(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def build_fields_block(fields: List[Dict[str, str]]) -> Dict[str, Any]:
    """
    Two-column key/value layout.

    Args:
        fields: Dicts with 'label' and 'value' keys
    """
    return {
        "type": "section",
        "fields": [
            {"type": "mrkdwn", "text": f"*{f['label']}:*\n{f['value']}"}
            for f in fields
        ],
    }


def build_context_block(text: str) -> Dict[str, Any]:
    return {"type": "context", "elements": [{"type": "mrkdwn", "text": text}]}


def build_divider_block() -> Dict[str, Any]:
    return {"type": "divider"}


def build_actions_block(buttons: List[Dict[str, str]]) -> Dict[str, Any]:
    """
    Link buttons.

    Args:
        buttons: Dicts with 'text' and 'url' keys
    """
    return {
        "type": "actions",
        "elements": [
            {
                "type": "button",
                "text": {"type": "plain_text", "text": btn["text"], "emoji": True},
                "url": btn["url"],
                "action_id": f"button_{i}",
            }
            for i, btn in enumerate(buttons)
        ],
    }


# ============================================================================
# Proposal Messages
# ============================================================================

PROPOSAL_EVENT_HEADLINES: Dict[str, str] = {
    "sent": "Proposal Sent",
    "viewed": "Proposal Viewed",
    "accepted": "Proposal Signed",
    "declined": "Proposal Declined",
}


def build_proposal_event_message(
    event: str,
    title: str,
    sow_number: Optional[str],
    client_name: str,
    client_email: Optional[str],
    total: str,
    proposal_url: str,
    actor: Optional[str] = None,
) -> Tuple[str, List[Dict[str, Any]]]:
    """
    Build the Slack message for a proposal milestone.

    Args:
        event: One of sent, viewed, accepted, declined
        title: Proposal title
        sow_number: Formatted document number, if any
        client_name: Client display name
        client_email: Client email
        total: Pre-formatted grand total
        proposal_url: Owner-facing link to the proposal
        actor: Who performed the action (signer name, "owner" ...)

    Returns:
        Tuple of (fallback text, Block Kit blocks)
    """
    headline = PROPOSAL_EVENT_HEADLINES.get(event, f"Proposal {event.capitalize()}")
    label = f"SOW #{sow_number}" if sow_number else "Proposal"
    client = client_name or client_email or "Client"

    text = f"{headline}: {label} {title} ({client})"

    fields = [
        {"label": "Document", "value": label},
        {"label": "Client", "value": client},
        {"label": "Total", "value": total},
        {"label": "Status", "value": event.capitalize()},
    ]

    blocks = [
        build_header_block(headline),
        build_section_block(f"*{title}*"),
        build_fields_block(fields),
    ]
    if actor:
        blocks.append(build_context_block(f"By {actor}"))
    blocks.extend([
        build_divider_block(),
        build_actions_block([{"text": "View Proposal", "url": proposal_url}]),
    ])

    return text, blocks
