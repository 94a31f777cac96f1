"""
Document integrity hashing for signed proposals.

WHAT: Fingerprints the client-facing content of a proposal so an owner
can see whether it was edited after the client signed.

WHY: A signature is only meaningful for the content that was signed.
Storing a digest at signing time and recomputing it later shows an
owner "verified, unchanged since signing" or "modified since signing".
The check is advisory: it never blocks access or changes state.

HOW: Exactly seven fields are canonicalised (title, custom sections,
line items, terms, client first/last name, client email) into JSON with
sorted keys and normalised numbers, then hashed with SHA-256. Pricing
configuration, dates, status and the business snapshot are excluded on
purpose, so changing them does not invalidate a signature.
"""

import hashlib
import hmac
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DIGEST_FIELDS = (
    "title",
    "custom_sections",
    "line_items",
    "terms_content",
    "client_first_name",
    "client_last_name",
    "client_email",
)


class IntegrityStatus(str, Enum):
    """
    Outcome of comparing current content with the signed digest.

    - VERIFIED: unchanged since signing
    - MODIFIED: content differs from what was signed (advisory only)
    - UNKNOWN: no digest, or recomputation failed
    """

    VERIFIED = "verified"
    MODIFIED = "modified"
    UNKNOWN = "unknown"


def _get(proposal: Any, name: str) -> Any:
    if isinstance(proposal, dict):
        return proposal.get(name)
    return getattr(proposal, name, None)


def _normalize(value: Any) -> Any:
    """
    Make semantically equal values serialise identically.

    Numbers stay JSON numbers (100 == 100.0 == Decimal('100')) while
    strings stay strings, so "100" and 100 produce different digests.
    """
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
        if not number.is_finite():
            return str(value)
        number = number.normalize()
        if number == number.to_integral_value():
            return int(number)
        return float(number)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        return value
    return str(value)


def ordered_sections(sections: Optional[List[Any]]) -> List[Any]:
    """
    Sections in display order.

    Sections with a position come first, by position; sections without
    one follow in submission order. Equal positions keep submission order.
    """

    def sort_key(section: Any) -> tuple:
        position = _get(section, "position")
        return (position is None, position if position is not None else 0)

    return sorted(sections or [], key=sort_key)


def _as_mapping(value: Any) -> Any:
    if isinstance(value, dict) or value is None:
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return value


def canonical_document(proposal: Any) -> Dict[str, Any]:
    """Build the canonical structure the digest is computed over."""
    sections = [_as_mapping(s) for s in ordered_sections(_get(proposal, "custom_sections"))]
    line_items = [_as_mapping(i) for i in (_get(proposal, "line_items") or [])]
    return {
        "title": _get(proposal, "title") or "",
        "custom_sections": _normalize(sections),
        "line_items": _normalize(line_items),
        "terms_content": _get(proposal, "terms_content") or "",
        "client_first_name": _get(proposal, "client_first_name") or "",
        "client_last_name": _get(proposal, "client_last_name") or "",
        "client_email": _get(proposal, "client_email") or "",
    }


def compute_digest(proposal: Any) -> str:
    """
    Compute the SHA-256 content digest of a proposal.

    Args:
        proposal: Proposal model, mapping or any object exposing the digest fields

    Returns:
        64-character lowercase hex digest
    """
    payload = json.dumps(
        canonical_document(proposal),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify_digest(proposal: Any, stored_digest: Optional[str]) -> IntegrityStatus:
    """
    Compare current content against the digest stored at signing time.

    WHY: Display-only. Any failure degrades to UNKNOWN rather than
    claiming the document is either tampered or verified.
    """
    if not stored_digest:
        return IntegrityStatus.UNKNOWN

    try:
        current = compute_digest(proposal)
    except Exception as e:
        logger.warning(f"Could not recompute proposal digest: {e}")
        return IntegrityStatus.UNKNOWN

    if hmac.compare_digest(current.encode("utf-8"), stored_digest.encode("utf-8")):
        return IntegrityStatus.VERIFIED
    return IntegrityStatus.MODIFIED
