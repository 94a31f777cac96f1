"""
Proposal (Statement of Work) models.

WHAT: SQLAlchemy models for proposals and their client signatures.

WHY: Proposals are the contract documents owners send to clients:
1. Define scope via ordered custom sections
2. Specify pricing via line items, discount and tax
3. Track the client-facing lifecycle (sent, viewed, accepted ...)
4. Carry a tamper-evident signature once the client signs

HOW: Uses SQLAlchemy 2.0 with:
- Status enum for the lifecycle state machine
- JSON(B) columns for the owned section and line item collections,
  always replaced as a unit with the parent
- A unique (account_id, sow_number) constraint so concurrent creates
  can never share a document number
- A unique proposal_id on signatures so at most one can ever exist
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List, Dict, Any
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, Mapped

from proposal_engine.models.base import Base, JSONType


class ProposalStatus(str, Enum):
    """
    Proposal lifecycle status.

    WHY: Tracks a proposal from draft through the client's decision:
    - DRAFT: Being created/edited, not visible to client
    - SENT: Shared with the client
    - VIEWED: Client opened the public link (system-set, once)
    - ON_HOLD: Paused by the owner
    - ACCEPTED: Client signed (terminal)
    - DECLINED: Client or owner declined (terminal)
    - EXPIRED: Expiration date passed (system-set, terminal)
    """

    DRAFT = "draft"
    SENT = "sent"
    VIEWED = "viewed"
    ON_HOLD = "on_hold"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class PricingType(str, Enum):
    """Billing cadence of a line item."""

    FIXED = "fixed"
    HOURLY = "hourly"
    MONTHLY = "monthly"


class DiscountType(str, Enum):
    """How `discount_value` is interpreted."""

    NONE = "none"
    PERCENTAGE = "percentage"
    FLAT = "flat"


class SectionType(str, Enum):
    """Custom section discriminator."""

    TEXT = "text"
    REVIEWS = "reviews"


def _enum_column(enum_cls: type, name: str) -> SQLEnum:
    # WHY: values_callable stores the lowercase value, not the member name
    return SQLEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda enum: [e.value for e in enum],
    )


class Proposal(Base):
    """
    Proposal / SOW / contract document.

    Attributes:
        id: Internal primary key (never exposed to recipients)
        token: Unguessable public token for the recipient link
        account_id: Owning account
        is_template: Templates are never numbered and skip client fields
        template_name: Display name when saved as a template
        title, proposal_date, expiration_date: Document header
        client_*: Client identity (contact_id links a contact record)
        business_*: Business identity snapshot taken at creation time
        custom_sections: Ordered sections [{id, title, subtitle, body, position, type, reviews}]
        line_items: [{id, description, quantity, unit_price, pricing_type}]
        terms_content: Terms and conditions text
        show_pricing/show_terms/show_sow_number/require_signature: Visibility flags
        pricing_type: Default pricing type for items without one
        discount_type/discount_value/tax_rate: Pricing configuration
        sow_number: Sequence number, assigned once at creation (non-templates)
        status: Lifecycle status
        sent_at/viewed_at/accepted_at/declined_at: Milestones, each set once
    """

    __tablename__ = "proposals"
    __table_args__ = (
        UniqueConstraint("account_id", "sow_number", name="uq_proposals_account_sow_number"),
    )

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)

    token: Mapped[str] = Column(
        String(64),
        nullable=False,
        unique=True,
        index=True,
        comment="Public recipient token",
    )
    account_id: Mapped[int] = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Classification
    is_template: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    template_name: Mapped[Optional[str]] = Column(String(255), nullable=True)

    # Header
    title: Mapped[str] = Column(String(255), nullable=False)
    proposal_date: Mapped[date] = Column(Date, nullable=False, default=date.today)
    expiration_date: Mapped[Optional[date]] = Column(Date, nullable=True)

    # Client identity
    client_first_name: Mapped[Optional[str]] = Column(String(255), nullable=True)
    client_last_name: Mapped[Optional[str]] = Column(String(255), nullable=True)
    client_email: Mapped[Optional[str]] = Column(String(255), nullable=True)
    client_company: Mapped[Optional[str]] = Column(String(255), nullable=True)
    contact_id: Mapped[Optional[str]] = Column(String(64), nullable=True)

    # Business identity snapshot
    # WHY: Captured at creation so later account edits never rewrite sent documents
    business_name: Mapped[Optional[str]] = Column(String(255), nullable=True)
    business_email: Mapped[Optional[str]] = Column(String(255), nullable=True)
    business_phone: Mapped[Optional[str]] = Column(String(64), nullable=True)
    business_address: Mapped[Optional[str]] = Column(Text, nullable=True)

    # Owned collections
    custom_sections: Mapped[List[Dict[str, Any]]] = Column(
        JSONType, nullable=False, default=list
    )
    line_items: Mapped[List[Dict[str, Any]]] = Column(
        JSONType, nullable=False, default=list
    )
    terms_content: Mapped[Optional[str]] = Column(Text, nullable=True)

    # Visibility flags
    show_pricing: Mapped[bool] = Column(Boolean, nullable=False, default=True)
    show_terms: Mapped[bool] = Column(Boolean, nullable=False, default=False)
    show_sow_number: Mapped[bool] = Column(Boolean, nullable=False, default=True)
    require_signature: Mapped[bool] = Column(Boolean, nullable=False, default=True)

    # Pricing configuration
    pricing_type: Mapped[PricingType] = Column(
        _enum_column(PricingType, "pricingtype"),
        nullable=False,
        default=PricingType.FIXED,
    )
    discount_type: Mapped[DiscountType] = Column(
        _enum_column(DiscountType, "discounttype"),
        nullable=False,
        default=DiscountType.NONE,
    )
    discount_value: Mapped[Decimal] = Column(Numeric(12, 2), nullable=False, default=0)
    tax_rate: Mapped[Decimal] = Column(Numeric(6, 3), nullable=False, default=0)

    # Numbering
    sow_number: Mapped[Optional[int]] = Column(Integer, nullable=True)

    # Lifecycle
    status: Mapped[ProposalStatus] = Column(
        _enum_column(ProposalStatus, "proposalstatus"),
        nullable=False,
        default=ProposalStatus.DRAFT,
        index=True,
    )
    sent_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    viewed_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)
    declined_at: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)

    created_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    # WHY: selectin so the signature is available without async lazy loads
    signature: Mapped[Optional["ProposalSignature"]] = relationship(
        "ProposalSignature",
        back_populates="proposal",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Proposal(id={self.id}, title={self.title}, status={self.status})>"

    @property
    def client_name(self) -> str:
        return " ".join(p for p in (self.client_first_name, self.client_last_name) if p)


class ProposalSignature(Base):
    """
    Client signature on a proposal.

    WHY: Created exactly once per proposal and immutable afterwards. The
    document_hash fingerprints the signed content so owners can later see
    whether the proposal was edited after signing.

    Attributes:
        proposal_id: Signed proposal (unique)
        signer_name/signer_email: Signer identity
        signature_image_url: Reference returned by image storage
        document_hash: SHA-256 hex digest of the signed content
        accepted_terms: Always true (records without it are never created)
        signed_at: Signing time
    """

    __tablename__ = "proposal_signatures"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    proposal_id: Mapped[int] = Column(
        Integer,
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    signer_name: Mapped[str] = Column(String(255), nullable=False)
    signer_email: Mapped[str] = Column(String(255), nullable=False)
    signature_image_url: Mapped[str] = Column(Text, nullable=False)
    document_hash: Mapped[str] = Column(String(64), nullable=False)
    accepted_terms: Mapped[bool] = Column(Boolean, nullable=False, default=True)
    signed_at: Mapped[datetime] = Column(DateTime, nullable=False, default=datetime.utcnow)

    proposal: Mapped["Proposal"] = relationship("Proposal", back_populates="signature")

    def __repr__(self) -> str:
        return f"<ProposalSignature(proposal_id={self.proposal_id}, signer={self.signer_email})>"
