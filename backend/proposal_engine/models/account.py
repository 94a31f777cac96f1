"""
Account and SOW prefix models.

WHY: An account is the tenant that owns proposals. Its business identity
is snapshotted onto each proposal at creation time, and its style
settings drive the branded public page. Each account has at most one
SOW prefix, prepended to sequence numbers to form document numbers.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text, JSON
from sqlalchemy.orm import relationship

from proposal_engine.models.base import Base, TimestampMixin, PrimaryKeyMixin


class Account(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Account (tenant) owning proposals.

    Attributes:
        name: Business name shown on proposals
        email/phone/address: Business contact details (snapshotted)
        style_settings: Branding for the recipient-facing page
    """

    __tablename__ = "accounts"

    name = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    address = Column(Text, nullable=True)

    # WHY: JSON allows flexible branding without schema changes
    # (colors, fonts, logo, card transparency ...)
    style_settings = Column(JSON, nullable=False, default=dict, server_default="{}")

    sow_prefix = relationship(
        "SowPrefix",
        back_populates="account",
        uselist=False,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, name={self.name})>"


class SowPrefix(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Per-account SOW number prefix.

    WHY: The prefix can be chosen freely until the first non-template
    proposal is numbered with it. From then on `locked` is true and the
    record is immutable, so issued document numbers never change.

    Attributes:
        account_id: Owning account (unique, at most one prefix per account)
        prefix: 1-10 ASCII digits
        locked: One-way latch set once the prefix has been used
    """

    __tablename__ = "account_sow_prefixes"

    account_id = Column(
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    prefix = Column(String(10), nullable=False)
    locked = Column(Boolean, nullable=False, default=False)

    account = relationship("Account", back_populates="sow_prefix")

    def __repr__(self) -> str:
        return f"<SowPrefix(account_id={self.account_id}, prefix={self.prefix}, locked={self.locked})>"
