"""
Pydantic schemas for proposal endpoints.

WHAT: Request/response schemas for the owner and recipient proposal APIs.

WHY: Schemas define the API contracts:
1. Validate incoming sections, line items and pricing configuration
2. Document the API for OpenAPI/Swagger
3. Control which fields each audience sees (recipients never see the
   internal id, hidden pricing or hidden terms)

HOW: Pydantic v2 models. Money leaves the API as floats rounded to cents;
all arithmetic happens in the pricing engine on Decimals.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from proposal_engine.models.proposal import (
    DiscountType,
    PricingType,
    ProposalStatus,
    SectionType,
)
from proposal_engine.services.integrity import IntegrityStatus
from proposal_engine.services.pricing import PricingTotals, round_currency


# ============================================================================
# Content
# ============================================================================


class LineItem(BaseModel):
    """
    Proposal line item.

    WHY: Quantity and unit price are deliberately unconstrained; credits
    are entered as negative lines.
    """

    id: str | None = Field(default=None, max_length=64, description="Stable item id")
    description: str = Field(default="", max_length=1000, description="What is being billed")
    quantity: float = Field(default=1, description="Quantity, hours or months")
    unit_price: float = Field(default=0, description="Price per unit")
    pricing_type: PricingType | None = Field(
        default=None,
        description="fixed, hourly or monthly (defaults to the proposal pricing type)",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "description": "Workflow development",
                "quantity": 24,
                "unit_price": 150.00,
                "pricing_type": "hourly",
            }
        }
    )


class ReviewExcerpt(BaseModel):
    """Client testimonial shown in a reviews section."""

    author: str = Field(..., min_length=1, max_length=255)
    text: str = Field(..., min_length=1, max_length=5000)
    rating: int | None = Field(default=None, ge=1, le=5)
    source: str | None = Field(default=None, max_length=255)


class CustomSection(BaseModel):
    """
    Ordered scope section.

    Positions are recomputed densely (0..n-1) on every save; a submitted
    position only decides relative order.
    """

    id: str | None = Field(default=None, max_length=64)
    title: str = Field(default="", max_length=255)
    subtitle: str | None = Field(default=None, max_length=255)
    body: str = Field(default="", max_length=50000, description="Section text")
    position: int | None = Field(default=None, ge=0)
    type: SectionType = Field(default=SectionType.TEXT)
    reviews: list[ReviewExcerpt] = Field(default_factory=list)


# ============================================================================
# Requests
# ============================================================================


class ProposalCreate(BaseModel):
    """
    Proposal creation request.

    Proposals start in DRAFT. Non-templates receive the next SOW number;
    `sow_prefix` is used only when the account has no prefix yet.
    """

    is_template: bool = Field(default=False)
    template_name: str | None = Field(default=None, max_length=255)
    title: str = Field(..., min_length=1, max_length=255)
    proposal_date: date | None = Field(default=None, description="Defaults to today")
    expiration_date: date | None = Field(default=None)

    client_first_name: str | None = Field(default=None, max_length=255)
    client_last_name: str | None = Field(default=None, max_length=255)
    client_email: str | None = Field(default=None, max_length=255)
    client_company: str | None = Field(default=None, max_length=255)
    contact_id: str | None = Field(default=None, max_length=64)

    custom_sections: list[CustomSection] = Field(default_factory=list)
    line_items: list[LineItem] = Field(default_factory=list)
    terms_content: str | None = Field(default=None, max_length=100000)

    show_pricing: bool = True
    show_terms: bool = False
    show_sow_number: bool = True
    require_signature: bool = True

    pricing_type: PricingType = PricingType.FIXED
    discount_type: DiscountType = DiscountType.NONE
    discount_value: float = 0
    tax_rate: float = 0

    sow_prefix: str | None = Field(
        default=None,
        description="1-10 digit prefix, applied on the account's first save",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Website Automation",
                "client_first_name": "Ada",
                "client_last_name": "Lovelace",
                "client_email": "ada@example.com",
                "line_items": [
                    {"description": "Build", "quantity": 1, "unit_price": 1000},
                    {"description": "Hosting", "quantity": 1, "unit_price": 250, "pricing_type": "monthly"},
                ],
                "discount_type": "flat",
                "discount_value": 100,
                "tax_rate": 10,
                "sow_prefix": "031",
            }
        }
    )


class ProposalUpdate(BaseModel):
    """
    Proposal update request. Only provided fields change.

    Sections and line items, when provided, replace the existing
    collections wholesale.
    """

    template_name: str | None = Field(default=None, max_length=255)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    proposal_date: date | None = None
    expiration_date: date | None = None

    client_first_name: str | None = Field(default=None, max_length=255)
    client_last_name: str | None = Field(default=None, max_length=255)
    client_email: str | None = Field(default=None, max_length=255)
    client_company: str | None = Field(default=None, max_length=255)
    contact_id: str | None = Field(default=None, max_length=64)

    custom_sections: list[CustomSection] | None = None
    line_items: list[LineItem] | None = None
    terms_content: str | None = Field(default=None, max_length=100000)

    show_pricing: bool | None = None
    show_terms: bool | None = None
    show_sow_number: bool | None = None
    require_signature: bool | None = None

    pricing_type: PricingType | None = None
    discount_type: DiscountType | None = None
    discount_value: float | None = None
    tax_rate: float | None = None


class ProposalStatusUpdate(BaseModel):
    """Explicit owner status change (draft, sent, on_hold, accepted, declined)."""

    status: ProposalStatus


class SaveAsTemplateRequest(BaseModel):
    template_name: str = Field(..., min_length=1, max_length=255)


class FromTemplateRequest(BaseModel):
    """Values that replace the template's when instantiating a proposal from it."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    proposal_date: date | None = None
    expiration_date: date | None = None
    client_first_name: str | None = Field(default=None, max_length=255)
    client_last_name: str | None = Field(default=None, max_length=255)
    client_email: str | None = Field(default=None, max_length=255)
    client_company: str | None = Field(default=None, max_length=255)
    contact_id: str | None = Field(default=None, max_length=64)
    sow_prefix: str | None = None


class SignRequest(BaseModel):
    """
    Recipient signature submission.

    WHY: accepted_terms is a plain bool here so that "false" reaches the
    service and is rejected with the same generic public error as any
    other failure.
    """

    signer_name: str = Field(..., min_length=1, max_length=255)
    signer_email: EmailStr
    signature_image: str = Field(..., min_length=1, description="PNG/JPEG base64 data URL")
    accepted_terms: bool = False


# ============================================================================
# Responses
# ============================================================================


class PricingTotalsResponse(BaseModel):
    """Computed totals, rounded to cents for display."""

    one_time_subtotal: float
    monthly_subtotal: float
    discount_one_time: float
    discount_monthly: float
    tax_one_time: float
    tax_monthly: float
    grand_total_one_time: float
    grand_total_monthly: float
    grand_total: float
    is_mixed: bool
    uniform_pricing_type: PricingType | None
    quantity_label: str
    rate_label: str

    @classmethod
    def from_totals(cls, totals: PricingTotals) -> "PricingTotalsResponse":
        def money(value: Any) -> float:
            return float(round_currency(value))

        labels = totals.column_labels
        return cls(
            one_time_subtotal=money(totals.one_time_subtotal),
            monthly_subtotal=money(totals.monthly_subtotal),
            discount_one_time=money(totals.discount_one_time),
            discount_monthly=money(totals.discount_monthly),
            tax_one_time=money(totals.tax_one_time),
            tax_monthly=money(totals.tax_monthly),
            grand_total_one_time=money(totals.grand_total_one_time),
            grand_total_monthly=money(totals.grand_total_monthly),
            grand_total=money(totals.grand_total),
            is_mixed=totals.is_mixed,
            uniform_pricing_type=totals.uniform_pricing_type,
            quantity_label=labels.quantity,
            rate_label=labels.rate,
        )


class SignatureSummary(BaseModel):
    """What the recipient page shows about an existing signature."""

    signer_name: str
    signed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SignatureResponse(BaseModel):
    """Full signature record (owner only)."""

    id: int
    signer_name: str
    signer_email: str
    signature_image_url: str
    document_hash: str
    accepted_terms: bool
    signed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StyleConfig(BaseModel):
    """Account branding applied to the recipient page."""

    primary_color: str = "#1f2937"
    accent_color: str = "#2563eb"
    font_family: str = "Inter"
    logo_url: str | None = None

    model_config = ConfigDict(extra="ignore")


class ProposalResponse(BaseModel):
    """Owner view of a proposal."""

    id: int
    token: str
    account_id: int
    is_template: bool
    template_name: str | None
    title: str
    proposal_date: date
    expiration_date: date | None

    client_first_name: str | None
    client_last_name: str | None
    client_email: str | None
    client_company: str | None
    contact_id: str | None

    business_name: str | None
    business_email: str | None
    business_phone: str | None
    business_address: str | None

    custom_sections: list[dict[str, Any]]
    line_items: list[dict[str, Any]]
    terms_content: str | None

    show_pricing: bool
    show_terms: bool
    show_sow_number: bool
    require_signature: bool

    pricing_type: PricingType
    discount_type: DiscountType
    discount_value: float
    tax_rate: float
    totals: PricingTotalsResponse

    sow_number: int | None
    formatted_sow_number: str | None
    status: ProposalStatus
    sent_at: datetime | None
    viewed_at: datetime | None
    accepted_at: datetime | None
    declined_at: datetime | None
    created_at: datetime
    updated_at: datetime

    signature: SignatureResponse | None
    integrity_status: IntegrityStatus | None = Field(
        default=None,
        description="Present once signed: whether content changed since signing",
    )
    is_editable: bool
    can_sign: bool
    public_url: str | None


class PublicProposalResponse(BaseModel):
    """
    Recipient view of a proposal.

    Hidden pricing, hidden terms and a hidden SOW number are omitted
    rather than sent and hidden client-side.
    """

    token: str
    title: str
    proposal_date: date
    expiration_date: date | None
    status: ProposalStatus

    client_first_name: str | None
    client_last_name: str | None
    client_email: str | None
    client_company: str | None

    business_name: str | None
    business_email: str | None
    business_phone: str | None
    business_address: str | None

    custom_sections: list[dict[str, Any]]
    line_items: list[dict[str, Any]] | None
    totals: PricingTotalsResponse | None
    pricing_type: PricingType
    terms_content: str | None
    formatted_sow_number: str | None

    show_pricing: bool
    show_terms: bool
    show_sow_number: bool
    require_signature: bool

    signature: SignatureSummary | None
    style: StyleConfig
    can_sign: bool
    is_owner_preview: bool


class ProposalListResponse(BaseModel):
    """Paginated proposal list."""

    items: list[ProposalResponse]
    total: int
    skip: int
    limit: int


class ProposalStats(BaseModel):
    """Proposal pipeline counts for dashboards."""

    total: int = Field(..., description="Non-template proposals")
    by_status: dict[str, int]
    pending_count: int = Field(..., description="Sent + viewed + on hold")
    template_count: int
