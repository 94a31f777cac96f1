"""
Proposal pricing engine.

WHAT: Pure computation of proposal totals from line items and the
discount/tax configuration.

WHY: Totals are recomputed on every read instead of being stored, so the
number a client sees can never drift from the line items it came from.
Mixed billing (one-time work plus a monthly retainer) needs each cadence
totalled separately; a single grand total would add apples to oranges.

HOW: subtotal -> discount -> tax -> grand total, per bucket:
1. Partition items into one-time and monthly buckets
2. Discount each bucket (percentage applies per bucket, flat amounts are
   split by each bucket's share of the combined subtotal)
3. Tax each bucket's discounted subtotal
4. Report grand totals plus the labels the pricing table should use

All arithmetic is Decimal and nothing is rounded here; rounding to cents
happens only at presentation (see format_money).
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Tuple, Union

from proposal_engine.models.proposal import DiscountType, PricingType

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

Number = Union[int, float, str, Decimal, None]


@dataclass(frozen=True)
class ColumnLabels:
    """Header labels for the quantity and rate columns of a pricing table."""

    quantity: str
    rate: str


HOURLY_LABELS = ColumnLabels(quantity="Hours", rate="Rate")
MONTHLY_LABELS = ColumnLabels(quantity="Qty", rate="Monthly rate")
DEFAULT_LABELS = ColumnLabels(quantity="Qty", rate="Unit price")


@dataclass(frozen=True)
class PricingTotals:
    """
    Result of a pricing computation.

    Attributes:
        one_time_subtotal: Sum of fixed/hourly item amounts
        monthly_subtotal: Sum of monthly item amounts
        discount_one_time/discount_monthly: Discount per bucket
        tax_one_time/tax_monthly: Tax per bucket
        grand_total_one_time/grand_total_monthly: Final amount per bucket
        is_mixed: Both buckets are non-zero
        uniform_pricing_type: The single pricing type shared by every item,
            None when billing is mixed or items disagree
    """

    one_time_subtotal: Decimal
    monthly_subtotal: Decimal
    discount_one_time: Decimal
    discount_monthly: Decimal
    tax_one_time: Decimal
    tax_monthly: Decimal
    grand_total_one_time: Decimal
    grand_total_monthly: Decimal
    is_mixed: bool
    uniform_pricing_type: Optional[PricingType]

    @property
    def subtotal(self) -> Decimal:
        return self.one_time_subtotal + self.monthly_subtotal

    @property
    def discount_total(self) -> Decimal:
        return self.discount_one_time + self.discount_monthly

    @property
    def tax_total(self) -> Decimal:
        return self.tax_one_time + self.tax_monthly

    @property
    def grand_total(self) -> Decimal:
        return self.grand_total_one_time + self.grand_total_monthly

    @property
    def column_labels(self) -> ColumnLabels:
        return column_labels_for(self.uniform_pricing_type)


def to_decimal(value: Number) -> Decimal:
    """
    Convert a number-like value to Decimal.

    WHY: Floats go through str() so 0.1 becomes Decimal("0.1") rather
    than its binary approximation. None counts as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _coerce_pricing_type(value: Any) -> PricingType:
    if isinstance(value, PricingType):
        return value
    return PricingType(value)


def effective_pricing_type(item: Any, default_pricing_type: Any = PricingType.FIXED) -> PricingType:
    """Item's pricing type, falling back to the proposal default when unset."""
    value = _field(item, "pricing_type")
    if value in (None, ""):
        value = default_pricing_type or PricingType.FIXED
    return _coerce_pricing_type(value)


def line_item_amount(item: Any) -> Decimal:
    """quantity x unit_price for a single line item."""
    return to_decimal(_field(item, "quantity")) * to_decimal(_field(item, "unit_price"))


def column_labels_for(pricing_type: Optional[PricingType]) -> ColumnLabels:
    if pricing_type == PricingType.HOURLY:
        return HOURLY_LABELS
    if pricing_type == PricingType.MONTHLY:
        return MONTHLY_LABELS
    return DEFAULT_LABELS


def _clamp_to_bucket(amount: Decimal, bucket: Decimal) -> Decimal:
    # Discount is never negative and never exceeds its bucket
    if bucket <= ZERO:
        return ZERO
    return max(ZERO, min(amount, bucket))


def _percentage_discounts(
    one_time: Decimal, monthly: Decimal, value: Decimal
) -> Tuple[Decimal, Decimal]:
    rate = max(ZERO, min(value, HUNDRED)) / HUNDRED
    return (
        _clamp_to_bucket(one_time * rate, one_time),
        _clamp_to_bucket(monthly * rate, monthly),
    )


def _flat_discounts(
    one_time: Decimal, monthly: Decimal, value: Decimal
) -> Tuple[Decimal, Decimal]:
    value = max(ZERO, value)

    if one_time != ZERO and monthly != ZERO:
        combined = one_time + monthly
        if combined <= ZERO:
            return ZERO, ZERO
        share_one_time = value * one_time / combined
        # Remainder keeps the two shares summing to exactly `value`
        share_monthly = value - share_one_time
        return (
            _clamp_to_bucket(share_one_time, one_time),
            _clamp_to_bucket(share_monthly, monthly),
        )

    if monthly != ZERO:
        return ZERO, _clamp_to_bucket(value, monthly)
    return _clamp_to_bucket(value, one_time), ZERO


def compute_totals(
    line_items: Optional[Iterable[Any]],
    default_pricing_type: Any = PricingType.FIXED,
    discount_type: Any = DiscountType.NONE,
    discount_value: Number = None,
    tax_rate: Number = None,
) -> PricingTotals:
    """
    Compute proposal totals.

    Args:
        line_items: Dicts or objects with quantity, unit_price and an
            optional pricing_type
        default_pricing_type: Pricing type for items without one
        discount_type: none | percentage | flat (None means none)
        discount_value: Percentage (0-100) or flat currency amount
        tax_rate: Tax percentage applied after discount

    Returns:
        PricingTotals for the one-time and monthly buckets

    Example:
        >>> totals = compute_totals(
        ...     [{"quantity": 2, "unit_price": 100, "pricing_type": "fixed"},
        ...      {"quantity": 1, "unit_price": 50, "pricing_type": "monthly"}],
        ...     discount_type="flat", discount_value=30, tax_rate=10,
        ... )
        >>> totals.grand_total_one_time, totals.grand_total_monthly
        (Decimal('193.6'), Decimal('48.4'))
    """
    one_time = ZERO
    monthly = ZERO
    types = set()

    for item in line_items or []:
        pricing_type = effective_pricing_type(item, default_pricing_type)
        types.add(pricing_type)
        amount = line_item_amount(item)
        if pricing_type == PricingType.MONTHLY:
            monthly += amount
        else:
            one_time += amount

    discount_kind = DiscountType(discount_type) if discount_type else DiscountType.NONE
    value = to_decimal(discount_value)

    if discount_kind == DiscountType.PERCENTAGE:
        discount_one_time, discount_monthly = _percentage_discounts(one_time, monthly, value)
    elif discount_kind == DiscountType.FLAT:
        discount_one_time, discount_monthly = _flat_discounts(one_time, monthly, value)
    else:
        discount_one_time, discount_monthly = ZERO, ZERO

    rate = max(ZERO, to_decimal(tax_rate)) / HUNDRED
    tax_one_time = (one_time - discount_one_time) * rate
    tax_monthly = (monthly - discount_monthly) * rate

    is_mixed = one_time != ZERO and monthly != ZERO
    if is_mixed:
        uniform = None
    elif len(types) == 1:
        uniform = next(iter(types))
    elif not types:
        uniform = _coerce_pricing_type(default_pricing_type or PricingType.FIXED)
    else:
        uniform = None

    return PricingTotals(
        one_time_subtotal=one_time,
        monthly_subtotal=monthly,
        discount_one_time=discount_one_time,
        discount_monthly=discount_monthly,
        tax_one_time=tax_one_time,
        tax_monthly=tax_monthly,
        grand_total_one_time=one_time - discount_one_time + tax_one_time,
        grand_total_monthly=monthly - discount_monthly + tax_monthly,
        is_mixed=is_mixed,
        uniform_pricing_type=uniform,
    )


def totals_for_proposal(proposal: Any) -> PricingTotals:
    """Compute totals straight from a Proposal (or any object with its pricing fields)."""
    return compute_totals(
        proposal.line_items,
        default_pricing_type=proposal.pricing_type,
        discount_type=proposal.discount_type,
        discount_value=proposal.discount_value,
        tax_rate=proposal.tax_rate,
    )


def round_currency(value: Number) -> Decimal:
    """Round to cents, half up. Presentation only."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Number, symbol: str = "$") -> str:
    """Format an amount as currency, e.g. $1,234.50."""
    return f"{symbol}{round_currency(value):,.2f}"
