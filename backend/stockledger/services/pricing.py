# Overview: Unit price resolution for sale and purchase lines.

from __future__ import annotations

from ..enums import PriceTier
from ..errors import ValidationError
from ..money import Money

_TIERS = {
    PriceTier.RETAIL: ("enable_retail_price", "retail_price"),
    PriceTier.WHOLESALE: ("enable_wholesale_price", "wholesale_price"),
    PriceTier.PROMO: ("enable_promo_price", "promo_price"),
}


def resolve_sale_price(tenant, item, price=None, tier=None) -> Money:
    """
    Explicit price wins; then the requested tier (must be enabled for the
    tenant and set on the item); otherwise the item's selling price.
    """
    if price is not None:
        price = Money.of(price)
        if price.is_negative:
            raise ValidationError("Price cannot be negative", details={"item_id": item.id, "price": str(price)})
        return price

    if tier is None:
        return item.selling_price

    tier = PriceTier(tier)
    flag, column = _TIERS[tier]
    if not getattr(tenant, flag):
        raise ValidationError(
            f"{tier.value.title()} pricing is not enabled for this tenant",
            details={"price_tier": tier.value},
        )
    tier_price = getattr(item, column)
    if tier_price is None:
        raise ValidationError(
            f"Item {item.id} has no {tier.value.lower()} price",
            details={"item_id": item.id, "price_tier": tier.value},
        )
    return tier_price


def resolve_cost_price(item, cost_price=None) -> Money:
    if cost_price is None:
        return item.cost_price
    cost_price = Money.of(cost_price)
    if cost_price.is_negative:
        raise ValidationError("Cost price cannot be negative", details={"item_id": item.id, "cost_price": str(cost_price)})
    return cost_price
