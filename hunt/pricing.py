# hunt/pricing.py
from decimal import Decimal, ROUND_HALF_UP

from models import Tier


class PricingHelper:
    """
    Static tier price table, shared by checkout and commission maths.
    FREE: 0, PREMIUM: 99, VIP: 299 (whole currency units)
    """

    TIER_PRICES = {
        Tier.FREE: Decimal('0'),
        Tier.PREMIUM: Decimal('99'),
        Tier.VIP: Decimal('299'),
    }

    PAID_TIERS = (Tier.PREMIUM, Tier.VIP)

    DEFAULT_COMMISSION_RATE = Decimal('0.10')

    @staticmethod
    def parse_tier(value):
        """Return the Tier for a string such as 'premium', or None."""
        if isinstance(value, Tier):
            return value
        if not value or not isinstance(value, str):
            return None
        try:
            return Tier[value.strip().upper()]
        except KeyError:
            return None

    @staticmethod
    def price_for(tier) -> Decimal:
        return PricingHelper.TIER_PRICES[tier]

    @staticmethod
    def is_paid(tier) -> bool:
        return tier in PricingHelper.PAID_TIERS

    @staticmethod
    def to_minor_units(amount) -> int:
        """99 -> 9900, the integer amount Stripe expects."""
        return int((Decimal(amount) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    @staticmethod
    def commission_for(tier, rate=None) -> Decimal:
        if rate is None:
            rate = PricingHelper.DEFAULT_COMMISSION_RATE
        commission = PricingHelper.price_for(tier) * Decimal(str(rate))
        return commission.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
