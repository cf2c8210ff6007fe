from errors import ValidationError
from hunt.pricing import PricingHelper
from utils import validate_url


# =========================
# VALIDATE CHECKOUT INPUT
# =========================
def validate_checkout_input(data):
    """Validate the create-session body; returns (tier, participant_id, success_url, cancel_url)."""
    tier = PricingHelper.parse_tier(data.get("tier"))
    participant_id = data.get("participantId")
    success_url = (data.get("successUrl") or "").strip()
    cancel_url = (data.get("cancelUrl") or "").strip()

    if tier is None or not PricingHelper.is_paid(tier):
        raise ValidationError("Tier must be PREMIUM or VIP")

    if isinstance(participant_id, str) and participant_id.isdigit():
        participant_id = int(participant_id)
    if not isinstance(participant_id, int) or isinstance(participant_id, bool):
        raise ValidationError("participantId is required")

    if not validate_url(success_url):
        raise ValidationError("successUrl must be a valid URL")
    if not validate_url(cancel_url):
        raise ValidationError("cancelUrl must be a valid URL")

    return tier, participant_id, success_url, cancel_url
