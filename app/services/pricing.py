# app/services/pricing.py
from decimal import Decimal, ROUND_HALF_UP

from app.domain.options import options_total_cents

PROVIDER_PRIORITY = ("grubhub", "ubereats", "doordash")

MULTIPLIERS = {
    "grubhub": Decimal("1.00"),
    "ubereats": Decimal("1.07"),
    "doordash": Decimal("1.09"),
}

CENT = Decimal("0.01")


def to_cents(price) -> int:
    return int((Decimal(str(price or 0)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def apply_multiplier(price, provider: str | None) -> Decimal:
    mult = MULTIPLIERS.get((provider or "").lower(), Decimal("1.00"))
    cents = (Decimal(to_cents(price)) * mult).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return from_cents(int(cents))


def pick_default_provider(providers=None) -> str:
    providers = [str(p).strip().lower() for p in providers or [] if p]
    if not providers:
        return "grubhub"
    for p in PROVIDER_PRIORITY:
        if p in providers:
            return p
    return providers[0]


def unit_price_for(base_price, provider: str | None, selected_options: dict | None = None) -> Decimal:
    """Menu price with the provider markup, plus the selected option prices."""
    base = apply_multiplier(base_price, provider)
    return (base + from_cents(options_total_cents(selected_options or {}))).quantize(CENT)
