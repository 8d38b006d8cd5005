# pasoapaso/utils/money.py
from decimal import Decimal, ROUND_HALF_UP


def cents_to_amount(cents: int) -> float:
    v = (Decimal(int(cents)) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(v)


def amount_to_cents(amount) -> int:
    v = (Decimal(str(amount or 0)) * Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(v)
