import uuid
from decimal import ROUND_HALF_UP, Decimal

from db.product import utcnow

CENT = Decimal("0.01")


def make_document_number(prefix: str) -> str:
    """e.g. PO-261019-3F9A1C; date part is UTC."""
    return f"{prefix}-{utcnow().strftime('%y%m%d')}-{uuid.uuid4().hex[:6].upper()}"


def money(value) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
