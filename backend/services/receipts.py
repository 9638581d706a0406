from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional

from db.sale import Sale


@dataclass
class ReceiptLine:
    name: str
    quantity: int
    unit_price: float
    total: float


@dataclass
class ReceiptData:
    """Everything a receipt printer needs, detached from the session."""
    invoice_number: str
    date: datetime
    lines: List[ReceiptLine] = field(default_factory=list)
    subtotal: float = 0.0
    discount: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    paid: float = 0.0
    change: float = 0.0
    payment_method: str = "cash"
    customer_name: Optional[str] = None
    location_name: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


def build_receipt(sale: Sale, customer_name: Optional[str] = None, location_name: Optional[str] = None) -> ReceiptData:
    return ReceiptData(
        invoice_number=sale.invoice_number,
        date=sale.date,
        lines=[
            ReceiptLine(
                name=i.product_name or str(i.product_id),
                quantity=int(i.quantity),
                unit_price=float(i.unit_price),
                total=float(i.total_price),
            )
            for i in sale.items
        ],
        subtotal=float(sale.subtotal or 0),
        discount=float(sale.discount_amount or 0),
        tax=float(sale.tax_amount or 0),
        total=float(sale.total_amount or 0),
        paid=float(sale.paid_amount or 0),
        change=float(sale.change_amount or 0),
        payment_method=sale.payment_method,
        customer_name=customer_name,
        location_name=location_name,
    )
