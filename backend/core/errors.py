"""
Domain errors raised by the stock core and the workflows built on it.

Every error carries an HTTP status and a stable machine code so routers can
let them propagate; `register_error_handlers` renders them as
`{"detail": ..., "code": ...}`.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    status_code = 400
    code = "domain_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


# Stock mutations

class StockError(DomainError):
    code = "stock_error"


class NegativeStockError(StockError):
    status_code = 409
    code = "negative_stock"


class InsufficientStockError(NegativeStockError):
    code = "insufficient_stock"


class InvalidQuantityError(StockError):
    code = "invalid_quantity"


class SameLocationTransferError(StockError):
    code = "same_location_transfer"


class PrimaryLocationRequiredError(StockError):
    status_code = 409
    code = "primary_location_required"


# Missing entities

class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class LocationNotFoundError(NotFoundError):
    code = "location_not_found"


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"


class CountNotFoundError(NotFoundError):
    code = "count_not_found"


class OrderNotFoundError(NotFoundError):
    code = "order_not_found"


class SupplierNotFoundError(NotFoundError):
    code = "supplier_not_found"


class CustomerNotFoundError(NotFoundError):
    code = "customer_not_found"


class SaleNotFoundError(NotFoundError):
    code = "sale_not_found"


# Workflow state

class LocationInUseError(DomainError):
    status_code = 409
    code = "location_in_use"


class InvalidCountStateError(DomainError):
    status_code = 409
    code = "invalid_count_state"


class IncompleteCountError(InvalidCountStateError):
    code = "incomplete_count"


class InvalidOrderStateError(DomainError):
    status_code = 409
    code = "invalid_order_state"


class AlreadyAppliedError(DomainError):
    """Another request already applied this workflow line."""
    status_code = 409
    code = "already_applied"


# Payments / credit

class PaymentError(DomainError):
    code = "payment_error"


class InsufficientPaymentError(PaymentError):
    code = "insufficient_payment"


class InsufficientCreditError(PaymentError):
    code = "insufficient_credit"


class InvalidAmountError(PaymentError):
    code = "invalid_amount"


def error_payload(exc: DomainError) -> dict:
    return {"detail": exc.message, "code": exc.code}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainError)
    async def _domain_error_handler(request: Request, exc: DomainError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_payload(exc))
