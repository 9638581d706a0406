from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from core.errors import DomainError


@dataclass
class ItemFailure:
    item_id: Optional[UUID]
    product_id: Optional[UUID]
    code: str
    message: str


@dataclass
class WorkflowResult:
    """Aggregate outcome of a per-line workflow loop (counts, receiving, returns)."""
    succeeded: int = 0
    skipped: int = 0
    failures: List[ItemFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def add_failure(self, item_id: Optional[UUID], product_id: Optional[UUID], exc: Exception) -> None:
        if isinstance(exc, DomainError):
            code, message = exc.code, exc.message
        else:
            code, message = "internal_error", str(exc) or exc.__class__.__name__
        self.failures.append(ItemFailure(item_id=item_id, product_id=product_id, code=code, message=message))

    def as_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
            "failures": [
                {"item_id": f.item_id, "product_id": f.product_id, "code": f.code, "message": f.message}
                for f in self.failures
            ],
        }
