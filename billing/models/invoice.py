from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from .common import gen_id
from .document import Document, check_date_order

InvoiceStatus = Literal["draft", "sent", "paid", "canceled"]


class Invoice(Document):
    status: InvoiceStatus = "draft"
    is_locked: bool = False
    due_date: Optional[date] = None
    deleted_at: Optional[datetime] = None  # soft delete

    @model_validator(mode="after")
    def _due_after_issue(self):
        check_date_order(self.issue_date, self.due_date, "due_date_before_issue_date")
        return self

    def is_overdue(self, today: date) -> bool:
        if not self.due_date:
            return False
        return self.due_date < today and self.status not in ("paid", "canceled")

    model_config = {"extra": "ignore"}


class InvoiceVersion(BaseModel):
    """Copie figée (append-only) d'une facture et de ses lignes."""
    id: str = Field(default_factory=gen_id)
    invoice_id: str
    snapshot: Dict[str, Any]
    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"frozen": True}
