from __future__ import annotations
from datetime import date
from typing import Literal, Optional

from pydantic import model_validator

from .document import Document, check_date_order

QuoteStatus = Literal["draft", "sent", "accepted", "rejected", "expired"]

# statuts qui verrouillent le devis (pas de flag dédié)
LOCKED_QUOTE_STATUSES = ("accepted", "rejected", "expired")


class Quote(Document):
    status: QuoteStatus = "draft"
    valid_until: Optional[date] = None

    @model_validator(mode="after")
    def _valid_until_after_issue(self):
        check_date_order(self.issue_date, self.valid_until, "valid_until_before_issue_date")
        return self

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_QUOTE_STATUSES

    def is_expired(self, today: date) -> bool:
        if not self.valid_until:
            return False
        return self.valid_until < today and self.status != "expired"

    model_config = {"extra": "ignore"}  # tolère d'anciennes clés dans les JSON
