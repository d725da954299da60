from __future__ import annotations
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from pydantic import Field, field_validator

from .common import ZERO, TimeStamped, gen_id

UNREGISTERED_CUSTOMER = "Client non enregistré"

CUSTOMER_FIELDS = (
    "customer_name",
    "customer_address",
    "customer_zip",
    "customer_city",
    "customer_country",
)


class Document(TimeStamped):
    """Base commune devis / facture (émetteur, client, numéro, totaux)."""
    id: str = Field(default_factory=gen_id)
    company_id: str
    customer_id: Optional[str] = None

    # client non enregistré (ou copie du client enregistré)
    customer_name: Optional[str] = Field(default=None, max_length=255)
    customer_address: Optional[str] = None
    customer_zip: Optional[str] = Field(default=None, max_length=255)
    customer_city: Optional[str] = Field(default=None, max_length=255)
    customer_country: Optional[str] = Field(default=None, max_length=255)

    number: str = Field(min_length=1, max_length=255)
    issue_date: Optional[date] = None

    total_net: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_gross: Decimal = ZERO

    metadata: Optional[Dict[str, Any]] = None

    @field_validator("total_net", "total_tax", "total_gross", mode="after")
    @classmethod
    def _two_places(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @property
    def customer_display_name(self) -> str:
        return self.customer_name or UNREGISTERED_CUSTOMER


def check_date_order(start: Optional[date], end: Optional[date], code: str) -> None:
    if start and end and end < start:
        raise ValueError(code)
