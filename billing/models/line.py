from __future__ import annotations
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from pydantic import Field, field_validator

from .common import ZERO, TimeStamped, gen_id


class LineBase(TimeStamped):
    """
    Ligne de devis / facture.
    Les totaux sont dérivés (voir services.line_engine) : toute valeur fournie
    est recalculée avant l'écriture.
    """
    id: str = Field(default_factory=gen_id)
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    quantity: Decimal = Field(default=Decimal("1.000"), ge=0, le=Decimal("999999999.999"))
    unit_price: Decimal = Field(ge=0, le=Decimal("9999999999.99"))
    tax_rate: Decimal = Field(default=ZERO, ge=0, le=100)

    total_net: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_gross: Decimal = ZERO

    deleted_at: Optional[datetime] = None

    @field_validator("quantity", mode="after")
    @classmethod
    def _three_places(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.001"), rounding=ROUND_HALF_UP)

    @field_validator("unit_price", "tax_rate", "total_net", "total_tax", "total_gross", mode="after")
    @classmethod
    def _two_places(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    @field_validator("tax_rate", mode="before")
    @classmethod
    def _null_rate(cls, v):
        # tax_rate nullable à l'entrée → 0
        return ZERO if v is None else v

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class QuoteLine(LineBase):
    quote_id: str


class InvoiceLine(LineBase):
    invoice_id: str
