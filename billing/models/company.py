from __future__ import annotations
from datetime import date
from typing import Literal, Optional

from pydantic import EmailStr, Field

from .common import TimeStamped, gen_id

CompanyType = Literal["issuer", "customer"]


class Company(TimeStamped):
    id: str = Field(default_factory=gen_id)
    type: CompanyType = "customer"
    name: str = Field(min_length=1, max_length=255)
    legal_form: Optional[str] = None
    siret: Optional[str] = Field(default=None, max_length=14)
    address: Optional[str] = None
    zip_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    sector: Optional[str] = None
    creation_date: Optional[date] = None

    def customer_fields(self) -> dict:
        """Champs client recopiés sur un devis / une facture."""
        return {
            "customer_name": self.name,
            "customer_address": self.address,
            "customer_zip": self.zip_code,
            "customer_city": self.city,
            "customer_country": self.country,
        }
