from __future__ import annotations
from typing import Dict, List, Optional

from pydantic import ValidationError

from billing.errors import NotFound, ValidationFailed
from billing.models.company import Company
from billing.storage.store import DataStore


class CompanyService:
    """Lecture des sociétés (émetteurs / clients) pour le pré-remplissage client."""

    def __init__(self, store: DataStore):
        self.repo = store.companies

    def list_companies(self) -> List[Company]:
        return [Company.model_validate(d) for d in self.repo.list_all()]

    def add_company(self, company: Company) -> Company:
        self.repo.add(company)
        return company

    def create_company(self, **fields) -> Company:
        try:
            company = Company(**fields)
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e
        return self.add_company(company)

    def get_by_id(self, company_id: str) -> Optional[Company]:
        d = self.repo.get_by_id(company_id)
        return Company.model_validate(d) if d else None

    def require(self, company_id: str) -> Company:
        company = self.get_by_id(company_id)
        if company is None:
            raise NotFound("company", company_id)
        return company

    def customer_fields(self, customer_id: str) -> Dict[str, Optional[str]]:
        """Champs client d'un devis / d'une facture, depuis la société enregistrée."""
        company = self.get_by_id(customer_id)
        if company is None:
            raise ValidationFailed("customer_id", "customer_not_found")
        return company.customer_fields()
