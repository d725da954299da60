from datetime import datetime

import pytest

from billing.clock import FixedClock
from billing.services.company_service import CompanyService
from billing.services.invoice_service import InvoiceService
from billing.services.quote_service import QuoteService
from billing.storage.store import DataStore


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 11, 6, 9, 30))


@pytest.fixture
def store(tmp_path):
    return DataStore(tmp_path / "data", backup_enabled=False)


@pytest.fixture
def companies(store):
    return CompanyService(store)


@pytest.fixture
def issuer(companies):
    return companies.create_company(
        type="issuer",
        name="Sonolight SAS",
        address="12 rue des Lilas",
        zip_code="69003",
        city="Lyon",
        country="France",
        email="contact@sonolight.fr",
    )


@pytest.fixture
def customer(companies):
    return companies.create_company(
        type="customer",
        name="Salle Pleyel",
        address="252 rue du Faubourg Saint-Honoré",
        zip_code="75008",
        city="Paris",
        country="France",
    )


@pytest.fixture
def quotes(store, clock, companies):
    return QuoteService(store, clock, companies)


@pytest.fixture
def invoices(store, clock, companies):
    return InvoiceService(store, clock, companies)


@pytest.fixture
def walk_in():
    """Client non enregistré (champs libres)."""
    return {
        "customer_name": "Mariage Dupont",
        "customer_address": "3 chemin des Vignes",
        "customer_zip": "69400",
        "customer_city": "Villefranche",
        "customer_country": "France",
    }


@pytest.fixture
def quote(quotes, issuer, customer):
    return quotes.create_quote(issuer.id, number="DV-2025-0001", customer_id=customer.id)


@pytest.fixture
def invoice(invoices, issuer, customer):
    return invoices.create_invoice(issuer.id, customer_id=customer.id)
