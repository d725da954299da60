from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from billing.clock import Clock, SystemClock
from billing.models.invoice import Invoice, InvoiceVersion
from billing.services.kinds import INVOICE
from billing.services.totals_service import TotalsAggregator
from billing.storage.store import DataStore

logger = logging.getLogger(__name__)


class SnapshotService:
    """
    Versions figées des factures (table invoice_versions, append-only).
    Format : {"invoice": {...tous les champs...}, "lines": [{...}, ...]}
    """

    def __init__(self, store: DataStore, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock or SystemClock()

    def build_snapshot(self, invoice: Invoice) -> Dict[str, Any]:
        lines = TotalsAggregator(self.store).current_lines(INVOICE, invoice.id)

        inv = invoice.model_dump(mode="json")
        # la version reflète l'état *avant* l'envoi
        inv["status"] = "draft"
        inv["customer_display_name"] = self._customer_display_name(invoice)

        return {
            "invoice": inv,
            "lines": [ln.model_dump(mode="json") for ln in lines],
        }

    def _customer_display_name(self, invoice: Invoice) -> str:
        if invoice.customer_id:
            company = self.store.companies.get_by_id(invoice.customer_id)
            if company and company.get("name"):
                return company["name"]
        return invoice.customer_display_name

    def capture(self, invoice_id: str) -> InvoiceVersion:
        with self.store.transaction():
            invoice = Invoice.model_validate(self.store.select_for_update("invoices", invoice_id))
            version = InvoiceVersion(
                invoice_id=invoice.id,
                snapshot=self.build_snapshot(invoice),
                created_at=self.clock.now(),
            )
            self.store.invoice_versions.add(version)
        logger.info("facture %s (%s): version %s capturée", invoice.number, invoice.id, version.id)
        return version

    def history(self, invoice_id: str) -> List[InvoiceVersion]:
        rows = self.store.invoice_versions.find(lambda d: d.get("invoice_id") == invoice_id)
        versions = [InvoiceVersion.model_validate(r) for r in rows]
        return sorted(versions, key=lambda v: v.created_at)

    def has_version(self, invoice_id: str) -> bool:
        return self.store.invoice_versions.find_one(lambda d: d.get("invoice_id") == invoice_id) is not None
