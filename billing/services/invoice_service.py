# billing/services/invoice_service.py
from __future__ import annotations
import logging
from typing import Any, List, Optional, Mapping, get_args

from billing.clock import Clock
from billing.errors import ConflictError, ValidationFailed
from billing.models.invoice import Invoice, InvoiceStatus, InvoiceVersion
from billing.services.company_service import CompanyService
from billing.services.document_service import DocumentService, build
from billing.services.kinds import INVOICE
from billing.services.lifecycle import InvoiceGuard, check_locked_invoice_move, invoice_transition_effects
from billing.services.numbering_service import NumberingService
from billing.services.snapshot_service import SnapshotService
from billing.settings import Settings
from billing.storage.store import DataStore

logger = logging.getLogger(__name__)

# champs fixés par le moteur à la création (statut, verrou, totaux)
_CREATE_IGNORED = ("id", "status", "is_locked", "deleted_at", "total_net", "total_tax", "total_gross")


class InvoiceService(DocumentService[Invoice]):
    """
    Factures : numéro F-YYYY-NNNN généré par émetteur si absent,
    modifiables uniquement en brouillon, figées (version + verrou) à l'envoi.
    """

    kind = INVOICE
    guard = InvoiceGuard()

    def __init__(
        self,
        store: DataStore,
        clock: Optional[Clock] = None,
        companies: Optional[CompanyService] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(store, clock, companies)
        self.settings = settings or Settings()
        self.numbering = NumberingService(
            store, self.clock,
            prefix=self.settings.invoice_prefix,
            width=self.settings.number_width,
        )
        self.snapshots = SnapshotService(store, self.clock)

    def _visible(self, row) -> bool:
        return not row.get("deleted_at")

    # ----------- CRUD/list -----------

    def create_invoice(self, company_id: str, number: Optional[str] = None, **fields: Any) -> Invoice:
        self._require_issuer(company_id)
        data = {k: v for k, v in fields.items() if k not in _CREATE_IGNORED}
        data = self._merge_customer(data)
        self._require_customer(data)
        now = self.clock.now()
        data.update(company_id=company_id, created_at=now, updated_at=now)

        # numéro auto : scan + insert, rejoué si un autre écrivain a pris le numéro
        attempts = 1 if number else max(1, self.settings.numbering_max_retries)
        for attempt in range(1, attempts + 1):
            try:
                with self.store.transaction():
                    inv_number = number or self.numbering.next_invoice_number(company_id)
                    invoice = build(Invoice, {**data, "number": inv_number})
                    self.repo.add(invoice)
            except ConflictError:
                if number or attempt == attempts:
                    raise
                logger.warning("numéro %s déjà pris (essai %d/%d)", inv_number, attempt, attempts)
                continue
            break

        logger.info("facture %s créée pour %s", invoice.number, company_id)
        return invoice

    def get_invoice(self, invoice_id: str, *, company_id: Optional[str] = None) -> Invoice:
        return self.get(invoice_id, company_id=company_id)

    def list_invoices(
        self,
        company_id: str,
        status: Optional[str] = None,
        locked: Optional[bool] = None,
    ) -> List[Invoice]:
        return self._list(company_id, status=status, is_locked=locked)

    def list_overdue(self, company_id: str) -> List[Invoice]:
        today = self.clock.today()
        return [inv for inv in self._list(company_id) if inv.is_overdue(today)]

    def update_invoice(self, invoice_id: str, changes: Mapping[str, Any], *, company_id: Optional[str] = None) -> Invoice:
        return self.update_document(invoice_id, changes, company_id=company_id)

    def delete_invoice(self, invoice_id: str, *, company_id: Optional[str] = None) -> None:
        self.delete_document(invoice_id, company_id=company_id)

    def _remove(self, doc: Invoice) -> None:
        # soft delete : le numéro reste réservé
        deleted = doc.model_copy(update={"deleted_at": self.clock.now()})
        self.repo.update(deleted)

    # ----------- cycle de vie -----------

    def _on_update(self, old: Invoice, new: Invoice) -> Invoice:
        effects = invoice_transition_effects(old.status, new.status)
        if effects.snapshot:
            if self.snapshots.has_version(old.id):
                logger.warning("facture %s: version déjà présente, pas de nouvelle capture", old.number)
            else:
                # état stocké = brouillon, avant écriture du nouveau statut
                self.snapshots.capture(old.id)
        if effects.lock:
            new = new.model_copy(update={"is_locked": True})
        return new

    def transition(self, invoice_id: str, new_status: str, *, company_id: Optional[str] = None) -> Invoice:
        """
        Changement de statut seul.
        Brouillon : même chemin qu'une mise à jour (version + verrou sur draft -> sent).
        Facture envoyée : sent -> paid | canceled, sinon transition_denied.
        """
        if new_status not in get_args(InvoiceStatus):
            raise ValidationFailed("status", "status_invalid")

        with self.store.transaction():
            invoice = self._get_for_update(invoice_id, company_id)
            if invoice.status == new_status:
                return invoice
            if invoice.status == "draft" and not invoice.is_locked:
                return self.update_document(invoice_id, {"status": new_status}, company_id=company_id)

            check_locked_invoice_move(invoice, new_status)
            moved = invoice.model_copy(update={"status": new_status})
            moved.touch(self.clock.now())
            self.repo.update(moved)

        logger.info("facture %s: %s -> %s", moved.number, invoice.status, new_status)
        return moved

    def versions(self, invoice_id: str, *, company_id: Optional[str] = None) -> List[InvoiceVersion]:
        self.get(invoice_id, company_id=company_id)
        return self.snapshots.history(invoice_id)
