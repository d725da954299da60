from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from billing.clock import Clock, SystemClock
from billing.errors import NotFound, ValidationFailed
from billing.models.document import CUSTOMER_FIELDS, Document
from billing.models.line import LineBase
from billing.services.company_service import CompanyService
from billing.services.kinds import DocumentKind
from billing.services.lifecycle import TransitionGuard
from billing.services.line_engine import apply_line_totals
from billing.services.totals_service import TotalsAggregator
from billing.storage.store import DataStore

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=Document)
M = TypeVar("M", bound=BaseModel)

# champs jamais modifiables via une mise à jour
READONLY_FIELDS = ("id", "company_id", "created_at", "updated_at", "deleted_at")
LINE_INPUT_FIELDS = ("title", "description", "quantity", "unit_price", "tax_rate")


def build(model: Type[M], data: Mapping[str, Any]) -> M:
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        raise ValidationFailed.from_pydantic(e) from e


class DocumentService(ABC, Generic[D]):
    """
    Socle commun devis / factures : portée émetteur → document → ligne,
    lignes + recalcul des totaux dans une même transaction, gardes d'état.
    """

    kind: DocumentKind
    guard: TransitionGuard

    def __init__(
        self,
        store: DataStore,
        clock: Optional[Clock] = None,
        companies: Optional[CompanyService] = None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.companies = companies or CompanyService(store)
        self.totals = TotalsAggregator(store)

    @property
    def repo(self):
        return self.store.table(self.kind.table)

    @property
    def lines_repo(self):
        return self.store.table(self.kind.lines_table)

    # ----- Lecture (portée stricte) ----- #

    def _visible(self, row: Dict[str, Any]) -> bool:
        return True

    def _scoped(self, row: Optional[Dict[str, Any]], doc_id: str, company_id: Optional[str]) -> D:
        if row is None or not self._visible(row):
            raise NotFound(self.kind.name, doc_id)
        if company_id is not None and row.get("company_id") != company_id:
            raise NotFound(self.kind.name, doc_id)
        return self.kind.model.model_validate(row)  # type: ignore[return-value]

    def get(self, doc_id: str, *, company_id: Optional[str] = None) -> D:
        return self._scoped(self.repo.get_by_id(doc_id), doc_id, company_id)

    def _get_for_update(self, doc_id: str, company_id: Optional[str] = None) -> D:
        return self._scoped(self.store.select_for_update(self.kind.table, doc_id), doc_id, company_id)

    def _list(self, company_id: str, **filters: Any) -> List[D]:
        def match(d: Dict[str, Any]) -> bool:
            if d.get("company_id") != company_id or not self._visible(d):
                return False
            return all(v is None or d.get(k) == v for k, v in filters.items())

        return [self.kind.model.model_validate(d) for d in self.repo.find(match)]  # type: ignore[misc]

    # ----- Client (pré-remplissage) ----- #

    def _merge_customer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Le client enregistré a priorité sur la saisie manuelle."""
        if data.get("customer_id"):
            data.update(self.companies.customer_fields(data["customer_id"]))
        return data

    def _require_customer(self, data: Mapping[str, Any], fields=CUSTOMER_FIELDS) -> None:
        if data.get("customer_id"):
            return
        for f in fields:
            if not data.get(f):
                raise ValidationFailed(f, f"{f}_required")

    def _require_issuer(self, company_id: str) -> None:
        self.companies.require(company_id)

    # ----- Mise à jour / suppression ----- #

    def _on_update(self, old: D, new: D) -> D:
        """Effets de transition propres au type de document."""
        return new

    def update_document(self, doc_id: str, changes: Mapping[str, Any], *, company_id: Optional[str] = None) -> D:
        with self.store.transaction():
            doc = self._get_for_update(doc_id, company_id)
            self.guard.can_update(doc).enforce()

            data = self._merge_customer({k: v for k, v in changes.items() if k not in READONLY_FIELDS})
            merged = {**doc.model_dump(), **data}
            self._require_customer(merged, ("customer_name",))

            new = build(self.kind.model, merged)
            new = self._on_update(doc, new)
            new.touch(self.clock.now())
            self.repo.update(new)

        if new.status != doc.status:
            logger.info("%s %s: %s -> %s", self.kind.name, new.number, doc.status, new.status)
        return new

    @abstractmethod
    def _remove(self, doc: D) -> None:
        """Suppression effective (définitive ou soft delete selon le type)."""

    def delete_document(self, doc_id: str, *, company_id: Optional[str] = None) -> None:
        with self.store.transaction():
            doc = self._get_for_update(doc_id, company_id)
            self.guard.can_delete(doc).enforce()
            self._remove(doc)
        logger.info("%s %s (%s) supprimé", self.kind.name, doc.number, doc.id)

    # ----- Lignes ----- #

    def _line_row(self, line_id: str, document_id: Optional[str]) -> Dict[str, Any]:
        row = self.lines_repo.get_by_id(line_id)
        if row is None or row.get("deleted_at"):
            raise NotFound(f"{self.kind.name}_line", line_id)
        if document_id is not None and row.get(self.kind.parent_key) != document_id:
            raise NotFound(f"{self.kind.name}_line", line_id)
        return row

    def list_lines(self, document_id: str, *, company_id: Optional[str] = None) -> List[LineBase]:
        self.get(document_id, company_id=company_id)
        return self.totals.current_lines(self.kind, document_id)

    def get_line(
        self, line_id: str, *, document_id: Optional[str] = None, company_id: Optional[str] = None,
    ) -> LineBase:
        row = self._line_row(line_id, document_id)
        self.get(row[self.kind.parent_key], company_id=company_id)
        return self.kind.line_model.model_validate(row)

    def create_line(
        self,
        document_id: str,
        title: str,
        quantity: Any,
        unit_price: Any,
        tax_rate: Any = None,
        description: Optional[str] = None,
        *,
        company_id: Optional[str] = None,
    ) -> LineBase:
        now = self.clock.now()
        with self.store.transaction():
            doc = self._get_for_update(document_id, company_id)
            self.guard.can_edit_lines(doc).enforce()

            line = build(self.kind.line_model, {
                self.kind.parent_key: doc.id,
                "title": title,
                "description": description,
                "quantity": quantity,
                "unit_price": unit_price,
                "tax_rate": tax_rate,
                "created_at": now,
                "updated_at": now,
            })
            line = apply_line_totals(line)
            self.lines_repo.add(line)
            self.totals.recompute(self.kind, doc.id)
        return line

    def update_line(
        self,
        line_id: str,
        changes: Mapping[str, Any],
        *,
        document_id: Optional[str] = None,
        company_id: Optional[str] = None,
    ) -> LineBase:
        with self.store.transaction():
            row = self._line_row(line_id, document_id)
            doc = self._get_for_update(row[self.kind.parent_key], company_id)
            self.guard.can_edit_lines(doc).enforce()

            # totaux éventuellement fournis : ignorés, recalculés
            data = {k: v for k, v in changes.items() if k in LINE_INPUT_FIELDS}
            line = build(self.kind.line_model, {**row, **data})
            line = apply_line_totals(line)
            line.touch(self.clock.now())
            self.lines_repo.update(line)
            self.totals.recompute(self.kind, doc.id)
        return line

    def delete_line(
        self, line_id: str, *, document_id: Optional[str] = None, company_id: Optional[str] = None,
    ) -> None:
        with self.store.transaction():
            row = self._line_row(line_id, document_id)
            doc = self._get_for_update(row[self.kind.parent_key], company_id)
            self.guard.can_edit_lines(doc).enforce()

            line = self.kind.line_model.model_validate(row)
            line = line.model_copy(update={"deleted_at": self.clock.now()})
            self.lines_repo.update(line)
            self.totals.recompute(self.kind, doc.id)
