from __future__ import annotations
import logging
from typing import List

from billing.models.line import LineBase
from billing.services.kinds import DocumentKind
from billing.services.line_engine import LineTotals, sum_line_totals
from billing.storage.store import DataStore

logger = logging.getLogger(__name__)


class TotalsAggregator:
    """
    Recalcule les totaux d'un devis / d'une facture à partir de ses lignes.
    Les lignes sont toujours relues depuis le store, jamais depuis une
    collection en mémoire.
    """

    def __init__(self, store: DataStore):
        self.store = store

    def current_lines(self, kind: DocumentKind, document_id: str) -> List[LineBase]:
        rows = self.store.table(kind.lines_table).find(lambda d: d.get(kind.parent_key) == document_id)
        lines = [kind.line_model.model_validate(r) for r in rows]
        return [ln for ln in lines if not ln.is_deleted]

    def recompute(self, kind: DocumentKind, document_id: str) -> LineTotals:
        with self.store.transaction():
            parent = self.store.select_for_update(kind.table, document_id)
            totals = sum_line_totals(self.current_lines(kind, document_id))
            parent.update({k: str(v) for k, v in totals._asdict().items()})
            self.store.table(kind.table).update(parent)
        logger.debug("%s %s: totaux %s / %s / %s", kind.name, document_id, *totals)
        return totals
