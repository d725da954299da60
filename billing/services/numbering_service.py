from __future__ import annotations
import logging
import re
from typing import Optional

from billing.clock import Clock, SystemClock
from billing.storage.store import DataStore

logger = logging.getLogger(__name__)


class NumberingService:
    """
    Numérotation des factures par émetteur et par année : F-YYYY-NNNN.
    Au-delà de 9999 la largeur augmente (F-2025-10000), l'analyse suit.
    """

    def __init__(
        self,
        store: DataStore,
        clock: Optional[Clock] = None,
        *,
        prefix: str = "F-",
        width: int = 4,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.prefix = prefix
        self.width = width

    def year_prefix(self, year: Optional[int] = None) -> str:
        return f"{self.prefix}{year or self.clock.now().year}-"

    def next_invoice_number(self, issuer_id: str) -> str:
        prefix = self.year_prefix()
        pattern = re.compile(re.escape(prefix) + r"(\d+)")

        # factures supprimées (soft delete) comprises
        rows = self.store.invoices.find(
            lambda d: d.get("company_id") == issuer_id and str(d.get("number") or "").startswith(prefix)
        )
        max_n = 0
        for d in rows:
            m = pattern.match(d["number"])
            if m:
                max_n = max(max_n, int(m.group(1)))

        number = f"{prefix}{max_n + 1:0{self.width}d}"
        logger.debug("émetteur %s: prochain numéro %s", issuer_id, number)
        return number
