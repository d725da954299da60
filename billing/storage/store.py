from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from billing.errors import NotFound
from billing.settings import Settings
from billing.storage.repo import JsonRepository

logger = logging.getLogger(__name__)


class DataStore:
    """
    Regroupe les tables JSON et fournit l'unité de travail transactionnelle.

    Les transactions d'écriture sont sérialisées par un verrou ré-entrant
    unique : un document lu via select_for_update() ne peut pas être modifié
    par un autre écrivain avant la fin de la transaction. En cas d'exception
    dans le bloc le plus externe, toutes les tables reviennent à leur état
    initial et rien n'est écrit. Pas de savepoint : une exception rattrapée
    dans un bloc imbriqué ne défait pas les écritures de ce bloc.

    Toutes les tables partagent ce verrou : une lecture ou une écriture hors
    transaction venant d'un autre thread attend la fin de la transaction en
    cours, elle ne peut ni y être mêlée ni voir ses lignes non commitées.
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        *,
        backup_enabled: bool = True,
        backup_keep: int = 5,
    ) -> None:
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()
        self._depth = 0
        self._owner: Optional[int] = None
        opts = {"backup_enabled": backup_enabled, "backup_keep": backup_keep, "lock": self._lock}

        self.companies = JsonRepository(self.data_dir / "companies.json", "company", **opts)
        self.quotes = JsonRepository(
            self.data_dir / "quotes.json", "quote",
            unique_together=[("customer_id", "number")], **opts,
        )
        self.quote_lines = JsonRepository(self.data_dir / "quote_lines.json", "quote_line", **opts)
        self.invoices = JsonRepository(
            self.data_dir / "invoices.json", "invoice",
            unique_together=[("company_id", "number")], **opts,
        )
        self.invoice_lines = JsonRepository(self.data_dir / "invoice_lines.json", "invoice_line", **opts)
        self.invoice_versions = JsonRepository(self.data_dir / "invoice_versions.json", "invoice_version", **opts)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DataStore":
        return cls(settings.data_dir, backup_enabled=settings.backup_enabled, backup_keep=settings.backup_keep)

    @property
    def tables(self) -> List[JsonRepository]:
        return [
            self.companies,
            self.quotes,
            self.quote_lines,
            self.invoices,
            self.invoice_lines,
            self.invoice_versions,
        ]

    def table(self, name: str) -> JsonRepository:
        repo = getattr(self, name, None)
        if not isinstance(repo, JsonRepository):
            raise KeyError(name)
        return repo

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0 and self._owner == threading.get_ident()

    @contextmanager
    def transaction(self) -> Iterator["DataStore"]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._owner = threading.get_ident()
                for repo in self.tables:
                    repo.begin()
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    for repo in self.tables:
                        repo.rollback()
                    self._owner = None
                    logger.debug("transaction annulée")
                raise
            else:
                self._depth -= 1
                if outermost:
                    for repo in self.tables:
                        repo.commit()
                    self._owner = None

    def select_for_update(self, table: str, obj_id: Any) -> Dict[str, Any]:
        """Relit la ligne sous le verrou de la transaction courante."""
        if not self.in_transaction:
            raise RuntimeError("select_for_update() outside of a transaction")
        row = self.table(table).get_by_id(obj_id)
        if row is None:
            raise NotFound(self.table(table).entity_name, obj_id)
        return row
