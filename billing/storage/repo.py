from __future__ import annotations

import copy
import glob
import json
import logging
import os
import shutil
import threading
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from billing.errors import ConflictError, NotFound

logger = logging.getLogger(__name__)


def _json_default(o: Any) -> Any:
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    if isinstance(o, Decimal):
        return str(o)
    return str(o)


class JsonRepository:
    """
    Repo JSON générique avec clé primaire configurable.
    - Lignes gardées en mémoire, écrites sur disque à chaque mutation
      (ou au commit quand une transaction est ouverte, voir DataStore)
    - Contraintes d'unicité composites (unique_together), vérifiées à l'écriture
    - Rotation de backups (backup_enabled, backup_keep)
    - N'écrit pas si le contenu ne change pas (réduction du bruit et des .bak)
    - Verrou partageable : sous un DataStore, toutes les tables prennent le
      verrou du store, lectures comprises (rien de non commité n'est visible
      d'un autre thread)
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        entity_name: str = "entity",
        key: str = "id",
        *,
        unique_together: Sequence[Tuple[str, ...]] = (),
        backup_enabled: bool = True,
        backup_keep: int = 5,
        lock: Any = None,
    ) -> None:
        self.filepath = Path(filepath)
        self.entity_name = entity_name
        self.key = key
        self.unique_together = [tuple(u) for u in unique_together]
        self._lock = lock if lock is not None else threading.RLock()
        self.backup_enabled = backup_enabled
        self.backup_keep = max(0, int(backup_keep))

        self._in_tx = False
        self._saved: Optional[List[Dict[str, Any]]] = None
        self._dirty = False

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        if not self.filepath.exists():
            self._write_raw([])
        self._rows: List[Dict[str, Any]] = self._read_raw()

    # ---------------- I/O bas niveau ---------------- #

    def _read_raw(self) -> List[Dict[str, Any]]:
        try:
            with self.filepath.open("r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, list) else []
        except FileNotFoundError:
            return []
        except json.JSONDecodeError:
            # Fichier corrompu → sauvegarde et repart sur liste vide
            backup = self.filepath.with_suffix(".corrupt.json")
            shutil.copy2(self.filepath, backup)
            logger.error("%s: fichier corrompu, copié vers %s", self.filepath, backup)
            return []

    def _rotate_backups(self) -> None:
        if not self.backup_enabled or self.backup_keep <= 0:
            return
        pattern = str(self.filepath.with_suffix(".*.bak.json"))
        files = sorted(glob.glob(pattern))
        # garde les plus récents
        if len(files) > self.backup_keep:
            for old in files[: len(files) - self.backup_keep]:
                Path(old).unlink(missing_ok=True)

    def _write_raw(self, data: Iterable[Mapping[str, Any]]) -> None:
        with self._lock:
            new_dump = json.dumps(list(data), ensure_ascii=False, indent=2, default=_json_default)

            # si contenu identique → ne rien faire
            if self.filepath.exists():
                if self.filepath.read_text(encoding="utf-8") == new_dump:
                    return

            # backup
            if self.backup_enabled and self.filepath.exists():
                ts = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
                shutil.copy2(self.filepath, self.filepath.with_suffix(f".{ts}.bak.json"))
                self._rotate_backups()

            # write (tmp + replace : jamais de fichier à moitié écrit)
            tmp = self.filepath.with_suffix(".tmp")
            tmp.write_text(new_dump, encoding="utf-8")
            os.replace(tmp, self.filepath)

    def _persist(self) -> None:
        if self._in_tx:
            self._dirty = True
        else:
            self._write_raw(self._rows)

    # ---------------- Transactions (pilotées par DataStore) ---------------- #

    def begin(self) -> None:
        with self._lock:
            self._saved = copy.deepcopy(self._rows)
            self._in_tx = True
            self._dirty = False

    def commit(self) -> None:
        with self._lock:
            if self._dirty:
                self._write_raw(self._rows)
            self._in_tx = False
            self._saved = None
            self._dirty = False

    def rollback(self) -> None:
        with self._lock:
            if self._saved is not None:
                self._rows = self._saved
            self._in_tx = False
            self._saved = None
            self._dirty = False

    # ---------------- Helpers ---------------- #

    @staticmethod
    def _to_dict(item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        if isinstance(item, BaseModel):
            return item.model_dump(mode="json")
        return json.loads(json.dumps(dict(item), default=_json_default))

    def _check_unique(self, record: Dict[str, Any]) -> None:
        k = self.key
        for fields in self.unique_together:
            values = tuple(record.get(f) for f in fields)
            if any(v is None for v in values):
                # comme en SQL : NULL ne collisionne jamais
                continue
            for other in self._rows:
                if str(other.get(k)) == str(record.get(k)):
                    continue
                if tuple(other.get(f) for f in fields) == values:
                    raise ConflictError(
                        f"{fields[-1]}_already_exists",
                        f"{self.entity_name} with {dict(zip(fields, values))} already exists",
                    )

    # ---------------- CRUD ---------------- #

    def list_all(self) -> List[Dict[str, Any]]:
        with self._lock:
            return copy.deepcopy(self._rows)

    def get_by_id(self, obj_id: Any) -> Optional[Dict[str, Any]]:
        k = self.key
        with self._lock:
            for it in self._rows:
                if str(it.get(k)) == str(obj_id):
                    return copy.deepcopy(it)
        return None

    def require(self, obj_id: Any) -> Dict[str, Any]:
        row = self.get_by_id(obj_id)
        if row is None:
            raise NotFound(self.entity_name, obj_id)
        return row

    def add(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        record = self._to_dict(item)
        k = self.key
        if not record.get(k):
            raise ValueError(f"Cannot add {self.entity_name} without '{k}'")
        with self._lock:
            if any(str(d.get(k)) == str(record[k]) for d in self._rows):
                raise ConflictError("duplicate_key", f"{self.entity_name} with {k}={record[k]} already exists")
            self._check_unique(record)
            self._rows.append(record)
            self._persist()
        return copy.deepcopy(record)

    def update(self, item: Union[BaseModel, Mapping[str, Any]]) -> Dict[str, Any]:
        record = self._to_dict(item)
        k = self.key
        obj_id = record.get(k)
        if not obj_id:
            raise ValueError(f"Cannot update {self.entity_name} without '{k}'")
        with self._lock:
            for idx, existing in enumerate(self._rows):
                if str(existing.get(k)) == str(obj_id):
                    merged = {**existing, **record}
                    self._check_unique(merged)
                    self._rows[idx] = merged
                    self._persist()
                    return copy.deepcopy(merged)
        raise NotFound(self.entity_name, obj_id)

    def delete(self, obj_id: Any) -> bool:
        k = self.key
        with self._lock:
            new_rows = [d for d in self._rows if str(d.get(k)) != str(obj_id)]
            changed = len(new_rows) != len(self._rows)
            if changed:
                self._rows = new_rows
                self._persist()
        return changed

    def delete_where(self, predicate: Callable[[Dict[str, Any]], bool]) -> int:
        with self._lock:
            new_rows = [d for d in self._rows if not predicate(d)]
            removed = len(self._rows) - len(new_rows)
            if removed:
                self._rows = new_rows
                self._persist()
        return removed

    # ---------------- Recherches ---------------- #

    def find(self, predicate: Callable[[Dict[str, Any]], bool]) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._rows if predicate(r)]

    def find_one(self, predicate: Callable[[Dict[str, Any]], bool]) -> Optional[Dict[str, Any]]:
        with self._lock:
            for r in self._rows:
                if predicate(r):
                    return copy.deepcopy(r)
        return None
