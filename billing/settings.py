from __future__ import annotations
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel

ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"
SETTINGS_JSON = DATA_DIR / "settings.json"

# variable d'env -> champ
_ENV_KEYS = {
    "BILLING_DATA_DIR": "data_dir",
    "BILLING_INVOICE_PREFIX": "invoice_prefix",
    "BILLING_NUMBER_WIDTH": "number_width",
    "BILLING_NUMBERING_MAX_RETRIES": "numbering_max_retries",
    "BILLING_BACKUP_ENABLED": "backup_enabled",
    "BILLING_BACKUP_KEEP": "backup_keep",
    "BILLING_LOG_LEVEL": "log_level",
}


class Settings(BaseModel):
    data_dir: Path = DATA_DIR
    invoice_prefix: str = "F-"
    number_width: int = 4
    numbering_max_retries: int = 3
    backup_enabled: bool = True
    backup_keep: int = 5
    log_level: str = "INFO"


def _load_json(path: Union[str, os.PathLike]) -> Optional[Dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logging.getLogger(__name__).warning("settings illisibles: %s", p)
        return None
    return data if isinstance(data, dict) else None


def load_settings(path: Union[str, os.PathLike, None] = None, env: Optional[Dict[str, str]] = None) -> Settings:
    """
    Ordre de priorité : variables d'env > settings.json > défauts.
    settings.json accepte aussi la section "numbering" (invoice_prefix, width, max_retries).
    """
    raw = _load_json(path or SETTINGS_JSON) or {}
    values: Dict[str, Any] = {k: v for k, v in raw.items() if k in Settings.model_fields}

    numbering = raw.get("numbering") if isinstance(raw.get("numbering"), dict) else {}
    if numbering.get("invoice_prefix"):
        values["invoice_prefix"] = numbering["invoice_prefix"]
    if numbering.get("width"):
        values["number_width"] = numbering["width"]
    if numbering.get("max_retries") is not None:
        values["numbering_max_retries"] = numbering["max_retries"]

    env = os.environ if env is None else env
    for env_key, field in _ENV_KEYS.items():
        val = env.get(env_key)
        if val not in (None, ""):
            values[field] = val

    return Settings(**values)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
