"""
Erreurs métier du moteur devis / factures.

Chaque erreur porte un ``code`` stable, lisible par la couche HTTP
(``quote_locked``, ``invoice_locked``, ``number_already_exists``...).
"""
from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

# pydantic error type -> suffixe de code
_PYDANTIC_SUFFIXES = {
    "missing": "required",
    "greater_than_equal": "must_be_positive",
    "greater_than": "must_be_positive",
    "less_than_equal": "too_large",
    "less_than": "too_large",
    "string_too_short": "required",
    "string_too_long": "too_long",
}


class BillingError(Exception):
    code = "billing_error"

    def __init__(self, code: Optional[str] = None, message: Optional[str] = None):
        if code:
            self.code = code
        super().__init__(message or self.code)


class DocumentLocked(BillingError):
    """Refus d'un garde (statut terminal ou facture verrouillée)."""
    code = "document_locked"


class TransitionDenied(BillingError):
    code = "transition_denied"

    def __init__(self, old_status: str, new_status: str):
        self.old_status = old_status
        self.new_status = new_status
        super().__init__(message=f"transition {old_status} -> {new_status} denied")


class ConflictError(BillingError):
    code = "conflict"


class NotFound(BillingError):
    code = "not_found"

    def __init__(self, entity: str, obj_id: object):
        self.entity = entity
        self.obj_id = obj_id
        super().__init__(message=f"{entity} {obj_id} not found")


class ValidationFailed(BillingError):
    code = "validation_error"

    def __init__(self, field: str, code: str):
        self.field = field
        super().__init__(code, f"{field}: {code}")

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "ValidationFailed":
        err = exc.errors()[0]
        loc = [str(p) for p in err.get("loc", ())]
        field = loc[0] if loc else "__root__"
        ctx_error = (err.get("ctx") or {}).get("error")
        if not loc and ctx_error is not None:
            # model_validator : le code est le message de la ValueError
            return cls(field, str(ctx_error))
        suffix = _PYDANTIC_SUFFIXES.get(err.get("type", ""), "invalid")
        return cls(field, f"{field}_{suffix}")
