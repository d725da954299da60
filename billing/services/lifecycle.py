"""
Machine à états devis / factures.

Les gardes décident *si* une mutation est permise à partir de l'état courant ;
``invoice_transition_effects`` décide *quoi* déclencher à partir du couple
(ancien statut, nouveau statut), sans suivi de champs modifiés.
"""
from __future__ import annotations
from typing import Dict, FrozenSet, NamedTuple, Protocol, Tuple

from billing.errors import DocumentLocked, TransitionDenied
from billing.models.document import Document
from billing.models.invoice import Invoice
from billing.models.quote import Quote


class Decision(NamedTuple):
    allowed: bool
    code: str = ""

    def enforce(self) -> None:
        if not self.allowed:
            raise DocumentLocked(self.code)


ALLOW = Decision(True)


def deny(code: str) -> Decision:
    return Decision(False, code)


class TransitionGuard(Protocol):
    def can_update(self, doc: Document) -> Decision: ...

    def can_delete(self, doc: Document) -> Decision: ...

    def can_edit_lines(self, doc: Document) -> Decision: ...


class QuoteGuard:
    """Le statut fait office de verrou : accepted / rejected / expired."""

    def can_update(self, doc: Quote) -> Decision:
        if doc.is_locked:
            return deny("quote_locked")
        return ALLOW

    def can_delete(self, doc: Quote) -> Decision:
        if doc.is_locked:
            return deny("quote_cannot_be_deleted")
        return ALLOW

    def can_edit_lines(self, doc: Quote) -> Decision:
        return self.can_update(doc)


class InvoiceGuard:
    """Modifiable uniquement en brouillon et non verrouillée."""

    def can_update(self, doc: Invoice) -> Decision:
        if doc.is_locked or doc.status != "draft":
            return deny("invoice_locked")
        return ALLOW

    def can_delete(self, doc: Invoice) -> Decision:
        if doc.is_locked:
            return deny("invoice_locked")
        if doc.status != "draft":
            return deny("invoice_can_only_be_deleted_in_draft")
        return ALLOW

    def can_edit_lines(self, doc: Invoice) -> Decision:
        return self.can_update(doc)


# ---------- Effets de transition (factures) ---------- #

class TransitionEffects(NamedTuple):
    snapshot: bool = False
    lock: bool = False


NO_EFFECTS = TransitionEffects()

_INVOICE_EFFECTS: Dict[Tuple[str, str], TransitionEffects] = {
    ("draft", "sent"): TransitionEffects(snapshot=True, lock=True),
}

# changements de statut seuls, autorisés sur une facture verrouillée
LOCKED_INVOICE_MOVES: Dict[str, FrozenSet[str]] = {
    "sent": frozenset({"paid", "canceled"}),
}


def invoice_transition_effects(old_status: str, new_status: str) -> TransitionEffects:
    return _INVOICE_EFFECTS.get((old_status, new_status), NO_EFFECTS)


def check_locked_invoice_move(invoice: Invoice, new_status: str) -> None:
    if new_status not in LOCKED_INVOICE_MOVES.get(invoice.status, frozenset()):
        raise TransitionDenied(invoice.status, new_status)
