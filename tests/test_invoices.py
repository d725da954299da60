"""Tests for invoice creation, draft-only edits, send/lock and deletion rules."""

import threading
from datetime import date

import pytest

from billing.errors import ConflictError, DocumentLocked, NotFound, TransitionDenied, ValidationFailed


# ---------------------------------------------------------------------------
# create / update in draft
# ---------------------------------------------------------------------------

def test_new_invoice_defaults(invoice, customer):
    assert invoice.number == "F-2025-0001"
    assert invoice.status == "draft"
    assert invoice.is_locked is False
    assert invoice.customer_name == customer.name


def test_status_and_lock_ignored_on_create(invoices, issuer, walk_in):
    inv = invoices.create_invoice(issuer.id, status="paid", is_locked=True, total_net="99", **walk_in)
    assert inv.status == "draft"
    assert inv.is_locked is False
    assert str(inv.total_net) == "0.00"


def test_walk_in_invoice_requires_name(invoices, issuer):
    with pytest.raises(ValidationFailed) as exc:
        invoices.create_invoice(issuer.id)
    assert exc.value.code == "customer_name_required"


def test_update_draft_invoice(invoices, invoice):
    updated = invoices.update_invoice(invoice.id, {"issue_date": date(2025, 11, 6), "due_date": date(2025, 12, 6)})
    assert updated.due_date == date(2025, 12, 6)
    assert updated.status == "draft"


def test_due_date_before_issue_date(invoices, invoice):
    with pytest.raises(ValidationFailed) as exc:
        invoices.update_invoice(invoice.id, {"issue_date": date(2025, 11, 6), "due_date": date(2025, 11, 5)})
    assert exc.value.code == "due_date_before_issue_date"


def test_update_customer_id_fills_customer_fields(invoices, issuer, companies, walk_in):
    inv = invoices.create_invoice(issuer.id, **walk_in)
    assert inv.customer_name == "Mariage Dupont"

    bataclan = companies.create_company(
        name="Bataclan", address="50 boulevard Voltaire", zip_code="75011", city="Paris", country="France",
    )
    updated = invoices.update_invoice(inv.id, {"customer_id": bataclan.id})
    assert updated.customer_id == bataclan.id
    assert updated.customer_name == "Bataclan"
    assert updated.customer_address == "50 boulevard Voltaire"
    assert updated.customer_zip == "75011"
    assert updated.customer_city == "Paris"
    assert updated.customer_country == "France"


def test_manual_name_kept_when_customer_id_untouched(invoices, invoice):
    updated = invoices.update_invoice(invoice.id, {"customer_name": "Salle Pleyel (billetterie)"})
    assert updated.customer_name == "Salle Pleyel (billetterie)"


def test_clearing_customer_requires_name(invoices, invoice):
    with pytest.raises(ValidationFailed) as exc:
        invoices.update_invoice(invoice.id, {"customer_id": None, "customer_name": None})
    assert exc.value.code == "customer_name_required"


def test_number_unique_per_issuer(invoices, invoice, issuer, customer):
    other = invoices.create_invoice(issuer.id, customer_id=customer.id)
    with pytest.raises(ConflictError) as exc:
        invoices.update_invoice(other.id, {"number": invoice.number})
    assert exc.value.code == "number_already_exists"


# ---------------------------------------------------------------------------
# draft -> sent
# ---------------------------------------------------------------------------

def test_sending_locks_invoice(invoices, invoice):
    sent = invoices.update_invoice(invoice.id, {"status": "sent"})
    assert sent.status == "sent"
    assert sent.is_locked is True
    stored = invoices.get_invoice(invoice.id)
    assert stored.is_locked is True
    assert len(invoices.versions(invoice.id)) == 1


def test_sent_invoice_rejects_mutations(invoices, invoice):
    line = invoices.create_line(invoice.id, "Régie son", quantity=1, unit_price=500, tax_rate=20)
    invoices.update_invoice(invoice.id, {"status": "sent"})

    for call in (
        lambda: invoices.update_invoice(invoice.id, {"customer_name": "x"}),
        lambda: invoices.update_invoice(invoice.id, {"status": "paid"}),
        lambda: invoices.create_line(invoice.id, "Extra", quantity=1, unit_price=1),
        lambda: invoices.update_line(line.id, {"quantity": 2}),
        lambda: invoices.delete_line(line.id),
    ):
        with pytest.raises(DocumentLocked) as exc:
            call()
        assert exc.value.code == "invoice_locked"


def test_non_draft_unlocked_invoice_rejects_mutations(invoices, invoice):
    paid = invoices.update_invoice(invoice.id, {"status": "paid"})
    assert paid.is_locked is False
    with pytest.raises(DocumentLocked) as exc:
        invoices.create_line(invoice.id, "x", quantity=1, unit_price=1)
    assert exc.value.code == "invoice_locked"
    assert invoices.versions(invoice.id) == []


def test_locked_draft_rejects_mutations(invoices, invoice):
    invoices.update_invoice(invoice.id, {"is_locked": True})
    with pytest.raises(DocumentLocked) as exc:
        invoices.update_invoice(invoice.id, {"customer_name": "x"})
    assert exc.value.code == "invoice_locked"


# ---------------------------------------------------------------------------
# status-only transitions
# ---------------------------------------------------------------------------

def test_transition_from_draft_behaves_like_update(invoices, invoice):
    sent = invoices.transition(invoice.id, "sent")
    assert sent.is_locked is True
    assert len(invoices.versions(invoice.id)) == 1


def test_sent_invoice_can_be_paid(invoices, invoice):
    invoices.transition(invoice.id, "sent")
    paid = invoices.transition(invoice.id, "paid")
    assert paid.status == "paid"
    assert paid.is_locked is True
    assert len(invoices.versions(invoice.id)) == 1


def test_sent_invoice_can_be_canceled(invoices, invoice):
    invoices.transition(invoice.id, "sent")
    assert invoices.transition(invoice.id, "canceled").status == "canceled"


@pytest.mark.parametrize("target", ["draft", "canceled", "sent"])
def test_paid_invoice_is_final(invoices, invoice, target):
    invoices.transition(invoice.id, "sent")
    invoices.transition(invoice.id, "paid")
    with pytest.raises(TransitionDenied) as exc:
        invoices.transition(invoice.id, target)
    assert exc.value.code == "transition_denied"


def test_sent_back_to_draft_denied(invoices, invoice):
    invoices.transition(invoice.id, "sent")
    with pytest.raises(TransitionDenied):
        invoices.transition(invoice.id, "draft")
    assert invoices.get_invoice(invoice.id).status == "sent"


def test_same_status_is_noop(invoices, invoice):
    invoices.transition(invoice.id, "sent")
    assert invoices.transition(invoice.id, "sent").status == "sent"
    assert len(invoices.versions(invoice.id)) == 1


def test_unknown_status(invoices, invoice):
    with pytest.raises(ValidationFailed) as exc:
        invoices.transition(invoice.id, "archived")
    assert exc.value.code == "status_invalid"


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------

def test_delete_draft_is_soft(invoices, invoice, issuer):
    invoices.delete_invoice(invoice.id, company_id=issuer.id)
    with pytest.raises(NotFound):
        invoices.get_invoice(invoice.id)
    assert invoices.list_invoices(issuer.id) == []
    assert invoices.repo.get_by_id(invoice.id)["deleted_at"] is not None


def test_delete_locked_invoice(invoices, invoice):
    invoices.transition(invoice.id, "sent")
    with pytest.raises(DocumentLocked) as exc:
        invoices.delete_invoice(invoice.id)
    assert exc.value.code == "invoice_locked"


def test_delete_requires_draft(invoices, invoice):
    invoices.update_invoice(invoice.id, {"status": "canceled"})
    with pytest.raises(DocumentLocked) as exc:
        invoices.delete_invoice(invoice.id)
    assert exc.value.code == "invoice_can_only_be_deleted_in_draft"


def test_deleted_invoice_lines_not_reachable(invoices, invoice):
    line = invoices.create_line(invoice.id, "a", quantity=1, unit_price=1)
    invoices.delete_invoice(invoice.id)
    with pytest.raises(NotFound):
        invoices.get_line(line.id)
    with pytest.raises(NotFound):
        invoices.create_line(invoice.id, "b", quantity=1, unit_price=1)


# ---------------------------------------------------------------------------
# listing / scoping
# ---------------------------------------------------------------------------

def test_list_filters(invoices, invoice, issuer, customer):
    other = invoices.create_invoice(issuer.id, customer_id=customer.id)
    invoices.transition(other.id, "sent")
    assert [i.id for i in invoices.list_invoices(issuer.id, status="draft")] == [invoice.id]
    assert [i.id for i in invoices.list_invoices(issuer.id, locked=True)] == [other.id]
    assert [i.id for i in invoices.list_invoices(issuer.id, locked=False)] == [invoice.id]


def test_invoice_scoped_to_issuer(invoices, invoice, companies):
    intruder = companies.create_company(type="issuer", name="Concurrent")
    with pytest.raises(NotFound):
        invoices.get_invoice(invoice.id, company_id=intruder.id)
    with pytest.raises(NotFound):
        invoices.delete_invoice(invoice.id, company_id=intruder.id)
    with pytest.raises(NotFound):
        invoices.versions(invoice.id, company_id=intruder.id)


def test_list_overdue(invoices, invoice, clock):
    invoices.update_invoice(invoice.id, {"due_date": date(2025, 11, 1)})
    assert [i.id for i in invoices.list_overdue(invoice.company_id)] == [invoice.id]
    invoices.transition(invoice.id, "sent")
    invoices.transition(invoice.id, "paid")
    assert invoices.list_overdue(invoice.company_id) == []


def test_lines_scoped_to_issuer(invoices, invoice, companies):
    intruder = companies.create_company(type="issuer", name="Concurrent")
    line = invoices.create_line(invoice.id, "Régie son", quantity=1, unit_price=500, tax_rate=20)

    with pytest.raises(NotFound):
        invoices.create_line(invoice.id, "intrus", quantity=1, unit_price=10, company_id=intruder.id)
    with pytest.raises(NotFound):
        invoices.update_line(line.id, {"quantity": 5}, company_id=intruder.id)
    with pytest.raises(NotFound):
        invoices.delete_line(line.id, company_id=intruder.id)
    with pytest.raises(NotFound):
        invoices.get_line(line.id, company_id=intruder.id)
    with pytest.raises(NotFound):
        invoices.list_lines(invoice.id, company_id=intruder.id)

    stored = invoices.get_invoice(invoice.id)
    assert stored.total_net == 500
    assert [ln.quantity for ln in invoices.list_lines(invoice.id)] == [1]
    assert invoices.get_line(line.id, company_id=invoice.company_id).id == line.id


# ---------------------------------------------------------------------------
# concurrent senders
# ---------------------------------------------------------------------------

def _race(*calls):
    """Lance les appels en parallèle ; renvoie résultats ou exceptions."""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def run(i, call):
        barrier.wait()
        try:
            outcomes[i] = call()
        except Exception as e:
            outcomes[i] = e

    threads = [threading.Thread(target=run, args=(i, c)) for i, c in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return outcomes


def test_concurrent_send_updates_capture_one_version(invoices, invoice):
    invoices.create_line(invoice.id, "Régie son", quantity=1, unit_price=500, tax_rate=20)
    send = lambda: invoices.update_invoice(invoice.id, {"status": "sent"})

    outcomes = _race(send, send)

    denied = [o for o in outcomes if isinstance(o, DocumentLocked)]
    sent = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(sent) == 1 and len(denied) == 1
    assert denied[0].code == "invoice_locked"
    assert len(invoices.versions(invoice.id)) == 1
    assert invoices.get_invoice(invoice.id).is_locked is True


def test_concurrent_send_transitions_capture_one_version(invoices, invoice):
    send = lambda: invoices.transition(invoice.id, "sent")

    outcomes = _race(send, send)

    assert all(not isinstance(o, Exception) for o in outcomes)
    assert [o.status for o in outcomes] == ["sent", "sent"]
    assert len(invoices.versions(invoice.id)) == 1
