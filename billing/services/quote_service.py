from __future__ import annotations
import logging
from typing import Any, List, Mapping, Optional

from billing.models.quote import Quote
from billing.services.document_service import DocumentService, build
from billing.services.kinds import QUOTE
from billing.services.lifecycle import QuoteGuard

logger = logging.getLogger(__name__)


class QuoteService(DocumentService[Quote]):
    """
    Devis : numéro fourni par l'appelant, unique par client (customer_id).
    Verrouillé par le statut (accepted / rejected / expired).
    """

    kind = QUOTE
    guard = QuoteGuard()

    # ----- CRUD ----- #

    def create_quote(self, company_id: str, **fields: Any) -> Quote:
        self._require_issuer(company_id)
        now = self.clock.now()
        data = self._merge_customer(dict(fields))
        self._require_customer(data)
        data.update(company_id=company_id, created_at=now, updated_at=now)
        data.pop("id", None)
        if data.get("status") is None:
            data.pop("status", None)

        with self.store.transaction():
            quote = build(Quote, data)
            self.repo.add(quote)
        logger.info("devis %s créé pour %s", quote.number, company_id)
        return quote

    def get_quote(self, quote_id: str, *, company_id: Optional[str] = None) -> Quote:
        return self.get(quote_id, company_id=company_id)

    def list_quotes(self, company_id: str, status: Optional[str] = None) -> List[Quote]:
        return self._list(company_id, status=status)

    def update_quote(self, quote_id: str, changes: Mapping[str, Any], *, company_id: Optional[str] = None) -> Quote:
        return self.update_document(quote_id, changes, company_id=company_id)

    def delete_quote(self, quote_id: str, *, company_id: Optional[str] = None) -> None:
        self.delete_document(quote_id, company_id=company_id)

    def _remove(self, doc: Quote) -> None:
        # suppression définitive, lignes comprises
        self.lines_repo.delete_where(lambda d: d.get("quote_id") == doc.id)
        self.repo.delete(doc.id)

    # ----- Expiration (déclenchée de l'extérieur) ----- #

    def expire_overdue(self, company_id: Optional[str] = None) -> List[Quote]:
        """Passe en 'expired' les devis envoyés dont la date de validité est dépassée."""
        today = self.clock.today()
        expired: List[Quote] = []
        with self.store.transaction():
            for d in self.repo.find(lambda d: d.get("status") == "sent"):
                if company_id is not None and d.get("company_id") != company_id:
                    continue
                quote = Quote.model_validate(d)
                if not quote.is_expired(today):
                    continue
                quote = quote.model_copy(update={"status": "expired"})
                quote.touch(self.clock.now())
                self.repo.update(quote)
                expired.append(quote)
        for q in expired:
            logger.info("devis %s expiré (validité %s)", q.number, q.valid_until)
        return expired
