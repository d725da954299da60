from __future__ import annotations
from dataclasses import dataclass
from typing import Type

from billing.models.document import Document
from billing.models.invoice import Invoice
from billing.models.line import InvoiceLine, LineBase, QuoteLine
from billing.models.quote import Quote


@dataclass(frozen=True)
class DocumentKind:
    """Où vivent un type de document et ses lignes dans le DataStore."""
    name: str
    table: str
    lines_table: str
    parent_key: str
    model: Type[Document]
    line_model: Type[LineBase]


QUOTE = DocumentKind("quote", "quotes", "quote_lines", "quote_id", Quote, QuoteLine)
INVOICE = DocumentKind("invoice", "invoices", "invoice_lines", "invoice_id", Invoice, InvoiceLine)
