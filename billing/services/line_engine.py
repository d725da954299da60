from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, NamedTuple, TypeVar, Union

from billing.models.line import LineBase

CENT = Decimal("0.01")

Number = Union[Decimal, int, str]
L = TypeVar("L", bound=LineBase)


class LineTotals(NamedTuple):
    total_net: Decimal
    total_tax: Decimal
    total_gross: Decimal


def round_money(value: Number) -> Decimal:
    """Arrondi commercial (demi vers le haut) au centime."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_line_totals(quantity: Number, unit_price: Number, tax_rate: Number = 0) -> LineTotals:
    """
    HT = round(qté × PU), TVA = round(HT × taux / 100), TTC = round(HT + TVA).
    Arrondi à chaque étape : l'ordre des opérations fait partie du résultat.
    """
    q = Decimal(str(quantity))
    p = Decimal(str(unit_price))
    r = Decimal(str(tax_rate or 0))
    net = round_money(q * p)
    tax = round_money(net * r / 100)
    gross = round_money(net + tax)
    return LineTotals(net, tax, gross)


def apply_line_totals(line: L) -> L:
    """Écrase les totaux de la ligne (toute valeur saisie est ignorée)."""
    totals = compute_line_totals(line.quantity, line.unit_price, line.tax_rate)
    return line.model_copy(update=totals._asdict())


def sum_line_totals(lines: Iterable[LineBase]) -> LineTotals:
    net = tax = gross = Decimal("0")
    for ln in lines:
        net += ln.total_net
        tax += ln.total_tax
        gross += ln.total_gross
    return LineTotals(round_money(net), round_money(tax), round_money(gross))
