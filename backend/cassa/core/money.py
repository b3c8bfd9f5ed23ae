"""
Aritmetica monetaria in centesimi interi.
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Tutti i calcoli interni avvengono su interi (centesimi di euro).
La conversione da/verso Decimal avviene solo ai bordi: schemi di
richiesta/risposta e facade del core.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from cassa.core.exceptions import BusinessValidationError

Amount = Union[Decimal, int, str, float]

_CENT = Decimal("0.01")


def to_cents(amount: Amount) -> int:
    """
    Converte un importo in euro in centesimi interi.

    I float passano da str() per non ereditare l'errore di rappresentazione
    binaria (es. 0.1 + 0.2). Arrotondamento ROUND_HALF_UP al centesimo.

    Raises:
        BusinessValidationError: importo non numerico
    """
    if isinstance(amount, bool):
        raise BusinessValidationError(f"Importo non valido: {amount!r}")
    try:
        value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
        if not value.is_finite():
            raise InvalidOperation
        return int((value.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    except (InvalidOperation, ValueError):
        raise BusinessValidationError(f"Importo non valido: {amount!r}") from None


def from_cents(cents: int) -> Decimal:
    """Converte centesimi interi in Decimal euro con due decimali."""
    return (Decimal(cents) / 100).quantize(_CENT)


def within_tolerance(a_cents: int, b_cents: int, tolerance_cents: int = 1) -> bool:
    """True se i due importi differiscono al più della tolleranza."""
    return abs(a_cents - b_cents) <= tolerance_cents


def format_euro(cents: int) -> str:
    """Rappresentazione leggibile per log e messaggi (es. "€12.50")."""
    return f"€{from_cents(cents)}"
