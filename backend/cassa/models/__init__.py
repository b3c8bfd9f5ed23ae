"""
Modelli Database SQLAlchemy
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Import centralizzato di tutti i modelli per create_all e usage generico.

Modelli:
- Customer: Anagrafica clienti (debiti, conti scalari)
- Order / OrderLine: Ordinazioni e righe
- Payment / LineAllocation: Pagamenti e ledger delle righe pagate
- Debt / DebtPayment: Debiti clienti e relativi incassi
- ScalarAccount / Movement: Conti scalari (pagare per altri)
- PaymentRequest: Richieste di pagamento dalla sala alla cassa
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from cassa.models.customer import Customer
from cassa.models.order import Order, OrderLine
from cassa.models.payment import LineAllocation, Payment
from cassa.models.debt import Debt, DebtPayment
from cassa.models.scalar_account import Movement, ScalarAccount
from cassa.models.payment_request import PaymentRequest

__all__ = [
    "Base",
    "Customer",
    "Order",
    "OrderLine",
    "Payment",
    "LineAllocation",
    "Debt",
    "DebtPayment",
    "ScalarAccount",
    "Movement",
    "PaymentRequest",
]
