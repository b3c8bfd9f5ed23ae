"""
Schemas Pydantic per il progetto Cassa

Questo modulo contiene gli schemi Pydantic utilizzati per la validazione
delle richieste e la serializzazione delle risposte API.
"""

from cassa.schemas.order import (
    OrderCreate,
    OrderLineCreate,
    OrderLineRead,
    OrderRead,
    OrderStatus,
    OrderType,
    PaymentState,
    TableGroup,
)
from cassa.schemas.payment import (
    LegOutcome,
    LineSelection,
    PaymentKind,
    PaymentMethod,
    PaymentRead,
    PaymentRecordStatus,
    TablePaymentOutcome,
)
from cassa.schemas.debt import DebtRead, DebtState
from cassa.schemas.scalar_account import (
    AccountBalance,
    MovementRead,
    MovementType,
    TabSettlement,
    TabSummary,
)

__all__ = [
    "OrderCreate",
    "OrderLineCreate",
    "OrderLineRead",
    "OrderRead",
    "OrderStatus",
    "OrderType",
    "PaymentState",
    "TableGroup",
    "LegOutcome",
    "LineSelection",
    "PaymentKind",
    "PaymentMethod",
    "PaymentRead",
    "PaymentRecordStatus",
    "TablePaymentOutcome",
    "DebtRead",
    "DebtState",
    "AccountBalance",
    "MovementRead",
    "MovementType",
    "TabSettlement",
    "TabSummary",
]
