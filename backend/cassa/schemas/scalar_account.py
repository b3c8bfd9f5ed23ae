"""
Schemas Pydantic per i Conti Scalari
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Contiene:
- Enums: MovementType, AccountStatus
- Richieste di apertura conto, movimento e pagamento "per altri"
- Riepilogo dei conti aperti (TabSummary)
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from cassa.core.money import from_cents
from cassa.schemas.payment import PaymentMethod, PaymentRead


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class MovementType(str, Enum):
    """Tipo di movimento del conto scalare."""
    ORDINE = "ORDINE"
    PAGAMENTO = "PAGAMENTO"
    STORNO = "STORNO"


class AccountStatus(str, Enum):
    APERTO = "APERTO"
    CHIUSO = "CHIUSO"


# -------------------------------------------------------------------
# Richieste
# -------------------------------------------------------------------

class AccountOpen(BaseModel):
    """Intestatario del conto: un tavolo oppure un cliente."""

    table_key: Optional[str] = Field(None, max_length=20)
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = Field(None, max_length=200)

    @model_validator(mode="after")
    def check_owner(self) -> "AccountOpen":
        if not (self.table_key or self.customer_id or self.customer_name):
            raise ValueError("Indicare un tavolo o un cliente")
        return self


class MovementCreate(BaseModel):
    """Nuovo movimento su un conto scalare."""

    tipo: MovementType
    amount: Decimal = Field(..., description="Importo in euro (sempre positivo)")
    reversed_movement_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None
    payer_name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None


class TabPaymentRequest(BaseModel):
    """Pagamento "per altri" su un conto scalare."""

    amount: Decimal
    method: PaymentMethod
    payer_name: Optional[str] = Field(None, max_length=200)


# -------------------------------------------------------------------
# Risposte
# -------------------------------------------------------------------

class MovementRead(BaseModel):
    id: uuid.UUID
    account_id: uuid.UUID
    tipo: MovementType
    amount_cents: int
    reversed_movement_id: Optional[uuid.UUID] = None
    payment_id: Optional[uuid.UUID] = None
    order_id: Optional[uuid.UUID] = None
    payer_name: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScalarAccountRead(BaseModel):
    id: uuid.UUID
    table_key: Optional[str] = None
    customer_id: Optional[uuid.UUID] = None
    customer_name: Optional[str] = None
    stato: AccountStatus
    opened_at: datetime
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AccountBalance(BaseModel):
    """Totali di un conto ricavati dai movimenti."""

    account_id: uuid.UUID
    owner: str
    stato: AccountStatus
    totale_ordinato_cents: int = 0
    totale_pagato_cents: int = 0
    saldo_cents: int = 0
    movements_count: int = 0

    @computed_field
    @property
    def saldo_rimanente(self) -> Decimal:
        return from_cents(self.saldo_cents)


class TabSummary(BaseModel):
    """Riepilogo dei conti scalari aperti."""

    accounts: list[AccountBalance] = Field(default_factory=list)

    @computed_field
    @property
    def totale_ordinato_cents(self) -> int:
        return sum(a.totale_ordinato_cents for a in self.accounts)

    @computed_field
    @property
    def totale_pagato_cents(self) -> int:
        return sum(a.totale_pagato_cents for a in self.accounts)

    @computed_field
    @property
    def saldo_cents(self) -> int:
        return sum(a.saldo_cents for a in self.accounts)


class TabSettlement(BaseModel):
    """
    Esito del pagamento "per altri" in due passi.

    Se l'incasso fallisce non viene registrato nulla e il chiamante riceve
    l'errore. failed_step="movement" indica un incasso registrato il cui
    movimento sul conto manca: va ripetuto con record_movement usando lo
    stesso payment_id.
    """

    payment: Optional[PaymentRead] = None
    movement: Optional[MovementRead] = None
    failed_step: Optional[str] = None
    error_code: Optional[str] = None
    detail: Optional[str] = None

    @computed_field
    @property
    def ok(self) -> bool:
        return self.failed_step is None
