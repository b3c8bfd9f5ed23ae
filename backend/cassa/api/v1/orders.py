"""
Router FastAPI per Ordinazioni e Clienti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Endpoint per l'inserimento delle ordinazioni, la consegna e la vista
cassa (ordinazioni pagabili e gruppi tavolo).
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import get_db
from cassa.schemas.customer import CustomerCreate, CustomerRead
from cassa.schemas.order import OrderCreate, OrderRead, TableGroup
from cassa.schemas.payment import PaymentRead
from cassa.services.ledger_service import LedgerService
from cassa.services.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/orders",
    tags=["Ordinazioni"],
)

customers_router = APIRouter(
    prefix="/customers",
    tags=["Clienti"],
)


# -------------------------------------------------------------------
# Dependency Injection
# -------------------------------------------------------------------

def get_order_service() -> OrderService:
    return OrderService()


# -------------------------------------------------------------------
# Clienti
# -------------------------------------------------------------------

@customers_router.post(
    "/",
    summary="Nuovo cliente",
    response_model=CustomerRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_customer(
    data: CustomerCreate,
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> CustomerRead:
    customer = await service.create_customer(db, data)
    return CustomerRead.model_validate(customer)


@customers_router.get(
    "/",
    summary="Lista clienti",
    response_model=list[CustomerRead],
)
async def list_customers(
    search: Optional[str] = Query(None, description="Ricerca per nome"),
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> list[CustomerRead]:
    customers = await service.list_customers(db, search)
    return [CustomerRead.model_validate(c) for c in customers]


# -------------------------------------------------------------------
# Ordinazioni
# -------------------------------------------------------------------

@router.get(
    "/",
    summary="Ordinazioni da pagare",
    description="Ordinazioni consegnate con residuo da pagare, opzionalmente per tavolo.",
    response_model=list[OrderRead],
)
async def list_payable_orders(
    table_key: Optional[str] = Query(None, description="Tavolo"),
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> list[OrderRead]:
    orders = await service.get_payable_orders(db, table_key=table_key.upper() if table_key else None)
    return [OrderRead.model_validate(o) for o in orders]


@router.get(
    "/table-groups",
    summary="Gruppi tavolo",
    description="Ordinazioni da pagare raggruppate per tavolo, nell'ordine della sala.",
    response_model=list[TableGroup],
)
async def get_table_groups(
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> list[TableGroup]:
    return await service.get_table_groups(db)


@router.post(
    "/",
    summary="Nuova ordinazione",
    response_model=OrderRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    data: OrderCreate,
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    order = await service.create_order(db, data)
    return OrderRead.model_validate(order)


@router.get(
    "/{order_id}",
    summary="Dettaglio ordinazione",
    response_model=OrderRead,
)
async def get_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    order = await service.get_by_id(db, order_id)
    return OrderRead.model_validate(order)


@router.post(
    "/{order_id}/deliver",
    summary="Segna come consegnata",
    response_model=OrderRead,
)
async def deliver_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    order = await service.mark_delivered(db, order_id)
    return OrderRead.model_validate(order)


@router.post(
    "/{order_id}/cancel",
    summary="Annulla ordinazione",
    response_model=OrderRead,
)
async def cancel_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> OrderRead:
    order = await service.cancel_order(db, order_id)
    return OrderRead.model_validate(order)


@router.get(
    "/{order_id}/payments",
    summary="Storico pagamenti",
    response_model=list[PaymentRead],
)
async def get_order_payments(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: OrderService = Depends(get_order_service),
) -> list[PaymentRead]:
    payments = await service.get_payments(db, order_id)
    return [PaymentRead.model_validate(p) for p in payments]


@router.get(
    "/{order_id}/verify",
    summary="Verifica coerenza righe/allocazioni",
)
async def verify_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Confronta le quantità pagate sulle righe con le allocazioni attive."""
    issues = await LedgerService().verify_order(db, order_id)
    return {"order_id": str(order_id), "consistent": not issues, "issues": issues}
