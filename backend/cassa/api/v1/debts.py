"""
Router FastAPI per i Debiti Cliente
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import get_db
from cassa.core.money import to_cents
from cassa.schemas.debt import (
    CustomerDebtBalance,
    DebtCreate,
    DebtPaymentCreate,
    DebtPaymentRead,
    DebtRead,
    DirectDebtCreate,
)
from cassa.services.debt_service import DebtService

router = APIRouter(
    prefix="/debts",
    tags=["Debiti"],
)


def get_debt_service() -> DebtService:
    return DebtService()


@router.post(
    "/",
    summary="Chiudi ordinazione a debito",
    description=(
        "Pone a debito del cliente l'importo indicato. Se l'importo è inferiore "
        "al residuo vanno indicate le righe coperte."
    ),
    response_model=DebtRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_debt(
    data: DebtCreate,
    db: AsyncSession = Depends(get_db),
    service: DebtService = Depends(get_debt_service),
) -> DebtRead:
    debt = await service.create_debt(
        db,
        data.customer_id,
        data.order_id,
        to_cents(data.amount),
        note=data.note,
        selections=data.selections,
    )
    return DebtRead.model_validate(debt)


@router.post(
    "/direct",
    summary="Debito diretto",
    description="Debito non legato a un'ordinazione (es. saldo pregresso).",
    response_model=DebtRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_direct_debt(
    data: DirectDebtCreate,
    db: AsyncSession = Depends(get_db),
    service: DebtService = Depends(get_debt_service),
) -> DebtRead:
    debt = await service.create_direct_debt(db, data.customer_id, to_cents(data.amount), data.note)
    return DebtRead.model_validate(debt)


@router.get(
    "/",
    summary="Debiti aperti",
    response_model=list[DebtRead],
)
async def list_open_debts(
    customer_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    service: DebtService = Depends(get_debt_service),
) -> list[DebtRead]:
    debts = await service.get_open_debts(db, customer_id)
    return [DebtRead.model_validate(d) for d in debts]


@router.get(
    "/customers/{customer_id}/balance",
    summary="Saldo debiti cliente",
    response_model=CustomerDebtBalance,
)
async def get_customer_balance(
    customer_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: DebtService = Depends(get_debt_service),
) -> CustomerDebtBalance:
    return await service.get_customer_balance(db, customer_id)


@router.get(
    "/{debt_id}",
    summary="Dettaglio debito",
    response_model=DebtRead,
)
async def get_debt(
    debt_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: DebtService = Depends(get_debt_service),
) -> DebtRead:
    return DebtRead.model_validate(await service.get_by_id(db, debt_id))


@router.post(
    "/{debt_id}/payments",
    summary="Incasso su debito",
    response_model=DebtRead,
)
async def pay_debt(
    debt_id: uuid.UUID,
    data: DebtPaymentCreate,
    db: AsyncSession = Depends(get_db),
    service: DebtService = Depends(get_debt_service),
) -> DebtRead:
    debt = await service.pay_debt(db, debt_id, to_cents(data.amount), data.method, data.note)
    return DebtRead.model_validate(debt)


@router.get(
    "/{debt_id}/payments",
    summary="Incassi su debito",
    response_model=list[DebtPaymentRead],
)
async def get_debt_payments(
    debt_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: DebtService = Depends(get_debt_service),
) -> list[DebtPaymentRead]:
    payments = await service.get_debt_payments(db, debt_id)
    return [DebtPaymentRead.model_validate(p) for p in payments]
