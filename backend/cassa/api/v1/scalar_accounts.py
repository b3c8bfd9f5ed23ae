"""
Router FastAPI per i Conti Scalari
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import get_db
from cassa.core.money import to_cents
from cassa.schemas.payment import PaymentRead
from cassa.schemas.scalar_account import (
    AccountBalance,
    AccountOpen,
    MovementCreate,
    MovementRead,
    ScalarAccountRead,
    TabPaymentRequest,
    TabSettlement,
    TabSummary,
)
from cassa.services.cassa_service import CassaService
from cassa.services.scalar_account_service import ScalarAccountService

router = APIRouter(
    prefix="/accounts",
    tags=["Conti Scalari"],
)


def get_account_service() -> ScalarAccountService:
    return ScalarAccountService()


def get_cassa_service() -> CassaService:
    return CassaService()


@router.post(
    "/",
    summary="Apri (o recupera) conto",
    description="Restituisce il conto aperto dell'intestatario, creandolo se assente.",
    response_model=ScalarAccountRead,
    status_code=status.HTTP_201_CREATED,
)
async def open_account(
    data: AccountOpen,
    db: AsyncSession = Depends(get_db),
    service: ScalarAccountService = Depends(get_account_service),
) -> ScalarAccountRead:
    account = await service.get_or_open_account(
        db,
        table_key=data.table_key.strip().upper() if data.table_key else None,
        customer_id=data.customer_id,
        customer_name=data.customer_name,
    )
    return ScalarAccountRead.model_validate(account)


@router.get(
    "/summary",
    summary="Riepilogo conti aperti",
    response_model=TabSummary,
)
async def get_tab_summary(
    db: AsyncSession = Depends(get_db),
    service: ScalarAccountService = Depends(get_account_service),
) -> TabSummary:
    return await service.get_tab_summary(db)


@router.get(
    "/unrecorded-payments",
    summary="Incassi senza movimento",
    description="Incassi per altri il cui movimento sul conto non è stato registrato.",
    response_model=list[PaymentRead],
)
async def get_unrecorded_payments(
    account_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    service: ScalarAccountService = Depends(get_account_service),
) -> list[PaymentRead]:
    payments = await service.find_unrecorded_payments(db, account_id)
    return [PaymentRead.model_validate(p) for p in payments]


@router.get(
    "/{account_id}",
    summary="Saldo conto",
    response_model=AccountBalance,
)
async def get_account_balance(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ScalarAccountService = Depends(get_account_service),
) -> AccountBalance:
    return await service.get_account_balance(db, account_id)


@router.get(
    "/{account_id}/movements",
    summary="Movimenti del conto",
    response_model=list[MovementRead],
)
async def get_movements(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: ScalarAccountService = Depends(get_account_service),
) -> list[MovementRead]:
    movements = await service.get_movements(db, account_id)
    return [MovementRead.model_validate(m) for m in movements]


@router.post(
    "/{account_id}/movements",
    summary="Registra movimento",
    response_model=MovementRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_movement(
    account_id: uuid.UUID,
    data: MovementCreate,
    db: AsyncSession = Depends(get_db),
    service: ScalarAccountService = Depends(get_account_service),
) -> MovementRead:
    movement = await service.record_movement(
        db,
        account_id,
        data.tipo,
        to_cents(data.amount),
        reversed_movement_id=data.reversed_movement_id,
        order_id=data.order_id,
        payer_name=data.payer_name,
        description=data.description,
    )
    return MovementRead.model_validate(movement)


@router.post(
    "/{account_id}/pay-for-others",
    summary="Pagamento per altri",
    description=(
        "Incasso e movimento sul conto in due passi. Se il movimento non viene "
        "registrato la risposta riporta failed_step='movement'."
    ),
    response_model=TabSettlement,
)
async def pay_for_others(
    account_id: uuid.UUID,
    data: TabPaymentRequest,
    db: AsyncSession = Depends(get_db),
    cassa: CassaService = Depends(get_cassa_service),
) -> TabSettlement:
    result = await cassa.pay_for_others(db, account_id, data.amount, data.method, data.payer_name)
    return result.unwrap()
