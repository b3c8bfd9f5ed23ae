"""
Router FastAPI per i Pagamenti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Gli importi arrivano in euro e vengono convertiti in centesimi qui.
Gli errori di dominio sono tradotti in risposte HTTP dall'handler
globale di AppException.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import get_db
from cassa.core.money import to_cents
from cassa.schemas.payment import (
    CancelPaymentRequest,
    MultiOrderPaymentRequest,
    PaymentRead,
    PayOrderRequest,
    PayPartialRequest,
    PayTableRequest,
    TablePaymentOutcome,
)
from cassa.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/payments",
    tags=["Pagamenti"],
)


def get_payment_service() -> PaymentService:
    return PaymentService()


@router.post(
    "/orders/{order_id}",
    summary="Pagamento completo",
    description="Incassa il residuo dell'ordinazione (tolleranza di un centesimo).",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
)
async def pay_order(
    order_id: uuid.UUID,
    data: PayOrderRequest,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentRead:
    payment = await service.pay_order(
        db, order_id, to_cents(data.amount), data.method, data.payer_name
    )
    return PaymentRead.model_validate(payment)


@router.post(
    "/orders/{order_id}/partial",
    summary="Pagamento parziale per righe",
    response_model=PaymentRead,
    status_code=status.HTTP_201_CREATED,
)
async def pay_partial(
    order_id: uuid.UUID,
    data: PayPartialRequest,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentRead:
    payment = await service.pay_partial(
        db,
        order_id,
        data.selections,
        data.method,
        data.payer_name,
        to_cents(data.amount) if data.amount is not None else None,
    )
    return PaymentRead.model_validate(payment)


@router.post(
    "/tables/{table_key}",
    summary="Pagamento tavolo",
    description=(
        "Salda tutte le ordinazioni del tavolo, una transazione per ordinazione. "
        "L'esito riporta per ciascuna se è stata pagata."
    ),
    response_model=TablePaymentOutcome,
)
async def pay_table(
    table_key: str,
    data: PayTableRequest,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> TablePaymentOutcome:
    return await service.pay_table(db, table_key.strip().upper(), data.method, data.payer_name)


@router.post(
    "/multi",
    summary="Pagamento parziale su più ordinazioni",
    response_model=TablePaymentOutcome,
)
async def pay_multi_order_partial(
    data: MultiOrderPaymentRequest,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> TablePaymentOutcome:
    return await service.pay_multi_order_partial(db, data.legs, data.method, data.payer_name)


@router.post(
    "/orders/{order_id}/cancel",
    summary="Annulla l'ultimo pagamento",
    description="Idempotente: un pagamento già annullato viene restituito invariato.",
    response_model=PaymentRead,
)
async def cancel_payment(
    order_id: uuid.UUID,
    data: CancelPaymentRequest,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentRead:
    payment = await service.cancel_payment(db, order_id, data.reason)
    return PaymentRead.model_validate(payment)


@router.post(
    "/orders/{order_id}/{payment_id}/cancel",
    summary="Annulla un pagamento specifico",
    response_model=PaymentRead,
)
async def cancel_payment_by_id(
    order_id: uuid.UUID,
    payment_id: uuid.UUID,
    data: CancelPaymentRequest,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentRead:
    payment = await service.cancel_payment_by_id(db, order_id, payment_id, data.reason)
    return PaymentRead.model_validate(payment)


@router.get(
    "/{payment_id}",
    summary="Dettaglio pagamento",
    response_model=PaymentRead,
)
async def get_payment(
    payment_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: PaymentService = Depends(get_payment_service),
) -> PaymentRead:
    return PaymentRead.model_validate(await service.get_by_id(db, payment_id))
