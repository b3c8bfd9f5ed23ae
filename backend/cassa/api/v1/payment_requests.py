"""
Router FastAPI per le Richieste di pagamento
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import get_db
from cassa.schemas.payment import PaymentMethod
from cassa.schemas.payment_request import (
    PaymentRequestCreate,
    PaymentRequestRead,
    PaymentRequestReject,
)
from cassa.services.payment_request_service import PaymentRequestService

router = APIRouter(
    prefix="/payment-requests",
    tags=["Richieste di pagamento"],
)


def get_payment_request_service() -> PaymentRequestService:
    return PaymentRequestService()


@router.post(
    "/",
    summary="Invia richiesta di pagamento",
    description=(
        "Il cameriere chiede alla cassa di incassare l'ordinazione: intero "
        "residuo oppure solo le righe indicate."
    ),
    response_model=PaymentRequestRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_payment_request(
    data: PaymentRequestCreate,
    db: AsyncSession = Depends(get_db),
    service: PaymentRequestService = Depends(get_payment_request_service),
) -> PaymentRequestRead:
    request = await service.create_request(
        db,
        data.order_id,
        data.method,
        customer_name=data.customer_name,
        waiter_name=data.waiter_name,
        selections=data.selections,
    )
    return PaymentRequestRead.model_validate(request)


@router.get(
    "/pending",
    summary="Richieste in attesa",
    response_model=list[PaymentRequestRead],
)
async def list_pending_requests(
    db: AsyncSession = Depends(get_db),
    service: PaymentRequestService = Depends(get_payment_request_service),
) -> list[PaymentRequestRead]:
    requests = await service.get_pending(db)
    return [PaymentRequestRead.model_validate(r) for r in requests]


@router.get(
    "/{request_id}",
    summary="Dettaglio richiesta",
    response_model=PaymentRequestRead,
)
async def get_payment_request(
    request_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: PaymentRequestService = Depends(get_payment_request_service),
) -> PaymentRequestRead:
    return PaymentRequestRead.model_validate(await service.get_by_id(db, request_id))


@router.post(
    "/{request_id}/accept",
    summary="Accetta richiesta",
    description="Esegue il pagamento richiesto e chiude la richiesta.",
    response_model=PaymentRequestRead,
)
async def accept_payment_request(
    request_id: uuid.UUID,
    method: Optional[PaymentMethod] = Query(None, description="Metodo effettivo, se diverso"),
    db: AsyncSession = Depends(get_db),
    service: PaymentRequestService = Depends(get_payment_request_service),
) -> PaymentRequestRead:
    request = await service.accept(db, request_id, method=method)
    return PaymentRequestRead.model_validate(request)


@router.post(
    "/{request_id}/reject",
    summary="Rifiuta richiesta",
    response_model=PaymentRequestRead,
)
async def reject_payment_request(
    request_id: uuid.UUID,
    data: PaymentRequestReject,
    db: AsyncSession = Depends(get_db),
    service: PaymentRequestService = Depends(get_payment_request_service),
) -> PaymentRequestRead:
    request = await service.reject(db, request_id, data.reason)
    return PaymentRequestRead.model_validate(request)
