"""
Service Layer per le Richieste di pagamento
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Flusso sala -> cassa:
- il cameriere crea la richiesta (intero residuo o righe selezionate)
- la cassa vede le richieste in attesa, dalla più vecchia
- la cassa accetta (il pagamento passa dal PaymentService) o rifiuta

Una richiesta è processata una sola volta: COMPLETATO e ANNULLATO sono
stati terminali.
"""

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.database import write_transaction
from cassa.core.exceptions import AlreadyPaidError, ConflictError, NotFoundError
from cassa.core.money import format_euro
from cassa.models import Payment, PaymentRequest
from cassa.models.mixins import utcnow
from cassa.schemas.payment import LineSelection, PaymentMethod
from cassa.schemas.payment_request import PaymentRequestStatus, PaymentRequestType
from cassa.services.payment_service import PaymentService

# Logger per questo modulo
logger = logging.getLogger(__name__)


class PaymentRequestService:
    """Service per le richieste di pagamento dalla sala."""

    def __init__(self, payments: Optional[PaymentService] = None) -> None:
        self.payments = payments or PaymentService()

    @property
    def ledger(self):
        return self.payments.ledger

    # ------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------
    async def create_request(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        method: PaymentMethod,
        customer_name: Optional[str] = None,
        waiter_name: Optional[str] = None,
        selections: Optional[Sequence[LineSelection]] = None,
    ) -> PaymentRequest:
        """
        Registra una richiesta di pagamento per la cassa.

        Senza selezioni la richiesta copre l'intero residuo (ORDINAZIONE),
        con selezioni solo le righe indicate (PARZIALE). L'importo è
        calcolato ora e verificato di nuovo all'accettazione.

        Raises:
            NotFoundError: ordinazione inesistente
            AlreadyPaidError: ordinazione senza residuo
            OverAllocationError: quantità oltre il residuo di una riga
            BusinessValidationError: ordinazione non consegnata o selezioni non valide
        """
        async with write_transaction(db, "richiesta di pagamento"):
            order = await self.ledger.load_order(db, order_id)
            if order.remaining_cents <= 0:
                raise AlreadyPaidError(
                    f"L'ordinazione #{order.numero} è già stata pagata",
                    extra={"order_id": str(order_id)},
                )
            self.payments._ensure_payable(order)

            if selections:
                tipo = PaymentRequestType.PARZIALE
                amount_cents = self.ledger.selection_value_cents(order, selections)
                stored = [
                    {"line_id": str(s.line_id), "quantity": s.quantity} for s in selections
                ]
            else:
                tipo = PaymentRequestType.ORDINAZIONE
                amount_cents = order.remaining_cents
                stored = None

            request = PaymentRequest(
                order_id=order.id,
                tipo=tipo.value,
                table_key=order.table_key,
                selections=stored,
                amount_cents=amount_cents,
                method=PaymentMethod(method).value,
                stato=PaymentRequestStatus.RICHIESTA.value,
                waiter_name=waiter_name,
                customer_name=customer_name,
            )
            db.add(request)
            await db.commit()

        logger.info(
            "Richiesta di pagamento %s per ordinazione #%d: %s (%s)",
            tipo.value,
            order.numero,
            format_euro(amount_cents),
            waiter_name or "-",
        )
        return request

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_pending(self, db: AsyncSession) -> Sequence[PaymentRequest]:
        """Richieste in attesa della cassa, dalla più vecchia."""
        result = await db.execute(
            select(PaymentRequest)
            .where(PaymentRequest.stato == PaymentRequestStatus.RICHIESTA.value)
            .order_by(PaymentRequest.created_at)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def get_by_id(self, db: AsyncSession, request_id: uuid.UUID) -> PaymentRequest:
        return await self._load(db, request_id)

    async def _load(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        for_update: bool = False,
    ) -> PaymentRequest:
        stmt = (
            select(PaymentRequest)
            .where(PaymentRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        request = result.scalar_one_or_none()
        if not request:
            raise NotFoundError(f"Richiesta di pagamento {request_id} non trovata")
        return request

    @staticmethod
    def _ensure_open(request: PaymentRequest) -> None:
        if request.stato != PaymentRequestStatus.RICHIESTA.value:
            raise ConflictError(
                "Richiesta già processata",
                extra={"request_id": str(request.id), "stato": request.stato},
            )

    # ------------------------------------------------------------
    # Accettazione e rifiuto
    # ------------------------------------------------------------
    async def accept(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        method: Optional[PaymentMethod] = None,
    ) -> PaymentRequest:
        """
        Accetta la richiesta eseguendo il pagamento.

        ORDINAZIONE passa da pay_order con l'importo richiesto, PARZIALE
        da pay_partial con le righe richieste. Se il pagamento fallisce
        (ordinazione cambiata nel frattempo) la richiesta resta in attesa
        e l'errore viene propagato.

        Args:
            method: Metodo effettivo, se diverso da quello richiesto

        Raises:
            NotFoundError: richiesta inesistente
            ConflictError: richiesta già processata
            AlreadyPaidError, OverAllocationError, BusinessValidationError:
                dal pagamento
        """
        request = await self._load(db, request_id)
        self._ensure_open(request)
        # Valori letti prima del pagamento: un suo rollback scade l'oggetto
        order_id = request.order_id
        tipo = request.tipo
        amount_cents = request.amount_cents
        payer_name = request.customer_name
        selections = [LineSelection.model_validate(s) for s in request.selections or []]
        method = PaymentMethod(method or request.method)

        if tipo == PaymentRequestType.PARZIALE.value:
            payment = await self.payments.pay_partial(db, order_id, selections, method, payer_name)
        else:
            payment = await self.payments.pay_order(db, order_id, amount_cents, method, payer_name)

        return await self._complete(db, request_id, payment)

    async def _complete(self, db: AsyncSession, request_id: uuid.UUID, payment: Payment) -> PaymentRequest:
        async with write_transaction(db, "accettazione richiesta di pagamento"):
            request = await self._load(db, request_id, for_update=True)
            self._ensure_open(request)
            request.stato = PaymentRequestStatus.COMPLETATO.value
            request.payment_id = payment.id
            request.completed_at = utcnow()
            await db.commit()

        logger.info(
            "Richiesta %s accettata: pagamento %s di %s",
            request_id,
            payment.id,
            format_euro(payment.amount_cents),
        )
        return request

    async def reject(
        self,
        db: AsyncSession,
        request_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> PaymentRequest:
        """
        Raises:
            NotFoundError: richiesta inesistente
            ConflictError: richiesta già processata
        """
        async with write_transaction(db, "rifiuto richiesta di pagamento"):
            request = await self._load(db, request_id, for_update=True)
            self._ensure_open(request)
            request.stato = PaymentRequestStatus.ANNULLATO.value
            request.reject_reason = reason
            request.completed_at = utcnow()
            await db.commit()

        logger.info("Richiesta %s rifiutata: %s", request_id, reason or "nessun motivo")
        return request
