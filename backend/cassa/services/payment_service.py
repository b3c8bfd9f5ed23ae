"""
Service Layer per i Pagamenti
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Modalità di pagamento supportate:
- ordine completo (importo entro la tolleranza dal residuo)
- selezione parziale di righe/quantità
- tavolo completo (una transazione per ordinazione, non atomico)
- multi-ordine parziale (un pagatore su righe di più ordinazioni)
- pagamento "per altri" su conto scalare (primo passo)

Ogni pagamento è una singola transazione: Payment + allocazioni +
ricalcolo stato, poi commit. Lo scontrino viene richiesto solo dopo
il commit e un suo errore non annulla il pagamento.
"""

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cassa.core.config import settings
from cassa.core.database import write_transaction
from cassa.core.exceptions import (
    AlreadyPaidError,
    AppException,
    BusinessValidationError,
    NotFoundError,
)
from cassa.core.money import format_euro, within_tolerance
from cassa.models import Order, Payment
from cassa.models.mixins import utcnow
from cassa.schemas.order import OrderRead, OrderStatus
from cassa.schemas.payment import (
    LegOutcome,
    LineSelection,
    MultiOrderLeg,
    PaymentKind,
    PaymentMethod,
    PaymentRead,
    PaymentRecordStatus,
    TablePaymentOutcome,
)
from cassa.services.ledger_service import LedgerService
from cassa.services.receipts import LoggingReceiptIssuer, ReceiptIssuer
from cassa.services.scalar_account_service import ScalarAccountService

# Logger per questo modulo
logger = logging.getLogger(__name__)


class PaymentService:
    """
    Service per l'incasso delle ordinazioni.

    Implementa:
    - Pagamento completo, parziale, di tavolo e multi-ordine
    - Annullamento idempotente dell'ultimo pagamento di un'ordinazione
    - Annullamento di uno specifico pagamento parziale
    - Incasso su conto scalare (pagare per altri)
    """

    def __init__(
        self,
        ledger: Optional[LedgerService] = None,
        receipts: Optional[ReceiptIssuer] = None,
        accounts: Optional[ScalarAccountService] = None,
        tolerance_cents: Optional[int] = None,
    ) -> None:
        self.ledger = ledger or LedgerService()
        self.receipts = receipts or LoggingReceiptIssuer()
        self.accounts = accounts or ScalarAccountService()
        self.tolerance_cents = (
            settings.payment_tolerance_cents if tolerance_cents is None else tolerance_cents
        )

    # ------------------------------------------------------------
    # Pagamento completo
    # ------------------------------------------------------------
    async def pay_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        amount_cents: int,
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> Payment:
        """
        Paga l'intero residuo di un'ordinazione.

        Args:
            db: Sessione database
            order_id: Ordinazione da pagare
            amount_cents: Importo incassato
            method: Metodo di pagamento
            payer_name: Pagatore

        Returns:
            Payment registrato

        Raises:
            NotFoundError: ordinazione inesistente
            AlreadyPaidError: nessun residuo da pagare
            BusinessValidationError: ordinazione non consegnata o importo
                diverso dal residuo oltre la tolleranza
        """
        return await self._settle_order(db, order_id, method, payer_name, amount_cents)

    async def _settle_order(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        method: PaymentMethod,
        payer_name: Optional[str],
        amount_cents: Optional[int],
    ) -> Payment:
        """Paga il residuo; amount_cents=None incassa esattamente il residuo al momento del blocco."""
        async with write_transaction(db, "pagamento ordinazione"):
            order = await self.ledger.load_order(db, order_id, for_update=True)
            due = order.remaining_cents
            if due <= 0:
                raise AlreadyPaidError(
                    f"L'ordinazione #{order.numero} è già stata pagata",
                    extra={"order_id": str(order_id)},
                )
            self._ensure_payable(order)

            if amount_cents is None:
                amount_cents = due
            if amount_cents <= 0:
                raise BusinessValidationError("L'importo deve essere positivo")
            if not within_tolerance(amount_cents, due, self.tolerance_cents):
                raise BusinessValidationError(
                    f"Importo {format_euro(amount_cents)} diverso dal dovuto {format_euro(due)}",
                    extra={"due_cents": due, "amount_cents": amount_cents},
                )

            payment = Payment(
                order_id=order.id,
                amount_cents=amount_cents,
                method=PaymentMethod(method).value,
                kind=PaymentKind.COMPLETO.value,
                payer_name=payer_name,
                status=PaymentRecordStatus.COMPLETATO.value,
            )
            db.add(payment)
            await db.flush()

            await self.ledger.allocate_payment(
                db, order, self.ledger.outstanding_selections(order), payment.id, payer_name
            )
            await db.commit()

        logger.info(
            "Ordinazione #%d pagata: %s (%s)", order.numero, format_euro(amount_cents), payment.method
        )
        await self._issue_receipt(payment, order)
        return payment

    # ------------------------------------------------------------
    # Pagamento parziale
    # ------------------------------------------------------------
    async def pay_partial(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        selections: Sequence[LineSelection],
        method: PaymentMethod,
        payer_name: Optional[str] = None,
        amount_cents: Optional[int] = None,
    ) -> Payment:
        """
        Paga un sottoinsieme esplicito di righe/quantità.

        L'importo, se indicato, deve corrispondere al valore delle righe
        selezionate entro la tolleranza; altrimenti si incassa quel valore.

        Raises:
            NotFoundError: ordinazione inesistente
            AlreadyPaidError: nessun residuo da pagare
            OverAllocationError: quantità oltre il residuo di una riga
            BusinessValidationError: selezioni o importo non validi
        """
        async with write_transaction(db, "pagamento parziale"):
            order = await self.ledger.load_order(db, order_id, for_update=True)
            if order.remaining_cents <= 0:
                raise AlreadyPaidError(f"L'ordinazione #{order.numero} è già stata pagata")
            self._ensure_payable(order)

            value = self.ledger.selection_value_cents(order, selections)
            if amount_cents is None:
                amount_cents = value
            elif not within_tolerance(amount_cents, value, self.tolerance_cents):
                raise BusinessValidationError(
                    f"Importo {format_euro(amount_cents)} diverso dal valore "
                    f"delle righe selezionate {format_euro(value)}"
                )
            if amount_cents <= 0:
                raise BusinessValidationError("Le righe selezionate non hanno importo da pagare")

            payment = Payment(
                order_id=order.id,
                amount_cents=amount_cents,
                method=PaymentMethod(method).value,
                kind=PaymentKind.PARZIALE.value,
                payer_name=payer_name,
                status=PaymentRecordStatus.COMPLETATO.value,
            )
            db.add(payment)
            await db.flush()

            await self.ledger.allocate_payment(db, order, selections, payment.id, payer_name)
            await db.commit()

        logger.info(
            "Ordinazione #%d: pagamento parziale %s di %s, residuo %s",
            order.numero,
            format_euro(amount_cents),
            payer_name or "-",
            format_euro(order.remaining_cents),
        )
        await self._issue_receipt(payment, order)
        return payment

    # ------------------------------------------------------------
    # Pagamenti su più ordinazioni (non atomici)
    # ------------------------------------------------------------
    async def pay_table(
        self,
        db: AsyncSession,
        table_key: str,
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> TablePaymentOutcome:
        """
        Paga tutte le ordinazioni del tavolo con residuo, una alla volta.

        Ogni ordinazione è una transazione separata: se una fallisce le altre
        proseguono e quelle già pagate restano pagate. Nessuna compensazione
        automatica; l'esito riporta ordinazione per ordinazione.

        Raises:
            BusinessValidationError: nessuna ordinazione consegnata per il tavolo
            AlreadyPaidError: tutte le ordinazioni del tavolo sono già pagate
        """
        result = await db.execute(
            select(Order)
            .where(Order.table_key == table_key, Order.stato.in_(
                (OrderStatus.CONSEGNATO.value, OrderStatus.PAGATO.value)
            ))
            .order_by(Order.opened_at, Order.numero)
            .execution_options(populate_existing=True)
        )
        orders = result.scalars().all()
        if not orders:
            raise BusinessValidationError(f"Nessuna ordinazione consegnata per il tavolo {table_key}")

        order_ids = [o.id for o in orders if o.remaining_cents > 0]
        if not order_ids:
            raise AlreadyPaidError(f"Il tavolo {table_key} è già stato pagato")

        outcome = TablePaymentOutcome(table_key=table_key)
        for order_id in order_ids:
            try:
                payment = await self._settle_order(db, order_id, method, payer_name, None)
                outcome.legs.append(
                    LegOutcome(order_id=order_id, ok=True, payment=PaymentRead.model_validate(payment))
                )
            except AppException as exc:
                logger.warning(
                    "Tavolo %s: pagamento ordinazione %s fallito: %s", table_key, order_id, exc.detail
                )
                outcome.legs.append(
                    LegOutcome(order_id=order_id, ok=False, error_code=exc.error_code, detail=exc.detail)
                )

        logger.info(
            "Tavolo %s: %d ordinazioni pagate, %d fallite",
            table_key,
            outcome.paid_count,
            outcome.failed_count,
        )
        return outcome

    async def pay_multi_order_partial(
        self,
        db: AsyncSession,
        legs: Sequence[MultiOrderLeg],
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> TablePaymentOutcome:
        """
        Un pagatore salda righe di più ordinazioni.

        Ogni ordinazione è un pagamento parziale separato, con lo stesso
        esito per-ordinazione di pay_table.
        """
        if not legs:
            raise BusinessValidationError("Nessuna ordinazione selezionata")

        outcome = TablePaymentOutcome()
        for leg in legs:
            try:
                payment = await self.pay_partial(db, leg.order_id, leg.selections, method, payer_name)
                outcome.legs.append(
                    LegOutcome(order_id=leg.order_id, ok=True, payment=PaymentRead.model_validate(payment))
                )
            except AppException as exc:
                logger.warning(
                    "Pagamento multi-ordine: ordinazione %s fallita: %s", leg.order_id, exc.detail
                )
                outcome.legs.append(
                    LegOutcome(order_id=leg.order_id, ok=False, error_code=exc.error_code, detail=exc.detail)
                )
        return outcome

    # ------------------------------------------------------------
    # Annullamento
    # ------------------------------------------------------------
    async def cancel_payment(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Payment:
        """
        Annulla il pagamento più recente dell'ordinazione.

        Idempotente: se il pagamento più recente è già annullato non fa
        nulla e lo restituisce.

        Raises:
            NotFoundError: ordinazione inesistente
            BusinessValidationError: nessun pagamento, o pagamento a debito
        """
        async with write_transaction(db, "annullamento pagamento"):
            order = await self.ledger.load_order(db, order_id, for_update=True)
            result = await db.execute(
                select(Payment)
                .where(Payment.order_id == order_id)
                .order_by(Payment.created_at.desc())
                .limit(1)
                .execution_options(populate_existing=True)
            )
            payment = result.scalar_one_or_none()
            if payment is None:
                raise BusinessValidationError(
                    f"Nessun pagamento da annullare per l'ordinazione #{order.numero}"
                )
            return await self._cancel(db, payment, reason)

    async def cancel_payment_by_id(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        payment_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Payment:
        """
        Annulla uno specifico pagamento (tipicamente parziale) dell'ordinazione.

        Idempotente come cancel_payment.

        Raises:
            NotFoundError: pagamento inesistente o di un'altra ordinazione
        """
        async with write_transaction(db, "annullamento pagamento parziale"):
            await self.ledger.load_order(db, order_id, for_update=True)
            result = await db.execute(
                select(Payment)
                .where(Payment.id == payment_id, Payment.order_id == order_id)
                .execution_options(populate_existing=True)
            )
            payment = result.scalar_one_or_none()
            if payment is None:
                raise NotFoundError(f"Pagamento {payment_id} non trovato per l'ordinazione")
            return await self._cancel(db, payment, reason)

    async def _cancel(self, db: AsyncSession, payment: Payment, reason: Optional[str]) -> Payment:
        if payment.status == PaymentRecordStatus.ANNULLATO.value:
            logger.info("Pagamento %s già annullato: nessuna operazione", payment.id)
            return payment
        if payment.kind == PaymentKind.DEBITO.value:
            raise BusinessValidationError(
                "Il pagamento chiude righe a debito cliente: gestirlo dal debito"
            )

        await self.ledger.reverse_allocation(db, payment.id)
        payment.status = PaymentRecordStatus.ANNULLATO.value
        payment.cancelled_at = utcnow()
        payment.cancel_reason = reason
        await db.commit()

        logger.info(
            "Pagamento %s annullato (%s): %s",
            payment.id,
            format_euro(payment.amount_cents),
            reason or "nessun motivo",
        )
        return payment

    # ------------------------------------------------------------
    # Conto scalare
    # ------------------------------------------------------------
    async def create_tab_payment(
        self,
        db: AsyncSession,
        account_id: uuid.UUID,
        amount_cents: int,
        method: PaymentMethod,
        payer_name: Optional[str] = None,
    ) -> Payment:
        """
        Primo passo del pagamento "per altri": registra l'incasso.

        Il saldo disponibile tiene conto degli incassi già registrati ma
        non ancora riportati sul conto.

        Raises:
            NotFoundError: conto inesistente
            BusinessValidationError: conto chiuso, importo non positivo
                o superiore al saldo rimanente
        """
        async with write_transaction(db, "incasso conto scalare"):
            account = await self.accounts.load_account(db, account_id, for_update=True)
            if account.stato != "APERTO":
                raise BusinessValidationError(f"Il conto di {account.owner_label} è chiuso")
            if amount_cents <= 0:
                raise BusinessValidationError("L'importo deve essere positivo")

            balance = await self.accounts.get_account_balance(db, account_id)
            pending = sum(
                p.amount_cents for p in await self.accounts.find_unrecorded_payments(db, account_id)
            )
            available = balance.saldo_cents - pending
            if amount_cents > available:
                raise BusinessValidationError(
                    "Importo superiore al saldo rimanente",
                    extra={"saldo_cents": available, "amount_cents": amount_cents},
                )

            payment = Payment(
                account_id=account_id,
                amount_cents=amount_cents,
                method=PaymentMethod(method).value,
                kind=PaymentKind.CONTO_SCALARE.value,
                payer_name=payer_name,
                status=PaymentRecordStatus.COMPLETATO.value,
            )
            db.add(payment)
            await db.commit()

        logger.info(
            "Incasso %s su conto %s da %s",
            format_euro(amount_cents),
            account.owner_label,
            payer_name or "-",
        )
        return payment

    # ------------------------------------------------------------
    # Letture
    # ------------------------------------------------------------
    async def get_by_id(self, db: AsyncSession, payment_id: uuid.UUID) -> Payment:
        payment = await db.get(Payment, payment_id, populate_existing=True)
        if not payment:
            raise NotFoundError(f"Pagamento {payment_id} non trovato")
        return payment

    async def get_payments_for_order(self, db: AsyncSession, order_id: uuid.UUID) -> Sequence[Payment]:
        """Pagamenti dell'ordinazione, dal più recente."""
        result = await db.execute(
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.created_at.desc())
        )
        return result.scalars().all()

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------
    @staticmethod
    def _ensure_payable(order: Order) -> None:
        if not order.is_delivered:
            raise BusinessValidationError(
                f"L'ordinazione #{order.numero} non è ancora stata consegnata",
                extra={"stato": order.stato},
            )

    async def _issue_receipt(self, payment: Payment, order: Optional[Order]) -> None:
        """Richiede lo scontrino; un errore viene registrato, mai propagato."""
        if not settings.receipt_enabled:
            return
        try:
            await self.receipts.issue(
                PaymentRead.model_validate(payment),
                OrderRead.model_validate(order) if order is not None else None,
            )
        except Exception:
            logger.exception("Emissione scontrino fallita per il pagamento %s", payment.id)
