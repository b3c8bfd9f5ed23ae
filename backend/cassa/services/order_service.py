"""
Service Layer per le Ordinazioni
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Ingresso delle ordinazioni dalla sala (inserimento, consegna) e lato
lettura per la cassa: ordinazioni pagabili, gruppi tavolo, storico pagamenti.
Lo stato di pagamento non viene mai modificato qui: è compito del ledger.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cassa.core.database import write_transaction
from cassa.core.exceptions import BusinessValidationError, NotFoundError
from cassa.models import Customer, Order, OrderLine, Payment
from cassa.models.mixins import utcnow
from cassa.schemas.customer import CustomerCreate
from cassa.schemas.order import OrderCreate, OrderRead, OrderStatus, TableGroup
from cassa.services.table_groups import compute_table_groups

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Stati in cui un'ordinazione compare in cassa
CASHIER_STATES = (OrderStatus.CONSEGNATO.value, OrderStatus.PAGATO.value)


class OrderService:
    """
    Service per la gestione delle ordinazioni.

    Fornisce metodi asincroni per interagire con il database
    in modo centralizzato, senza dipendenze da FastAPI.
    """

    # ------------------------------------------------------------
    # Clienti
    # ------------------------------------------------------------
    async def create_customer(self, db: AsyncSession, data: CustomerCreate) -> Customer:
        """Crea un cliente in anagrafica."""
        async with write_transaction(db, "creazione cliente"):
            customer = Customer(name=data.name.strip(), phone=data.phone, notes=data.notes)
            db.add(customer)
            await db.commit()
        logger.info("Cliente creato: %s", customer.name)
        return customer

    async def get_customer(self, db: AsyncSession, customer_id: uuid.UUID) -> Customer:
        """
        Raises:
            NotFoundError: cliente inesistente
        """
        customer = await db.get(Customer, customer_id)
        if not customer:
            raise NotFoundError(f"Cliente {customer_id} non trovato")
        return customer

    async def list_customers(self, db: AsyncSession, search: Optional[str] = None) -> Sequence[Customer]:
        stmt = select(Customer).order_by(Customer.name)
        if search:
            stmt = stmt.where(Customer.name.ilike(f"%{search}%"))
        result = await db.execute(stmt)
        return result.scalars().all()

    # ------------------------------------------------------------
    # Ordinazioni
    # ------------------------------------------------------------
    async def create_order(self, db: AsyncSession, data: OrderCreate) -> Order:
        """
        Inserisce una nuova ordinazione con le sue righe.

        Il numero progressivo è il massimo esistente + 1; due inserimenti
        concorrenti con lo stesso numero violano l'indice unico.

        Raises:
            NotFoundError: cliente indicato inesistente
            ConflictError: numero già assegnato da un inserimento concorrente
        """
        async with write_transaction(db, "creazione ordinazione"):
            customer_name = data.customer_name
            if data.customer_id is not None:
                customer = await self.get_customer(db, data.customer_id)
                customer_name = customer_name or customer.name

            numero = await self._next_numero(db)

            order = Order(
                numero=numero,
                order_type=data.order_type.value,
                table_key=data.table_key,
                customer_id=data.customer_id,
                customer_name=customer_name,
                waiter_name=data.waiter_name,
                notes=data.notes,
                stato=OrderStatus.ORDINATO.value,
                lines=[
                    OrderLine(
                        position=index,
                        product_name=line.product_name,
                        unit_price_cents=line.unit_price_cents,
                        quantity=line.quantity,
                        paid_quantity=0,
                    )
                    for index, line in enumerate(data.lines)
                ],
            )
            db.add(order)
            await db.commit()

        logger.info(
            "Ordinazione #%d creata (%s, tavolo %s, %d righe)",
            numero,
            data.order_type.value,
            data.table_key or "-",
            len(data.lines),
        )
        return await self.get_by_id(db, order.id)

    async def _next_numero(self, db: AsyncSession) -> int:
        result = await db.execute(select(func.coalesce(func.max(Order.numero), 0)))
        return int(result.scalar_one()) + 1

    async def mark_delivered(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Segna l'ordinazione come consegnata: da qui diventa pagabile.

        Idempotente per ordinazioni già consegnate o pagate.

        Raises:
            NotFoundError: ordinazione inesistente
            BusinessValidationError: ordinazione annullata
        """
        async with write_transaction(db, "consegna ordinazione"):
            order = await self._load(db, order_id, for_update=True)
            if order.stato == OrderStatus.ANNULLATO.value:
                raise BusinessValidationError(
                    f"L'ordinazione #{order.numero} è annullata e non può essere consegnata"
                )
            if order.stato in CASHIER_STATES:
                return order
            order.stato = OrderStatus.CONSEGNATO.value
            order.delivered_at = utcnow()
            await db.commit()

        logger.info("Ordinazione #%d consegnata", order.numero)
        return order

    async def cancel_order(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Annulla un'ordinazione non ancora pagata.

        Raises:
            BusinessValidationError: ordinazione con pagamenti attivi
        """
        async with write_transaction(db, "annullamento ordinazione"):
            order = await self._load(db, order_id, for_update=True)
            if order.paid_cents > 0:
                raise BusinessValidationError(
                    f"L'ordinazione #{order.numero} ha pagamenti attivi: annullarli prima"
                )
            order.stato = OrderStatus.ANNULLATO.value
            await db.commit()
        logger.info("Ordinazione #%d annullata", order.numero)
        return order

    async def get_by_id(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Raises:
            NotFoundError: ordinazione inesistente
        """
        return await self._load(db, order_id)

    async def _load(self, db: AsyncSession, order_id: uuid.UUID, for_update: bool = False) -> Order:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.lines))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        order = result.scalar_one_or_none()
        if not order:
            raise NotFoundError(f"Ordinazione {order_id} non trovata")
        return order

    async def get_cashier_orders(
        self,
        db: AsyncSession,
        table_key: Optional[str] = None,
        paid_since: Optional[datetime] = None,
    ) -> Sequence[Order]:
        """
        Ordinazioni visibili in cassa: consegnate (da pagare o parziali)
        e pagate.

        Args:
            table_key: Filtra per tavolo
            paid_since: Limita le ordinazioni già pagate a quelle chiuse dopo
                questa data (None = tutte)
        """
        stmt = (
            select(Order)
            .where(Order.stato.in_(CASHIER_STATES))
            .options(selectinload(Order.lines))
            .order_by(Order.opened_at, Order.numero)
            .execution_options(populate_existing=True)
        )
        if table_key is not None:
            stmt = stmt.where(Order.table_key == table_key)
        if paid_since is not None:
            stmt = stmt.where(
                or_(Order.stato != OrderStatus.PAGATO.value, Order.closed_at >= paid_since)
            )
        result = await db.execute(stmt)
        return result.scalars().all()

    async def get_payable_orders(self, db: AsyncSession, table_key: Optional[str] = None) -> list[Order]:
        """Ordinazioni consegnate con residuo da pagare."""
        orders = await self.get_cashier_orders(db, table_key=table_key)
        return [o for o in orders if o.remaining_cents > 0]

    async def get_table_groups(self, db: AsyncSession) -> list[TableGroup]:
        """Gruppi tavolo delle ordinazioni con residuo da pagare."""
        orders = await self.get_payable_orders(db)
        return compute_table_groups(OrderRead.model_validate(o) for o in orders)

    async def get_payments(self, db: AsyncSession, order_id: uuid.UUID) -> Sequence[Payment]:
        """Storico pagamenti di un'ordinazione, dal più recente."""
        await self._load(db, order_id)
        result = await db.execute(
            select(Payment)
            .where(Payment.order_id == order_id)
            .order_by(Payment.created_at.desc())
        )
        return result.scalars().all()
