"""
Tests per OrderService.
"""

from decimal import Decimal

import pytest

from cassa.core.exceptions import BusinessValidationError, ConflictError
from cassa.schemas.order import OrderCreate, OrderLineCreate
from cassa.schemas.payment import LineSelection, PaymentMethod
from cassa.services.order_service import OrderService
from cassa.services.payment_service import PaymentService


class StaleNumberingOrderService(OrderService):
    """Numerazione che ha letto il massimo prima di un inserimento concorrente."""

    async def _next_numero(self, db):
        return 1


def order_data(table_key: str = "T1") -> OrderCreate:
    return OrderCreate(
        table_key=table_key,
        lines=[OrderLineCreate(product_name="Tiramisù", unit_price=Decimal("5.50"), quantity=1)],
    )


# ============================================================
# Numerazione
# ============================================================


class TestNumbering:
    """Tests per il numero progressivo delle ordinazioni."""

    async def test_numeri_progressivi(self, db, order_service):
        """Test numeri assegnati in sequenza."""
        first = await order_service.create_order(db, order_data())
        second = await order_service.create_order(db, order_data("T2"))

        assert (first.numero, second.numero) == (1, 2)

    async def test_numero_duplicato_in_conflitto(self, db, order_service):
        """Test stesso numero da due inserimenti: il secondo è un conflitto."""
        await order_service.create_order(db, order_data())

        with pytest.raises(ConflictError) as exc_info:
            await StaleNumberingOrderService().create_order(db, order_data("T2"))

        assert exc_info.value.error_code == "CONFLICT_STATE"
        third = await order_service.create_order(db, order_data("T2"))
        assert third.numero == 2


# ============================================================
# Ciclo di vita
# ============================================================


class TestLifecycle:
    """Tests per consegna e annullamento."""

    async def test_consegna_idempotente(self, db, make_order, order_service):
        order = await make_order()
        again = await order_service.mark_delivered(db, order.id)
        assert again.stato == "CONSEGNATO"

    async def test_annullamento_con_pagamenti(self, db, make_order, order_service):
        """Test ordinazione con pagamenti attivi non annullabile."""
        order = await make_order(lines=(("Birra", "5.00", 2),))
        order_id, line_id = order.id, order.lines[0].id
        await PaymentService().pay_partial(
            db, order_id, [LineSelection(line_id=line_id, quantity=1)], PaymentMethod.CONTANTI
        )

        with pytest.raises(BusinessValidationError):
            await order_service.cancel_order(db, order_id)
