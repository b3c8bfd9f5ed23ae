"""
Tests per DebtService.
"""

import uuid

import pytest

from cassa.core.exceptions import (
    AlreadyPaidError,
    AlreadySettledError,
    BusinessValidationError,
    NotFoundError,
)
from cassa.schemas.payment import LineSelection, PaymentMethod
from cassa.services.debt_service import DebtService
from cassa.services.payment_service import PaymentService


@pytest.fixture
def debt_service() -> DebtService:
    return DebtService()


# ============================================================
# Creazione debito
# ============================================================


class TestCreateDebt:
    """Tests per create_debt."""

    async def test_debito_su_residuo(self, db, make_order, customer, debt_service, order_service):
        """Test debito pari al residuo chiude l'ordinazione."""
        order = await make_order(lines=(("Pizza", "10.00", 1),))

        debt = await debt_service.create_debt(db, customer.id, order.id, 1000, note="paga venerdì")

        assert debt.state == "OPEN"
        assert debt.remaining_cents == 1000
        assert debt.payment_id is not None
        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.stato == "PAGATO"
        assert refreshed.lines[0].paid_by == "Debito - Mario Rossi"
        payments = await order_service.get_payments(db, order.id)
        assert [p.kind for p in payments] == ["DEBITO"]

    async def test_debito_parziale_con_righe(self, db, make_order, customer, debt_service, order_service):
        """Test debito parziale sulle righe indicate."""
        order = await make_order(lines=(("Pizza", "8.00", 1), ("Birra", "5.00", 2)))
        beer_id = order.lines[1].id

        debt = await debt_service.create_debt(
            db, customer.id, order.id, 500, selections=[LineSelection(line_id=beer_id, quantity=1)]
        )

        assert debt.amount_cents == 500
        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.stato_pagamento == "PARZIALMENTE_PAGATO"
        assert refreshed.remaining_cents == 1300

    async def test_debito_parziale_senza_righe(self, db, make_order, customer, debt_service):
        """Test importo inferiore al residuo senza righe rifiutato."""
        order = await make_order(lines=(("Pizza", "8.00", 2),))
        order_id, customer_id = order.id, customer.id
        with pytest.raises(BusinessValidationError):
            await debt_service.create_debt(db, customer_id, order_id, 500)

    async def test_importo_non_positivo(self, db, make_order, customer, debt_service):
        """Test importo zero o negativo."""
        order = await make_order()
        order_id, customer_id = order.id, customer.id
        for amount in (0, -100):
            with pytest.raises(BusinessValidationError):
                await debt_service.create_debt(db, customer_id, order_id, amount)

    async def test_importo_oltre_residuo(self, db, make_order, customer, debt_service):
        """Test importo superiore al residuo."""
        order = await make_order()
        order_id, customer_id = order.id, customer.id
        with pytest.raises(BusinessValidationError):
            await debt_service.create_debt(db, customer_id, order_id, 5000)

    async def test_ordinazione_gia_pagata(self, db, make_order, customer, debt_service):
        """Test ordinazione senza residuo."""
        order = await make_order()
        order_id, customer_id = order.id, customer.id
        await PaymentService().pay_order(db, order_id, 1600, PaymentMethod.CONTANTI)
        with pytest.raises(AlreadyPaidError):
            await debt_service.create_debt(db, customer_id, order_id, 1600)

    async def test_cliente_inesistente(self, db, make_order, debt_service):
        """Test cliente non trovato."""
        order = await make_order()
        order_id = order.id
        with pytest.raises(NotFoundError):
            await debt_service.create_debt(db, uuid.uuid4(), order_id, 1600)

    async def test_pagamento_a_debito_non_annullabile(self, db, make_order, customer, debt_service):
        """Test il pagamento DEBITO si gestisce dal debito."""
        order = await make_order()
        order_id = order.id
        await debt_service.create_debt(db, customer.id, order_id, 1600)
        with pytest.raises(BusinessValidationError):
            await PaymentService().cancel_payment(db, order_id)


# ============================================================
# Incasso del debito
# ============================================================


class TestPayDebt:
    """Tests per pay_debt."""

    async def test_scenario_saldo_in_due_rate(self, db, make_order, customer, debt_service):
        """Test 10.00 a debito, incassi 4.00 e 6.00, poi AlreadySettled."""
        order = await make_order(lines=(("Pizza", "10.00", 1),))
        debt = await debt_service.create_debt(db, customer.id, order.id, 1000)
        debt_id = debt.id

        debt = await debt_service.pay_debt(db, debt_id, 400, PaymentMethod.CONTANTI)
        assert debt.remaining_cents == 600
        assert debt.state == "OPEN"

        debt = await debt_service.pay_debt(db, debt_id, 600, PaymentMethod.POS)
        assert debt.remaining_cents == 0
        assert debt.state == "SETTLED"
        assert debt.settled_at is not None

        with pytest.raises(AlreadySettledError):
            await debt_service.pay_debt(db, debt_id, 100, PaymentMethod.CONTANTI)

        payments = await debt_service.get_debt_payments(db, debt_id)
        assert [p.amount_cents for p in payments] == [400, 600]

    async def test_incasso_oltre_residuo(self, db, customer, debt_service):
        """Test incasso superiore al residuo rifiutato."""
        debt = await debt_service.create_direct_debt(db, customer.id, 800)
        debt_id = debt.id
        with pytest.raises(BusinessValidationError):
            await debt_service.pay_debt(db, debt_id, 900, PaymentMethod.CONTANTI)

    async def test_incasso_non_positivo(self, db, customer, debt_service):
        """Test incasso zero rifiutato."""
        debt = await debt_service.create_direct_debt(db, customer.id, 800)
        debt_id = debt.id
        with pytest.raises(BusinessValidationError):
            await debt_service.pay_debt(db, debt_id, 0, PaymentMethod.CONTANTI)


# ============================================================
# Debito diretto e saldo cliente
# ============================================================


class TestDirectDebt:
    """Tests per create_direct_debt e get_customer_balance."""

    async def test_debito_diretto(self, db, customer, debt_service):
        """Test debito senza ordinazione."""
        debt = await debt_service.create_direct_debt(db, customer.id, 2500, note="saldo pregresso")
        assert debt.order_id is None
        assert debt.is_direct
        assert debt.state == "OPEN"

    async def test_debito_diretto_non_positivo(self, db, customer, debt_service):
        """Test importo non positivo."""
        customer_id = customer.id
        with pytest.raises(BusinessValidationError):
            await debt_service.create_direct_debt(db, customer_id, 0)

    async def test_saldo_cliente(self, db, make_order, customer, debt_service):
        """Test saldo aggregato dei debiti aperti."""
        order = await make_order(lines=(("Pizza", "10.00", 1),))
        await debt_service.create_debt(db, customer.id, order.id, 1000)
        direct = await debt_service.create_direct_debt(db, customer.id, 500)
        await debt_service.pay_debt(db, direct.id, 200, PaymentMethod.CONTANTI)

        balance = await debt_service.get_customer_balance(db, customer.id)

        assert balance.open_debts == 2
        assert balance.total_cents == 1500
        assert balance.paid_cents == 200
        assert balance.remaining_cents == 1300
