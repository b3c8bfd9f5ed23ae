"""
Tests per PaymentRequestService e per la divisione del conto.
"""

import uuid

import pytest

from cassa.core.exceptions import (
    AlreadyPaidError,
    BusinessValidationError,
    ConflictError,
    NotFoundError,
)
from cassa.schemas.payment import LineSelection, MultiOrderLeg, PaymentMethod
from cassa.services.payment_request_service import PaymentRequestService
from cassa.services.payment_service import PaymentService


@pytest.fixture
def payments() -> PaymentService:
    return PaymentService()


@pytest.fixture
def requests_service(payments) -> PaymentRequestService:
    return PaymentRequestService(payments=payments)


# ============================================================
# Creazione e lettura
# ============================================================


class TestCreateRequest:
    """Tests per create_request."""

    async def test_richiesta_intero_residuo(self, db, make_order, requests_service):
        """Test richiesta senza righe: copre il residuo dell'ordinazione."""
        order = await make_order()

        request = await requests_service.create_request(
            db, order.id, PaymentMethod.POS, customer_name="Giulia", waiter_name="Marco"
        )

        assert request.tipo == "ORDINAZIONE"
        assert request.stato == "RICHIESTA"
        assert request.amount_cents == 1600
        assert request.table_key == "T3"
        assert request.selections is None

    async def test_richiesta_parziale(self, db, make_order, requests_service):
        """Test richiesta su alcune righe: importo pari al loro valore."""
        order = await make_order(lines=(("Pizza", "8.00", 1), ("Birra", "5.00", 2)))
        beer_id = order.lines[1].id

        request = await requests_service.create_request(
            db, order.id, PaymentMethod.CONTANTI, selections=[LineSelection(line_id=beer_id, quantity=1)]
        )

        assert request.tipo == "PARZIALE"
        assert request.amount_cents == 500
        assert request.selections == [{"line_id": str(beer_id), "quantity": 1}]

    async def test_ordinazione_gia_pagata(self, db, make_order, requests_service, payments):
        """Test nessuna richiesta su un'ordinazione senza residuo."""
        order = await make_order()
        order_id = order.id
        await payments.pay_order(db, order_id, 1600, PaymentMethod.CONTANTI)

        with pytest.raises(AlreadyPaidError):
            await requests_service.create_request(db, order_id, PaymentMethod.POS)

    async def test_ordinazione_non_consegnata(self, db, make_order, requests_service):
        """Test richiesta rifiutata per un'ordinazione non ancora servita."""
        order = await make_order(deliver=False)
        order_id = order.id

        with pytest.raises(BusinessValidationError):
            await requests_service.create_request(db, order_id, PaymentMethod.POS)

    async def test_in_attesa_dalla_piu_vecchia(self, db, make_order, requests_service):
        """Test elenco delle richieste in attesa, processate escluse."""
        first = await make_order(table_key="T1")
        second = await make_order(table_key="T2")
        third = await make_order(table_key="T3")
        r1 = await requests_service.create_request(db, first.id, PaymentMethod.POS)
        r2 = await requests_service.create_request(db, second.id, PaymentMethod.POS)
        r3 = await requests_service.create_request(db, third.id, PaymentMethod.POS)
        await requests_service.reject(db, r2.id)

        pending = await requests_service.get_pending(db)

        assert [r.id for r in pending] == [r1.id, r3.id]

    async def test_richiesta_inesistente(self, db, requests_service):
        with pytest.raises(NotFoundError):
            await requests_service.get_by_id(db, uuid.uuid4())


# ============================================================
# Accettazione e rifiuto
# ============================================================


class TestAcceptReject:
    """Tests per accept e reject."""

    async def test_accetta_intero_residuo(self, db, make_order, requests_service, order_service):
        """Test accettazione: pagamento completo registrato e richiesta chiusa."""
        order = await make_order()
        request = await requests_service.create_request(db, order.id, PaymentMethod.POS, customer_name="Giulia")

        accepted = await requests_service.accept(db, request.id)

        assert accepted.stato == "COMPLETATO"
        assert accepted.completed_at is not None
        payments = await order_service.get_payments(db, order.id)
        assert [p.id for p in payments] == [accepted.payment_id]
        assert payments[0].kind == "COMPLETO"
        assert payments[0].method == "POS"
        assert (await order_service.get_by_id(db, order.id)).stato == "PAGATO"

    async def test_accetta_parziale_con_altro_metodo(self, db, make_order, requests_service, order_service):
        """Test accettazione parziale con il metodo scelto in cassa."""
        order = await make_order(lines=(("Pizza", "8.00", 1), ("Birra", "5.00", 2)))
        beer_id = order.lines[1].id
        request = await requests_service.create_request(
            db, order.id, PaymentMethod.POS, selections=[LineSelection(line_id=beer_id, quantity=2)]
        )

        accepted = await requests_service.accept(db, request.id, method=PaymentMethod.CONTANTI)

        payments = await order_service.get_payments(db, order.id)
        assert payments[0].id == accepted.payment_id
        assert payments[0].kind == "PARZIALE"
        assert payments[0].method == "CONTANTI"
        refreshed = await order_service.get_by_id(db, order.id)
        assert refreshed.remaining_cents == 800
        assert refreshed.stato_pagamento == "PARZIALMENTE_PAGATO"

    async def test_richiesta_processata_una_sola_volta(self, db, make_order, requests_service):
        """Test accettare o rifiutare una richiesta già chiusa è un conflitto."""
        order = await make_order()
        request = await requests_service.create_request(db, order.id, PaymentMethod.POS)
        request_id = request.id
        await requests_service.accept(db, request_id)

        with pytest.raises(ConflictError, match="già processata"):
            await requests_service.accept(db, request_id)
        with pytest.raises(ConflictError, match="già processata"):
            await requests_service.reject(db, request_id, "doppio click")

    async def test_rifiuto_con_motivo(self, db, make_order, requests_service, order_service):
        """Test rifiuto: nessun pagamento, motivo registrato."""
        order = await make_order()
        request = await requests_service.create_request(db, order.id, PaymentMethod.POS)

        rejected = await requests_service.reject(db, request.id, "il cliente paga al banco")

        assert rejected.stato == "ANNULLATO"
        assert rejected.reject_reason == "il cliente paga al banco"
        assert rejected.payment_id is None
        assert await order_service.get_payments(db, order.id) == []
        with pytest.raises(ConflictError):
            await requests_service.accept(db, rejected.id)

    async def test_ordinazione_cambiata_dopo_la_richiesta(self, db, make_order, requests_service, payments):
        """Test residuo cambiato: pagamento rifiutato, richiesta ancora in attesa."""
        order = await make_order(lines=(("Birra", "5.00", 2),))
        order_id = order.id
        line_id = order.lines[0].id
        request = await requests_service.create_request(db, order_id, PaymentMethod.POS)
        request_id = request.id
        await payments.pay_partial(db, order_id, [LineSelection(line_id=line_id, quantity=1)], PaymentMethod.CONTANTI)

        with pytest.raises(BusinessValidationError):
            await requests_service.accept(db, request_id)

        still_open = await requests_service.get_by_id(db, request_id)
        assert still_open.stato == "RICHIESTA"
        assert still_open.payment_id is None


# ============================================================
# Divisione del conto
# ============================================================


class TestSplitBill:
    """Tests per la divisione del conto di un tavolo tra più persone."""

    async def test_conto_diviso_tra_due(self, db, make_order, payments, order_service):
        """Test ogni persona paga le proprie righe sulle ordinazioni del tavolo."""
        first = await make_order(lines=(("Pizza", "8.00", 1), ("Birra", "5.00", 1)), table_key="T2")
        second = await make_order(lines=(("Pizza", "9.00", 1), ("Acqua", "2.00", 1)), table_key="T2")
        first_id, second_id = first.id, second.id

        anna = await payments.pay_multi_order_partial(
            db,
            [
                MultiOrderLeg(order_id=first_id, selections=[LineSelection(line_id=first.lines[0].id, quantity=1)]),
                MultiOrderLeg(order_id=second_id, selections=[LineSelection(line_id=second.lines[1].id, quantity=1)]),
            ],
            PaymentMethod.POS,
            payer_name="Anna",
        )
        luca = await payments.pay_multi_order_partial(
            db,
            [
                MultiOrderLeg(order_id=first_id, selections=[LineSelection(line_id=first.lines[1].id, quantity=1)]),
                MultiOrderLeg(order_id=second_id, selections=[LineSelection(line_id=second.lines[0].id, quantity=1)]),
            ],
            PaymentMethod.CONTANTI,
            payer_name="Luca",
        )

        assert all(leg.ok for leg in anna.legs + luca.legs)
        assert sum(leg.payment.amount_cents for leg in anna.legs) == 1000
        assert sum(leg.payment.amount_cents for leg in luca.legs) == 1400
        for order_id in (first_id, second_id):
            refreshed = await order_service.get_by_id(db, order_id)
            assert refreshed.stato == "PAGATO"
        assert await order_service.get_payable_orders(db, table_key="T2") == []
