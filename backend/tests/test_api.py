"""
Tests per gli endpoint HTTP della cassa.

L'app gira in-process tramite ASGITransport; get_db viene sostituita
con una sessione sul database di test.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from cassa.core.database import get_db
from cassa.main import app

API = "/api/v1"


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_delivered_order(client: AsyncClient, table_key: str = "t3", price: str = "8.00", qty: int = 2) -> dict:
    response = await client.post(
        f"{API}/orders/",
        json={
            "table_key": table_key,
            "lines": [{"product_name": "Pizza Margherita", "unit_price": price, "quantity": qty}],
        },
    )
    assert response.status_code == 201
    order = response.json()
    response = await client.post(f"{API}/orders/{order['id']}/deliver")
    assert response.status_code == 200
    return response.json()


# ============================================================
# Sistema
# ============================================================


async def test_health(client):
    """Test health check."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ============================================================
# Ordinazioni e pagamenti
# ============================================================


async def test_ordinazione_e_pagamento(client):
    """Test creazione, consegna, pagamento e secondo pagamento rifiutato."""
    order = await create_delivered_order(client)
    assert order["table_key"] == "T3"
    assert order["stato"] == "CONSEGNATO"
    assert order["total_cents"] == 1600

    response = await client.post(
        f"{API}/payments/orders/{order['id']}",
        json={"amount": "16.00", "method": "CONTANTI", "payer_name": "Anna"},
    )
    assert response.status_code == 201
    assert response.json()["amount_cents"] == 1600

    response = await client.get(f"{API}/orders/{order['id']}")
    assert response.json()["stato_pagamento"] == "COMPLETAMENTE_PAGATO"

    response = await client.post(
        f"{API}/payments/orders/{order['id']}",
        json={"amount": "16.00", "method": "CONTANTI"},
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "ALREADY_PAID"


async def test_importo_errato(client):
    """Test importo diverso dal residuo: 422 con codice di dominio."""
    order = await create_delivered_order(client)
    response = await client.post(
        f"{API}/payments/orders/{order['id']}",
        json={"amount": "15.00", "method": "POS"},
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "BUSINESS_VALIDATION_ERROR"


async def test_ordinazione_inesistente(client):
    """Test 404 per ordinazione sconosciuta."""
    response = await client.get(f"{API}/orders/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["error_code"] == "RESOURCE_NOT_FOUND"


async def test_pagamento_parziale_e_verifica(client):
    """Test pagamento per righe e verifica di coerenza."""
    order = await create_delivered_order(client, qty=3)
    line_id = order["lines"][0]["id"]

    response = await client.post(
        f"{API}/payments/orders/{order['id']}/partial",
        json={"selections": [{"line_id": line_id, "quantity": 1}], "method": "CONTANTI", "payer_name": "Luca"},
    )
    assert response.status_code == 201
    assert response.json()["amount_cents"] == 800

    response = await client.get(f"{API}/orders/{order['id']}/verify")
    assert response.json()["consistent"] is True

    response = await client.get(f"{API}/orders/{order['id']}")
    assert response.json()["remaining_cents"] == 1600


async def test_gruppi_tavolo(client):
    """Test gruppi tavolo nell'ordine della sala."""
    await create_delivered_order(client, table_key="T10")
    await create_delivered_order(client, table_key="T2")
    await create_delivered_order(client, table_key="T2")

    response = await client.get(f"{API}/orders/table-groups")
    assert response.status_code == 200
    groups = response.json()
    assert [g["table_key"] for g in groups] == ["T2", "T10"]
    assert groups[0]["total_cents"] == 3200


async def test_pagamento_tavolo(client):
    """Test esito per ordinazione del pagamento tavolo."""
    await create_delivered_order(client, table_key="T4")
    await create_delivered_order(client, table_key="T4", price="5.00", qty=1)

    response = await client.post(f"{API}/payments/tables/t4", json={"method": "POS"})
    assert response.status_code == 200
    legs = response.json()["legs"]
    assert len(legs) == 2
    assert all(leg["ok"] for leg in legs)


# ============================================================
# Richieste di pagamento
# ============================================================


async def test_richiesta_di_pagamento(client):
    """Test richiesta dalla sala accettata in cassa, poi non più rifiutabile."""
    order = await create_delivered_order(client, table_key="T5")

    response = await client.post(
        f"{API}/payment-requests/",
        json={"order_id": order["id"], "method": "POS", "customer_name": "Giulia", "waiter_name": "Marco"},
    )
    assert response.status_code == 201
    request = response.json()
    assert request["tipo"] == "ORDINAZIONE"
    assert request["amount_cents"] == 1600

    response = await client.get(f"{API}/payment-requests/pending")
    assert [r["id"] for r in response.json()] == [request["id"]]

    response = await client.post(f"{API}/payment-requests/{request['id']}/accept")
    assert response.status_code == 200
    assert response.json()["stato"] == "COMPLETATO"
    assert response.json()["payment_id"] is not None

    response = await client.post(f"{API}/payment-requests/{request['id']}/reject", json={})
    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT_STATE"

    response = await client.get(f"{API}/orders/{order['id']}")
    assert response.json()["remaining_cents"] == 0


# ============================================================
# Conti scalari
# ============================================================


async def test_pagamento_per_altri(client):
    """Test conto con ORDINE e pagamento per altri."""
    response = await client.post(f"{API}/accounts/", json={"table_key": "t6"})
    assert response.status_code == 201
    account_id = response.json()["id"]

    response = await client.post(
        f"{API}/accounts/{account_id}/movements",
        json={"tipo": "ORDINE", "amount": "12.00", "description": "Cena"},
    )
    assert response.status_code == 201

    response = await client.post(
        f"{API}/accounts/{account_id}/pay-for-others",
        json={"amount": "5.00", "method": "CONTANTI", "payer_name": "Paolo"},
    )
    assert response.status_code == 200
    assert response.json()["ok"] is True

    response = await client.get(f"{API}/accounts/{account_id}")
    assert response.json()["saldo_cents"] == 700

    response = await client.post(
        f"{API}/accounts/{account_id}/pay-for-others",
        json={"amount": "9.00", "method": "CONTANTI"},
    )
    assert response.status_code == 422


# ============================================================
# Riepilogo di cassa
# ============================================================


async def test_riepilogo_giornaliero(client):
    """Test totali per metodo, pagamenti annullati esclusi."""
    cash = await create_delivered_order(client, table_key="T1")
    card = await create_delivered_order(client, table_key="T2", price="5.00", qty=1)
    await client.post(f"{API}/payments/orders/{cash['id']}", json={"amount": "16.00", "method": "CONTANTI"})
    await client.post(f"{API}/payments/orders/{card['id']}", json={"amount": "5.00", "method": "POS"})
    response = await client.post(f"{API}/payments/orders/{card['id']}/cancel", json={"reason": "errore"})
    assert response.status_code == 200

    today = datetime.now(timezone.utc).date()
    response = await client.get(f"{API}/cash-register/summary/{today.isoformat()}")
    assert response.status_code == 200
    summary = response.json()
    assert Decimal(summary["total_cash"]) == Decimal("16.00")
    assert Decimal(summary["total_pos"]) == 0
    assert summary["payments_count"] == 1
    assert summary["cancelled_count"] == 1
