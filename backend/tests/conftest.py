"""
Pytest configuration and fixtures per i test della cassa.

I servizi girano su un database SQLite in memoria (aiosqlite) con lo
stesso schema dei modelli; ogni test parte da un database vuoto.
"""

from decimal import Decimal
from typing import AsyncGenerator, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from cassa.models import Base
from cassa.schemas.customer import CustomerCreate
from cassa.schemas.order import OrderCreate, OrderLineCreate, OrderType
from cassa.services.order_service import OrderService


# ============================================================
# Fixtures per il database
# ============================================================


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Engine SQLite in memoria condiviso tra le sessioni del test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sessione usata dal test."""
    async with session_factory() as session:
        yield session


# ============================================================
# Fixtures per Ordinazioni e Clienti
# ============================================================


@pytest.fixture
def order_service() -> OrderService:
    return OrderService()


@pytest_asyncio.fixture
async def customer(db, order_service):
    """Cliente abituale per i test sui debiti."""
    return await order_service.create_customer(db, CustomerCreate(name="Mario Rossi", phone="3331234567"))


@pytest.fixture
def make_order(db, order_service):
    """
    Factory di ordinazioni.

    Le righe sono tuple (prodotto, prezzo in euro, quantità). Di default
    l'ordinazione viene anche consegnata, quindi è subito pagabile.
    """

    async def _make(
        lines: Sequence[tuple[str, str, int]] = (("Pizza Margherita", "8.00", 2),),
        table_key: Optional[str] = "T3",
        order_type: OrderType = OrderType.TAVOLO,
        customer_name: Optional[str] = None,
        deliver: bool = True,
    ):
        data = OrderCreate(
            order_type=order_type,
            table_key=table_key if order_type == OrderType.TAVOLO else None,
            customer_name=customer_name,
            lines=[
                OrderLineCreate(product_name=name, unit_price=Decimal(price), quantity=qty)
                for name, price, qty in lines
            ],
        )
        order = await order_service.create_order(db, data)
        if deliver:
            order = await order_service.mark_delivered(db, order.id)
        return order

    return _make
