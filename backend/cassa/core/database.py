"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Cassa (Riconciliazione Pagamenti Ristorazione)

Definisce engine, session factory e dependency injection per FastAPI.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cassa.core.config import settings
from cassa.core.exceptions import AppException, ConflictError, PersistenceError

# Logger per questo modulo
logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,  # Log query in modalità debug
    pool_pre_ping=True,   # Verifica connessione prima di usarla
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Crea una sessione database per ogni richiesta e la chiude
    automaticamente al termine.

    Yields:
        AsyncSession: Sessione database async
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Inizializza la connessione al database.

    Esegue un test di connessione per verificare
    che il database sia raggiungibile.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """
    Chiude le connessioni al database.

    Da chiamare durante lo shutdown dell'applicazione.
    """
    await engine.dispose()
    logger.info("Connessioni database chiuse")


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Sessione database fuori dal ciclo di una richiesta HTTP.

    Usata dal fetcher della sincronizzazione cassa e dagli script
    di manutenzione. In caso di errore esegue il rollback e rilancia.

    Args:
        factory: Session factory alternativa (default: AsyncSessionLocal)
    """
    async with (factory or AsyncSessionLocal)() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def write_transaction(db: AsyncSession, context: str) -> AsyncIterator[AsyncSession]:
    """
    Delimita una scrittura di dominio.

    Il blocco esegue flush/commit; in caso di errore la sessione viene
    riportata a uno stato pulito con rollback:
    - AppException: rilanciata invariata (errore di business)
    - IntegrityError: vincolo violato da una scrittura concorrente → ConflictError
    - altri SQLAlchemyError → PersistenceError

    Args:
        db: Sessione database
        context: Descrizione dell'operazione per i log
    """
    try:
        yield db
    except AppException:
        await db.rollback()
        raise
    except IntegrityError as e:
        await db.rollback()
        logger.warning("Vincolo violato durante %s: %s", context, e.orig)
        raise ConflictError(
            f"Conflitto durante {context}: dati modificati da un'altra operazione"
        ) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Errore database durante %s: %s", context, e)
        raise PersistenceError(f"Errore di salvataggio durante {context}") from e
