"""
Ricrea lo schema del database della cassa (solo sviluppo).

Uso: python reset_db.py  (con il pacchetto installato: pip install -e .)
"""

import asyncio
import logging

from cassa.core.database import engine
from cassa.models import Base

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger("reset_db")


async def reset() -> None:
    logger.info("Connessione al database, eliminazione tabelle...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        logger.info("Tabelle eliminate. Creazione nuove tabelle...")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Database resettato con successo")


if __name__ == "__main__":
    asyncio.run(reset())
