import logging
from typing import Optional, Dict, Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..core.config import settings

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None

CARD_BY_PHONE_QUERY = text(
    "SELECT c.first_name, c.last_name, ca.montant "
    "FROM clients c "
    "INNER JOIN cartes ca ON c.id = ca.client_id "
    "WHERE c.phone = :phone LIMIT 1"
)


def get_legacy_engine() -> Optional[AsyncEngine]:
    """Engine for the card database, or None when no URL is configured."""
    global _engine

    if not settings.legacy_card_database_url:
        return None

    if _engine is None:
        _engine = create_async_engine(
            settings.legacy_card_database_url,
            pool_pre_ping=True,
            echo=settings.debug
        )
        logger.info("Legacy card database engine created")

    return _engine


class LegacyCardService:
    """Read-only lookup of the physical loyalty cards issued before the app.

    Cards live in a separate database with ``clients`` and ``cartes``
    tables. When ``legacy_card_database_url`` is not set every lookup
    returns None.
    """

    def __init__(self, engine: Optional[AsyncEngine] = None):
        self.engine = engine or get_legacy_engine()

    async def find_by_phone(self, phone: str) -> Optional[Dict[str, Any]]:
        if self.engine is None:
            return None

        async with self.engine.connect() as conn:
            result = await conn.execute(CARD_BY_PHONE_QUERY, {"phone": phone})
            row = result.mappings().first()

        if row is None:
            return None

        return {
            "first_name": row["first_name"],
            "last_name": row["last_name"],
            "amount": row["montant"]
        }
