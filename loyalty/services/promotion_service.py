import logging
import re
from datetime import date
from typing import Optional, List, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database_model.shop import Shop
from ..database_model.promotion import Promotion
from ..core.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DATE_FORMAT = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_promotion_date(value: Optional[str], message: str) -> date:
    """Parse a ``YYYY-MM-DD`` date, raising ValidationError with ``message``."""
    if not value or not DATE_FORMAT.match(value):
        raise ValidationError(message)
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(message) from e


class PromotionService:
    """Service for shop promotion banners."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def promotion_response(promotion: Promotion, **extra: Any) -> Dict[str, Any]:
        response = {
            "id": promotion.id,
            "shop_id": promotion.shop_id,
            "image_url": promotion.image_url,
            "start_at": promotion.start_at.isoformat(),
            "end_at": promotion.end_at.isoformat()
        }
        response.update(extra)
        return response

    async def _get_shop(self, shop_id: Optional[int]) -> Shop:
        if not shop_id:
            raise ValidationError("ID de la boutique manquant.")
        shop = await self.db.get(Shop, shop_id)
        if not shop:
            raise NotFoundError("Boutique non trouvée.")
        return shop

    async def create_promotion(
        self,
        shop_id: Optional[int],
        image_url: Optional[str],
        start_at: Optional[str],
        end_at: Optional[str]
    ) -> Promotion:
        if not shop_id:
            raise ValidationError("ID de la boutique manquant.")

        start = parse_promotion_date(
            start_at, "Date de début manquante ou format invalide (doit être YYYY-MM-DD)."
        )
        end = parse_promotion_date(
            end_at, "Date de fin manquante ou format invalide (doit être YYYY-MM-DD)."
        )
        if end < start:
            raise ValidationError("La date de fin doit être postérieure à la date de début.")

        shop = await self._get_shop(shop_id)

        if not image_url:
            raise ValidationError("Aucune image de la promotion n'a été fournie.")

        promotion = Promotion(
            shop_id=shop.id,
            image_url=image_url,
            start_at=start,
            end_at=end
        )
        self.db.add(promotion)
        await self.db.commit()
        await self.db.refresh(promotion)

        logger.info(f"Promotion {promotion.id} created for shop {shop.id} ({start} to {end})")
        return promotion

    async def list_promotions_by_shop(self, shop_id: Optional[int]) -> List[Promotion]:
        """Promotions of a shop, newest first."""
        shop = await self._get_shop(shop_id)
        result = await self.db.execute(
            select(Promotion)
            .where(Promotion.shop_id == shop.id)
            .order_by(Promotion.created_at.desc(), Promotion.id.desc())
        )
        return result.scalars().all()

    async def delete_promotion(self, promotion_id: Optional[int]) -> None:
        promotion = await self.db.get(Promotion, promotion_id) if promotion_id else None
        if not promotion:
            raise NotFoundError("La promotion spécifiée n'existe pas.")

        await self.db.delete(promotion)
        await self.db.commit()

        logger.info(f"Promotion {promotion_id} deleted")

    async def list_active_promotions(self, today: Optional[date] = None) -> List[Promotion]:
        """Promotions running on ``today``, with their shop loaded."""
        today = today or date.today()
        result = await self.db.execute(
            select(Promotion)
            .options(selectinload(Promotion.shop))
            .where(Promotion.start_at <= today, Promotion.end_at >= today)
            .order_by(Promotion.created_at.desc(), Promotion.id.desc())
        )
        return result.scalars().all()
