import logging
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from ..core.database import get_db
from ..core.errors import LoyaltyException, InternalError
from ..database_model.user import Admin
from ..dependencies.auth import get_current_admin, get_shop_id
from ..services.promotion_service import PromotionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/promotion", tags=["Promotion"])

class PromotionCreateRequest(BaseModel):
    image_url: Optional[str] = None
    start_at: Optional[str] = None
    end_at: Optional[str] = None

class PromotionDeleteRequest(BaseModel):
    promotion_id: Optional[int] = None


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_promotion(
    request: PromotionCreateRequest,
    shop_id: Optional[int] = Depends(get_shop_id),
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        promotion = await PromotionService(db).create_promotion(
            shop_id=shop_id,
            image_url=request.image_url,
            start_at=request.start_at,
            end_at=request.end_at
        )
        return {"status": "success", "data": PromotionService.promotion_response(promotion)}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Promotion creation failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la création de la promotion.")


@router.get("/list")
async def list_promotions(
    shop_id: Optional[int] = Depends(get_shop_id),
    db: AsyncSession = Depends(get_db)
):
    """Promotions of the shop given in the ``shopid`` header."""
    try:
        promotions = await PromotionService(db).list_promotions_by_shop(shop_id)
        return {
            "status": "success",
            "promotions": [PromotionService.promotion_response(p) for p in promotions]
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Listing promotions failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération des promotions de la boutique.")


@router.delete("/delete")
async def delete_promotion(
    request: PromotionDeleteRequest,
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        await PromotionService(db).delete_promotion(request.promotion_id)
        return {"status": "success", "message": "La promotion a été supprimée avec succès."}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Promotion deletion failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la suppression de la promotion.")


@router.get("/active")
async def list_active_promotions(db: AsyncSession = Depends(get_db)):
    """Promotions running today, across every shop."""
    try:
        promotions = await PromotionService(db).list_active_promotions()
        return {
            "status": "success",
            "promotions": [
                PromotionService.promotion_response(p, shop_name=p.shop.name)
                for p in promotions
            ]
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Listing active promotions failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération des promotions actives.")
