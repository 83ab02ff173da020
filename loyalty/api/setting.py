import logging
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from ..core.database import get_db
from ..core.errors import LoyaltyException, InternalError
from ..database_model.user import Admin
from ..dependencies.auth import get_current_admin
from ..services.setting_service import SettingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/setting", tags=["Setting"])

class CashbackAmountRequest(BaseModel):
    amount: Optional[float] = None

class VoucherDurateRequest(BaseModel):
    voucher_durate: Optional[int] = None

class SponsoringAmountRequest(BaseModel):
    godson_amount: Optional[float] = None
    godfather_amount: Optional[float] = None


@router.get("/cashback-amount")
async def get_cashback_amount(db: AsyncSession = Depends(get_db)):
    try:
        amount = await SettingService(db).get_cashback_amount()
        return {"status": "success", "amount": amount}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Getting cashback amount failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération du montant du cashback.")


@router.put("/update-cashback")
async def update_cashback_amount(
    request: CashbackAmountRequest,
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        await SettingService(db).update_cashback_amount(request.amount)
        return {"status": "success", "message": "Le montant du cashback a été mis à jour avec succès."}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Updating cashback amount failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la mise à jour du montant du cashback.")


@router.put("/update-voucher-durate")
async def update_voucher_durate(
    request: VoucherDurateRequest,
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        setting = await SettingService(db).update_voucher_durate(request.voucher_durate)
        return {
            "status": "success",
            "message": "La durée de validité du bon d'achat a été mise à jour avec succès.",
            "voucher_durate": setting.voucher_durate
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Updating voucher validity failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la mise à jour de la durée du bon d'achat.")


@router.put("/update-sponsoring")
async def update_sponsoring_amounts(
    request: SponsoringAmountRequest,
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        sponsoring = await SettingService(db).update_sponsoring_amounts(
            request.godson_amount,
            request.godfather_amount
        )
        return {
            "status": "success",
            "data": {
                "godson_amount": sponsoring.godson_amount,
                "godfather_amount": sponsoring.godfather_amount
            }
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Updating sponsoring amounts failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la mise à jour des montants de parrainage.")
