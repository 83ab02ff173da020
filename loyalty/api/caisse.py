import logging
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from ..core.database import get_db
from ..core.errors import LoyaltyException, InternalError
from ..database_model.user import Admin
from ..database_model.shop import Caisse
from ..dependencies.auth import get_current_admin, get_current_caisse, get_program_settings, get_shop_id
from ..services.setting_service import ProgramSettings
from ..services.caisse_service import CaisseService
from ..services.cashback_service import CashbackService
from ..services.voucher_service import VoucherService
from .user import voucher_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/caisse", tags=["Caisse"])

class CaisseCreateRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None

class CaisseLoginRequest(BaseModel):
    phone: Optional[str] = None
    password: Optional[str] = None

class CaissePasswordRequest(BaseModel):
    caisse_id: Optional[int] = None
    password: Optional[str] = None

class CaisseDeleteRequest(BaseModel):
    caisse_id: Optional[int] = None

class TicketRequest(BaseModel):
    caisse_id: Optional[int] = None
    user_id: Optional[int] = None
    payment_type: Optional[int] = None
    ticket_date: Optional[str] = None
    ticket_number: Optional[str] = None
    ticket_amount: Optional[float] = None
    ticket_cashback: Optional[float] = None

class VoucherRedeemRequest(BaseModel):
    caisse_id: Optional[int] = None
    user_id: Optional[int] = None
    ticket_date: Optional[str] = None
    ticket_number: Optional[str] = None
    ticket_amount: Optional[float] = None
    ticket_cashback: Optional[float] = None


@router.post("/create", status_code=status.HTTP_201_CREATED)
async def create_caisse(
    request: CaisseCreateRequest,
    shop_id: Optional[int] = Depends(get_shop_id),
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """Create a cashier account for the shop given in the ``shopid`` header."""
    try:
        caisse = await CaisseService(db).create_caisse(
            shop_id=shop_id,
            first_name=request.first_name,
            last_name=request.last_name,
            phone=request.phone,
            email=request.email,
            password=request.password
        )
        return {"status": "success", "caisse": caisse}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Caisse creation failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la création de la caisse.")


@router.post("/login")
async def login_caisse(
    request: CaisseLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        caisse = await CaisseService(db).login_caisse(request.phone, request.password)
        return {"status": "success", "caisse": caisse}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Caisse login failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la connexion de la caisse.")


@router.put("/update-password")
async def update_caisse_password(
    request: CaissePasswordRequest,
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        await CaisseService(db).update_caisse_password(request.caisse_id, request.password)
        return {"status": "success", "message": "Le mot de passe de la caisse a été mis à jour avec succès."}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Caisse password update failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la mise à jour du mot de passe de la caisse.")


@router.delete("/delete")
async def delete_caisse(
    request: CaisseDeleteRequest,
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    try:
        await CaisseService(db).delete_caisse(request.caisse_id)
        return {"status": "success", "message": "La caisse a été supprimée avec succès."}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Caisse deletion failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la suppression de la caisse.")


@router.post("/validate-ticket", status_code=status.HTTP_201_CREATED)
async def validate_ticket(
    request: TicketRequest,
    current_caisse: Caisse = Depends(get_current_caisse),
    db: AsyncSession = Depends(get_db)
):
    """Record a purchase ticket for a card holder."""
    try:
        transaction = await CashbackService(db).credit_ticket(
            caisse_id=request.caisse_id,
            user_id=request.user_id,
            payment_type=request.payment_type,
            ticket_date=request.ticket_date,
            ticket_number=request.ticket_number,
            ticket_amount=request.ticket_amount,
            ticket_cashback=request.ticket_cashback,
            current_caisse_id=current_caisse.id
        )
        return {
            "status": "success",
            "transaction": {
                "id": transaction.id,
                "user_id": transaction.user_id,
                "caisse_id": transaction.caisse_id,
                "payment_type": transaction.payment_type,
                "ticket_date": transaction.ticket_date,
                "ticket_number": transaction.ticket_number,
                "ticket_amount": transaction.ticket_amount,
                "ticket_cashback": transaction.ticket_cashback,
                "state": transaction.state
            }
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Ticket validation failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la validation du ticket.")


@router.post("/validate-voucher")
async def validate_voucher(
    request: VoucherRedeemRequest,
    current_caisse: Caisse = Depends(get_current_caisse),
    db: AsyncSession = Depends(get_db),
    program_settings: ProgramSettings = Depends(get_program_settings)
):
    """Redeem the active voucher of a card holder."""
    try:
        voucher = await VoucherService(db, program_settings).validate_voucher(
            caisse_id=request.caisse_id,
            user_id=request.user_id,
            ticket_date=request.ticket_date,
            ticket_number=request.ticket_number,
            ticket_amount=request.ticket_amount,
            ticket_cashback=request.ticket_cashback,
            current_caisse_id=current_caisse.id
        )
        return {
            "status": "success",
            "message": "Bon d'achat validé avec succès.",
            "voucher": voucher_response(voucher)
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Voucher validation failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la validation du bon d'achat.")
