import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from ..core.database import get_db
from ..core.errors import LoyaltyException, InternalError
from ..database_model.user import User, Admin
from ..dependencies.auth import get_current_user, get_current_admin, get_program_settings
from ..services.setting_service import ProgramSettings
from ..services.user_service import UserService
from ..services.cashback_service import CashbackService
from ..services.voucher_service import VoucherService
from ..services.sponsoring_service import SponsoringService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["User"])

# Request models. Fields are optional so that missing values reach the
# services and are reported in French with the matching status code.
class PhoneCheckRequest(BaseModel):
    phone: Optional[str] = None

class RegisterWithAccountRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    birthday: Optional[date] = None
    amount: Optional[float] = None
    phone: Optional[str] = None
    password: Optional[str] = None

class RegisterWithoutAccountRequest(BaseModel):
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    birthday: Optional[date] = None
    sponsor_code: Optional[str] = None
    is_whatsapp: Optional[bool] = None
    password: Optional[str] = None

class SponsoringCodeRequest(BaseModel):
    sponsoring_code: Optional[str] = None

class LoginRequest(BaseModel):
    phone: Optional[str] = None
    password: Optional[str] = None

class CashbackLimitRequest(BaseModel):
    amount: Optional[float] = None


def voucher_response(voucher) -> dict:
    return {
        "id": voucher.id,
        "amount": voucher.amount,
        "expirate_date": voucher.expirate_date.isoformat() if voucher.expirate_date else None,
        "ticket_date": voucher.ticket_date,
        "ticket_number": voucher.ticket_number,
        "ticket_amount": voucher.ticket_amount,
        "ticket_cashback": voucher.ticket_cashback,
        "state": voucher.state
    }


@router.post("/check")
async def user_check(
    request: PhoneCheckRequest,
    db: AsyncSession = Depends(get_db)
):
    """Check whether a phone number holds a card from the previous system."""
    try:
        card = await UserService(db).user_check(request.phone)
        return {"status": "success", "user": card}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"User check failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la connexion à la carte de fidélité.")


@router.post("/register-with-account", status_code=status.HTTP_201_CREATED)
async def register_with_account(
    request: RegisterWithAccountRequest,
    db: AsyncSession = Depends(get_db),
    program_settings: ProgramSettings = Depends(get_program_settings)
):
    """Register the holder of an existing physical card."""
    try:
        user = await UserService(db, program_settings).register_with_account(
            first_name=request.first_name,
            last_name=request.last_name,
            birthday=request.birthday,
            amount=request.amount,
            phone=request.phone,
            password=request.password
        )
        return {"status": "success", "user": user}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Registration with account failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la création de la carte de fidélité.")


@router.post("/register-without-account", status_code=status.HTTP_201_CREATED)
async def register_without_account(
    request: RegisterWithoutAccountRequest,
    db: AsyncSession = Depends(get_db),
    program_settings: ProgramSettings = Depends(get_program_settings)
):
    """Register a new card holder."""
    try:
        user = await UserService(db, program_settings).register_without_account(
            phone=request.phone,
            first_name=request.first_name,
            last_name=request.last_name,
            birthday=request.birthday,
            sponsor_code=request.sponsor_code,
            is_whatsapp=request.is_whatsapp,
            password=request.password
        )
        return {"status": "success", "user": user}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Registration without account failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la création de la carte de fidélité.")


@router.post("/check-sponsoring-code")
async def check_sponsoring_code(
    request: SponsoringCodeRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        await SponsoringService(db).check_code(request.sponsoring_code)
        return {"status": "success", "message": "Le code de parrainage est valide."}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Sponsoring code check failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la vérification du code de parrainage.")


@router.post("/login")
async def login(
    request: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        user = await UserService(db).login(request.phone, request.password)
        return {"status": "success", "user": user}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"User login failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la connexion.")


@router.get("/list-all")
async def list_users(
    current_admin: Admin = Depends(get_current_admin),
    db: AsyncSession = Depends(get_db)
):
    """List every card holder (admin only)."""
    try:
        users = await UserService(db).list_users()
        return {"status": "success", "users": users}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Listing users failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération de tous les utilisateurs.")


@router.get("/cashback-amount")
async def get_cashback(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Current cashback balance of the user."""
    try:
        balance = await CashbackService(db).get_balance(current_user.id)
        return {"status": "success", "cashback": balance}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Getting cashback failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération du cashback de l'utilisateur.")


@router.get("/cashback-limit")
async def get_cashback_limit(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Balance the user must reach to generate a voucher."""
    try:
        threshold = await CashbackService(db).get_threshold(current_user.id)
        return {"status": "success", "cashback": threshold}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Getting cashback limit failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération du cashback de l'utilisateur.")


@router.put("/update-cashback-limit")
async def update_cashback_limit(
    request: CashbackLimitRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        created = await CashbackService(db).update_threshold(current_user.id, request.amount)
        message = "Cashback créé avec succès." if created else "Cashback mis à jour avec succès."
        return {"status": "success", "message": message}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Updating cashback limit failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la mise à jour du cashback.")


@router.get("/sponsoring-amount")
async def get_sponsoring_amount(
    db: AsyncSession = Depends(get_db),
    program_settings: ProgramSettings = Depends(get_program_settings)
):
    """Referral bonus amounts."""
    return {"status": "success", "data": SponsoringService(db, program_settings).get_amounts()}


@router.get("/sponsoring-wallet")
async def get_sponsoring_wallet(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        balance = await SponsoringService(db).get_wallet_balance(current_user.id)
        return {"status": "success", "amount": balance}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Getting sponsoring wallet failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération du portefeuille de parrainage.")


@router.get("/transactions")
async def get_transactions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Validated tickets of the user, newest first."""
    try:
        transactions = await CashbackService(db).get_transactions(current_user.id)
        return {
            "status": "success",
            "transactions": [
                {
                    "id": t.id,
                    "ticket_date": t.ticket_date,
                    "ticket_number": t.ticket_number,
                    "ticket_amount": t.ticket_amount,
                    "ticket_cashback": t.ticket_cashback
                }
                for t in transactions
            ]
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Getting transactions failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération des transactions de l'utilisateur.")


@router.get("/voucher")
async def get_voucher(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    program_settings: ProgramSettings = Depends(get_program_settings)
):
    """Active voucher of the user."""
    try:
        voucher = await VoucherService(db, program_settings).get_active_voucher(current_user.id)
        return {"status": "success", "voucher": voucher_response(voucher)}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Getting voucher failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la récupération du bon d'achat de l'utilisateur.")


@router.post("/voucher-generate")
async def generate_voucher(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    program_settings: ProgramSettings = Depends(get_program_settings)
):
    """Convert the user's cashback into a voucher."""
    try:
        voucher = await VoucherService(db, program_settings).generate_voucher(current_user.id)
        return {
            "status": "success",
            "message": "Bon d'achat généré ou mis à jour avec succès.",
            "voucher": voucher_response(voucher)
        }
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Voucher generation failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la génération ou de la mise à jour du bon d'achat.")
