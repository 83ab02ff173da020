import logging
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel

from ..core.database import get_db
from ..core.errors import LoyaltyException, InternalError
from ..services.admin_service import AdminService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

class AdminLoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


@router.post("/login")
async def login_admin(
    request: AdminLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Authenticate an administrator."""
    try:
        admin = await AdminService(db).login_admin(request.email, request.password)
        return {"status": "success", "admin": admin}
    except LoyaltyException:
        raise
    except Exception as e:
        logger.error(f"Admin login failed: {e}", exc_info=True)
        raise InternalError("Une erreur s'est produite lors de la connexion.")
