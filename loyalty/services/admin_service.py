import logging
from typing import Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database_model.user import Admin
from ..core.security import verify_password, get_password_hash, create_access_token, ROLE_ADMIN
from ..core.errors import AuthenticationError, DuplicateError

logger = logging.getLogger(__name__)


class AdminService:
    """Service for administrator accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_admin_by_email(self, email: str) -> Optional[Admin]:
        result = await self.db.execute(
            select(Admin).where(Admin.email == email)
        )
        return result.scalar_one_or_none()

    async def create_admin(self, email: str, password: str) -> Admin:
        """Create an administrator. Used by the seed script."""
        if await self.get_admin_by_email(email):
            raise DuplicateError("Un administrateur existe déjà avec cette adresse email.")

        admin = Admin(email=email, hashed_password=get_password_hash(password))
        self.db.add(admin)
        await self.db.commit()
        await self.db.refresh(admin)
        return admin

    async def login_admin(self, email: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        if not email or not password:
            raise AuthenticationError("Adresse email ou mot de passe non fourni.")

        admin = await self.get_admin_by_email(email)
        if not admin:
            raise AuthenticationError("Adresse email non enregistrée ou incorrecte. Veuillez réessayer.")

        if not verify_password(password, admin.hashed_password):
            logger.warning(f"Failed login for admin {admin.id}")
            raise AuthenticationError("Mot de passe incorrect. Veuillez réessayer.")

        token = create_access_token(admin.id, ROLE_ADMIN)
        return {"email": admin.email, "token": token}
