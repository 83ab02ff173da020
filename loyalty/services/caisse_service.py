import logging
from typing import Optional, Dict, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database_model.shop import Shop, Caisse
from ..core.security import verify_password, get_password_hash, create_access_token, ROLE_CAISSE
from ..core.errors import (
    AuthenticationError,
    NotFoundError,
    ValidationError,
    DuplicateError
)
from ..core.config import settings

logger = logging.getLogger(__name__)

CAISSE_PHONE_TAKEN_MESSAGE = "Une caisse existe déjà avec ce numéro de portable."


class CaisseService:
    """Service for cashier accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_caisse_by_id(self, caisse_id: int) -> Optional[Caisse]:
        result = await self.db.execute(
            select(Caisse).where(Caisse.id == caisse_id)
        )
        return result.scalar_one_or_none()

    async def get_caisse_by_phone(self, phone: str) -> Optional[Caisse]:
        result = await self.db.execute(
            select(Caisse).options(selectinload(Caisse.shop)).where(Caisse.phone == phone)
        )
        return result.scalar_one_or_none()

    def _check_password(self, password: Optional[str]) -> None:
        if not password:
            raise ValidationError("Mot de passe de la caissière non fourni.")
        if len(password) < settings.min_password_length:
            raise ValidationError(
                f"Le mot de passe doit contenir au moins {settings.min_password_length} caractères."
            )

    async def create_caisse(
        self,
        shop_id: Optional[int],
        first_name: Optional[str],
        last_name: Optional[str],
        phone: Optional[str],
        email: Optional[str],
        password: Optional[str]
    ) -> Dict[str, Any]:
        """Create a cashier account attached to a shop."""
        if not shop_id:
            raise ValidationError("Identifiant de magasin non fourni.")
        if not first_name:
            raise ValidationError("Nom de la caissière non fourni.")
        if not last_name:
            raise ValidationError("Prénom de la caissière non fourni.")
        if not phone:
            raise ValidationError("Numéro de portable de la caissière non fourni.")
        self._check_password(password)

        shop = await self.db.get(Shop, shop_id)
        if not shop:
            raise NotFoundError("Le magasin n'existe pas.")

        if await self.get_caisse_by_phone(phone):
            raise DuplicateError(CAISSE_PHONE_TAKEN_MESSAGE)

        caisse = Caisse(
            shop_id=shop.id,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            email=email,
            hashed_password=get_password_hash(password)
        )
        self.db.add(caisse)

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateError(CAISSE_PHONE_TAKEN_MESSAGE) from e

        await self.db.refresh(caisse)

        logger.info(f"Caisse {caisse.id} created for shop {shop.id}")
        return {
            "id": caisse.id,
            "first_name": caisse.first_name,
            "last_name": caisse.last_name,
            "phone": caisse.phone,
            "email": caisse.email,
            "shop_name": shop.name
        }

    async def login_caisse(self, phone: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """Authenticate a cashier and return a token with the shop name."""
        if not phone:
            raise AuthenticationError("Numéro de portable non fourni.")
        if not password:
            raise AuthenticationError("Mot de passe non fourni.")

        caisse = await self.get_caisse_by_phone(phone)
        if not caisse:
            raise NotFoundError("La caisse n'existe pas. Veuillez vous inscrire au préalable.")

        if not verify_password(password, caisse.hashed_password):
            logger.warning(f"Failed login for caisse {caisse.id}")
            raise AuthenticationError("Mot de passe incorrect. Veuillez réessayer.")

        token = create_access_token(caisse.id, ROLE_CAISSE)
        return {
            "id": caisse.id,
            "shop_name": caisse.shop.name,
            "first_name": caisse.first_name,
            "last_name": caisse.last_name,
            "token": token
        }

    async def update_caisse_password(self, caisse_id: Optional[int], password: Optional[str]) -> Caisse:
        if not caisse_id:
            raise ValidationError("Identifiant de la caisse non fourni.")
        self._check_password(password)

        caisse = await self.get_caisse_by_id(caisse_id)
        if not caisse:
            raise NotFoundError("La caisse n'existe pas.")

        caisse.hashed_password = get_password_hash(password)
        await self.db.commit()

        logger.info(f"Password of caisse {caisse.id} updated")
        return caisse

    async def delete_caisse(self, caisse_id: Optional[int]) -> None:
        if not caisse_id:
            raise ValidationError("Identifiant de la caisse non fourni.")

        caisse = await self.get_caisse_by_id(caisse_id)
        if not caisse:
            raise NotFoundError("La caisse n'existe pas.")

        await self.db.delete(caisse)
        await self.db.commit()

        logger.info(f"Caisse {caisse_id} deleted")
