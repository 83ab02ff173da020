from typing import Optional, Dict, Any
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, ExpiredSignatureError

from loyalty.core.database import get_db
from loyalty.core.security import verify_token, ROLE_USER, ROLE_CAISSE, ROLE_ADMIN
from loyalty.core.errors import AuthenticationError, NotFoundError, ValidationError
from loyalty.database_model.user import User, Admin
from loyalty.database_model.shop import Caisse
from loyalty.services.setting_service import SettingService, ProgramSettings

BEARER_PREFIX = "Bearer "


async def get_token_payload(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """Decode the bearer token of the request.

    Args:
        authorization: Raw ``Authorization`` header

    Returns:
        Dict: Token claims (``id`` and ``role``)

    Raises:
        AuthenticationError: If the header is missing, malformed, expired
            or fails verification
    """
    if not authorization:
        raise AuthenticationError("Token non fourni.")

    if not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError("Format de token invalide.")

    try:
        payload = verify_token(authorization[len(BEARER_PREFIX):])
    except ExpiredSignatureError:
        raise AuthenticationError("TokenExpiredError")
    except JWTError:
        raise AuthenticationError("Token invalide.")

    if payload.get("id") is None:
        raise AuthenticationError("Token invalide.")

    return payload


def _identity_id(payload: Dict[str, Any], role: str) -> int:
    if payload.get("role") != role:
        raise AuthenticationError("Token invalide.")
    return payload["id"]


async def get_current_user(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db)
) -> User:
    """Get the card holder the token was issued to."""
    user = await db.get(User, _identity_id(payload, ROLE_USER))
    if user is None:
        raise NotFoundError("Utilisateur non trouvé.")
    return user


async def get_current_caisse(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db)
) -> Caisse:
    """Get the cashier the token was issued to."""
    caisse = await db.get(Caisse, _identity_id(payload, ROLE_CAISSE))
    if caisse is None:
        raise NotFoundError("La caisse n'existe pas.")
    return caisse


async def get_current_admin(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db)
) -> Admin:
    """Get the administrator the token was issued to."""
    admin = await db.get(Admin, _identity_id(payload, ROLE_ADMIN))
    if admin is None:
        raise NotFoundError("Administrateur non trouvé.")
    return admin


async def get_program_settings(db: AsyncSession = Depends(get_db)) -> ProgramSettings:
    """Load the program settings rows for the current request."""
    return await SettingService(db).load_program_settings()


async def get_shop_id(shopid: Optional[str] = Header(None)) -> Optional[int]:
    """Read the ``shopid`` header. Returns None when absent."""
    if not shopid:
        return None
    try:
        return int(shopid)
    except ValueError:
        raise ValidationError("Identifiant de magasin invalide.")
