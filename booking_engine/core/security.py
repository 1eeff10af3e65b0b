import hmac
from typing import Optional
from fastapi import HTTPException, Header, Depends
from pydantic import BaseModel

from booking_engine.core.config import settings
from booking_engine.core.logger import logger
from booking_engine.core.errors import LedgerUnavailableError
from booking_engine.services.db_service import db_service


class CurrentUser(BaseModel):
    id: str


async def verify_secret_token(x_secret_token: Optional[str] = Header(None)) -> bool:
    """
    True when the request carries the back-office secret in X-Secret-Token.
    Always False while no SECRET_KEY is configured.
    """
    if not settings.SECRET_KEY or not x_secret_token:
        return False
    return hmac.compare_digest(x_secret_token.encode("utf-8"), settings.SECRET_KEY.encode("utf-8"))


async def current_user(authorization: Optional[str] = Header(None)) -> Optional[CurrentUser]:
    """
    Resolve the session behind a `Bearer <access token>` header via Supabase auth.
    Returns None when there is no header or the token is not accepted.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        return None

    if not (settings.SUPABASE_URL and settings.SUPABASE_KEY):
        if settings.ENVIRONMENT == "development":
            # No auth backend locally: the token is the customer id
            logger.warning(f"⚠️ Development session for customer {token}")
            return CurrentUser(id=token)
        return None

    try:
        client = await db_service.get_client()
        response = await client.auth.get_user(token)
    except LedgerUnavailableError:
        raise
    except Exception as e:
        logger.info(f"🔒 Session lookup rejected: {e}")
        return None

    if not response or not response.user:
        return None
    return CurrentUser(id=str(response.user.id))


async def require_user(user: Optional[CurrentUser] = Depends(current_user)) -> CurrentUser:
    if user is None:
        raise HTTPException(status_code=401, detail="Sign in to book a session")
    return user
