from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from marketplace.config import settings
from marketplace.storage import DatabaseStorage, get_storage

logger = logging.getLogger(__name__)

# Tokens are minted by the external identity provider; this service only verifies them
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=settings.LOGIN_URL)

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
)

# Claims copied onto the user row the first time an identity is seen
PROFILE_CLAIMS = ("email", "first_name", "last_name", "profile_image_url")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt

def decode_claims(token: str) -> dict:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected bearer token: {str(e)}")
        raise credentials_exception
    if not payload.get("sub"):
        raise credentials_exception
    return payload

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    storage: DatabaseStorage = Depends(get_storage),
):
    claims = decode_claims(token)
    user_id = claims["sub"]

    try:
        if storage.get_user(user_id) is None:
            user_data = {"id": user_id}
            user_data.update({key: claims[key] for key in PROFILE_CLAIMS if claims.get(key) is not None})
            storage.upsert_user(user_data)
            logger.info(f"Registered user {user_id} from identity provider claims")
    except Exception as e:
        storage.db.rollback()
        logger.error(f"Error registering user {user_id}: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to fetch user")

    return claims

def setup_limiter(app):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    if settings.RATE_LIMIT_ENABLED:
        logger.info(f"Rate limiting configured: {settings.RATE_LIMIT_DEFAULT}")
    else:
        logger.warning("Rate limiting disabled")
    return limiter
