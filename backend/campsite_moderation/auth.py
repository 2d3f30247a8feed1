from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError
from pydantic import ValidationError

from .config import settings
from .results import Err, ErrorKind
from .schemas import Identity, TokenData
from .models import UserRole

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login", auto_error=False)


def create_access_token(actor_id: str, role: UserRole, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {"sub": actor_id, "role": role.value, "type": "access", "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def get_identity(token: str = Depends(oauth2_scheme)) -> Identity:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exception
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        token_data = TokenData(sub=payload.get("sub"), role=payload.get("role"))
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (JWTError, ValidationError):
        raise credentials_exception
    if token_data.sub is None or token_data.role is None:
        raise credentials_exception
    return Identity(actor_id=str(token_data.sub), role=token_data.role)


def ensure_role(actor: Identity, *roles: UserRole) -> Optional[Err]:
    """Final role check performed by the core itself; ``None`` means allowed."""
    if actor.role in roles:
        return None
    return Err(ErrorKind.forbidden, entity_type="identity", entity_id=actor.actor_id)


def ensure_admin(actor: Identity) -> Optional[Err]:
    return ensure_role(actor, UserRole.admin)


def get_optional_identity(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[Identity]:
    """Anonymous callers get ``None``; a token that is present must still be valid."""
    if not token:
        return None
    return get_identity(token)
