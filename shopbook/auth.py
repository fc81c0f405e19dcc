# shopbook/auth.py

# Tokens are issued by the account service; this module only resolves the
# staff member and shop scope a bearer token belongs to.

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from . import config
from .schemas import StaffRole

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class StaffContext:
    user_id: str
    shop_id: str
    staff_id: Optional[str]
    role: StaffRole


def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
    to_encode = data.copy()
    minutes = expires_minutes or config.ACCESS_TOKEN_EXPIRE_MINUTES
    to_encode["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_staff(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> StaffContext:
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        payload = jwt.decode(credentials.credentials, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise _unauthorized("Invalid token")

    user_id = payload.get("sub")
    shop_id = payload.get("shop_id")
    if user_id is None or shop_id is None:
        raise _unauthorized("Invalid token")

    try:
        role = StaffRole(payload.get("role", StaffRole.barber.value))
    except ValueError:
        raise HTTPException(status_code=403, detail="Not a staff member")

    return StaffContext(
        user_id=user_id,
        shop_id=shop_id,
        staff_id=payload.get("staff_id"),
        role=role,
    )
