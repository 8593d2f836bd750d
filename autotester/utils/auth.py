import logging
from typing import Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from autotester.config import ALGORITHM, SECRET_KEY
from autotester.utils.dto import CurrentUser

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login")


def decode_token(token: str) -> CurrentUser:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.info("Rejected token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: no subject",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return CurrentUser(
        id=str(user_id),
        username=payload.get("username", ""),
        is_admin=bool(payload.get("is_admin", False)),
    )


def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    return decode_token(token)


async def get_current_user_from_query(token: Optional[str] = Query(None)) -> CurrentUser:
    # EventSource cannot send headers, so streams pass the token as a query param
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing token",
        )
    return decode_token(token)
