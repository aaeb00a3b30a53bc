import os

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from fitadvisor.core.security import decode_access_token

# Tokens are issued by the account service; this app only verifies them.
TOKEN_URL = os.getenv("TOKEN_URL", "/auth/token")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=TOKEN_URL)


def _bad_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user_id(token: str = Depends(oauth2_scheme)) -> str:
    try:
        return decode_access_token(token)
    except JWTError as exc:
        raise _bad_credentials() from exc
