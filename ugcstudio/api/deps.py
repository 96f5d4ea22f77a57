"""
Request dependencies: caller identity and admin access.

The identity provider issues a signed bearer token; ``sub`` is the account id and
``email`` (optional) is used for payment matching.
"""
import hmac

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ugcstudio.core.config import settings
from ugcstudio.core.errors import AccountInactive, AdminAuthRequired
from ugcstudio.db.session import get_db
from ugcstudio.models.account import Account
from ugcstudio.services.accounts.service import AccountService

security = HTTPBearer(auto_error=False)


def decode_identity_token(token: str) -> dict:
    options = {"verify_aud": bool(settings.identity_jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.identity_jwt_secret,
            algorithms=[settings.identity_jwt_algorithm],
            audience=settings.identity_jwt_audience or None,
            options=options,
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc

    subject = str(payload.get("sub") or "").strip()
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing subject",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def get_current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Account:
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    payload = decode_identity_token(credentials.credentials.strip())
    email = payload.get("email")
    return AccountService(db).ensure_account(payload["sub"], email if isinstance(email, str) else None)


def get_active_account(account: Account = Depends(get_current_account)) -> Account:
    if not account.is_active:
        raise AccountInactive()
    return account


def require_admin(x_admin_key: str | None = Header(default=None, alias="X-Admin-Key")) -> None:
    expected = settings.admin_api_key
    if not expected or not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise AdminAuthRequired()
