import uuid

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from structlog import get_logger

from shared.config.settings import settings
from shared.db import models
from shared.db.session import get_db
from shared.errors import BusinessError

log = get_logger()

security = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    options = {"verify_aud": settings.auth_jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            audience=settings.auth_jwt_audience,
            options=options,
        )
    except JWTError:
        raise BusinessError("UNAUTHORIZED")


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db),
) -> models.Profile:
    if credentials is None:
        raise BusinessError("UNAUTHORIZED")
    payload = decode_token(credentials.credentials)
    sub = payload.get("sub")
    try:
        user_id = uuid.UUID(str(sub))
    except ValueError:
        raise BusinessError("UNAUTHORIZED")
    user = db.get(models.Profile, user_id)
    if user is None:
        raise BusinessError("UNAUTHORIZED")
    return user


def require_admin(user: models.Profile = Depends(get_current_user)) -> models.Profile:
    account_type = getattr(user.account_type, "value", user.account_type)
    if account_type != models.AccountType.admin.value:
        log.info("admin_access_denied", user_id=str(user.id))
        raise BusinessError("ADMIN_ACCESS_REQUIRED")
    return user
