# acadlib/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional, List

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from loguru import logger
from passlib.context import CryptContext

from acadlib.core.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from acadlib.api.deps import get_user_repository
from acadlib.db.repositories import UserRepository
from acadlib.models.user import CurrentUser, UserRole

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")

ELEVATED_ROLES = [UserRole.ADMIN, UserRole.FACULTY]


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_subject(token: str) -> str:
    """Returns the ``sub`` claim (user id) or raises JWTError."""
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    subject = payload.get("sub")
    if not subject:
        raise JWTError("Subject ('sub') missing in token payload.")
    return subject


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    users: UserRepository = Depends(get_user_repository),
) -> CurrentUser:
    """
    Resolves the caller from the user id placed in request state by AuthMiddleware,
    decoding the token here when the middleware did not run.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id: Optional[str] = getattr(request.state, "user_id", None)
    if not user_id:
        try:
            user_id = decode_subject(token)
        except JWTError as e:
            logger.warning(f"Token decode failed in get_current_user dependency: {e}")
            raise credentials_exception

    user = await users.get(user_id)
    if user is None:
        logger.warning(f"User '{user_id}' from token not found in database.")
        raise credentials_exception
    if user.disabled:
        logger.warning(f"Access denied for disabled user '{user.email}'.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

    return CurrentUser(id=user.id, name=user.name, email=user.email, role=user.role)


def require_roles(required_roles: List[UserRole]):
    """
    Factory for a dependency that checks if the current user has one of the required roles.
    """
    allowed = [r.value for r in required_roles]

    async def roles_checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in allowed:
            logger.warning(
                f"Forbidden: User '{current_user.email}' with role '{current_user.role}' "
                f"attempted action requiring one of roles: {allowed}."
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User role '{current_user.role}' is not authorized to access this route",
            )
        return current_user
    return roles_checker


require_elevated = require_roles(ELEVATED_ROLES)
