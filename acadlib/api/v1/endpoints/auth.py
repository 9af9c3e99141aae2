# acadlib/api/v1/endpoints/auth.py
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from loguru import logger

from acadlib.api.deps import get_user_repository
from acadlib.core.config import ACCESS_TOKEN_EXPIRE_MINUTES
from acadlib.core.rate_limiter import limiter
from acadlib.core.security import (
    create_access_token,
    get_current_user,
    get_password_hash,
    verify_password,
)
from acadlib.db.repositories import UserRepository
from acadlib.models.user import CurrentUser, SELF_SERVICE_ROLES, Token, User

router = APIRouter(tags=["Authentication"])


# Path will become /api/v1/auth/token
@router.post("/token", response_model=Token)
@limiter.limit("20/minute")
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    users: UserRepository = Depends(get_user_repository),
):
    """OAuth2 password flow; the ``username`` form field carries the email address."""
    found = await users.get_credentials(form_data.username)
    if not found or not verify_password(form_data.password, found[1]):
        logger.warning(f"Failed login attempt for '{form_data.username}'.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    user, _ = found
    if user.disabled:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")

    access_token = create_access_token(
        data={"sub": user.id, "role": user.role},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info(f"User '{user.email}' logged in.")
    return Token(access_token=access_token)


# Path will become /api/v1/auth/register
@router.post("/register", response_model=User.Response, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def register_user(
    request: Request,
    user_in: User.Create,
    users: UserRepository = Depends(get_user_repository),
):
    if user_in.role not in [r.value for r in SELF_SERVICE_ROLES]:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot self-register with role '{user_in.role}'",
        )
    if await users.email_exists(user_in.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    created = await users.create(
        name=user_in.name.strip(),
        email=user_in.email,
        hashed_password=get_password_hash(user_in.password),
        role=user_in.role,
    )
    logger.info(f"Registered user '{created.email}' with role '{created.role}'.")
    return created


@router.get("/me", response_model=CurrentUser)
async def read_users_me(current_user: CurrentUser = Depends(get_current_user)):
    return current_user
