# mindmate/app/routes_auth.py
from __future__ import annotations

import asyncio
import logging
from typing import Literal, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from mindmate.app.deps import AppServices, bearer_token, get_auth, get_services
from mindmate.exceptions import AuthError, PersistenceError
from mindmate.infra.auth import SupabaseAuthGateway

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth")

# ---------------------------
# Request schemas
# ---------------------------


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, description="Display name used in greetings")
    email: str
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)


# ---------------------------
# Response schemas
# ---------------------------


class UserOut(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class SignupResponse(BaseModel):
    status: Literal["ok"] = "ok"
    message: str
    user: UserOut


class LoginResponse(BaseModel):
    status: Literal["ok"] = "ok"
    message: str
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class LogoutResponse(BaseModel):
    status: Literal["ok"] = "ok"


class AuthErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    error_type: str
    message: str


# ---------------------------
# Routes
# ---------------------------


@router.post("/signup", response_model=Union[SignupResponse, AuthErrorResponse])
async def signup(
    req: SignupRequest,
    auth: SupabaseAuthGateway = Depends(get_auth),
    services: AppServices = Depends(get_services),
):
    try:
        user = await asyncio.to_thread(auth.sign_up, req.email, req.password, req.name)
    except AuthError as e:
        logger.warning("Sign-up rejected: %s", e)
        return AuthErrorResponse(error_type="auth_error", message=str(e))

    try:
        await asyncio.to_thread(services.repository.update_profile_name, user.id, req.name)
    except PersistenceError as e:
        logger.warning("Profile name not saved (user_id=%s): %s", user.id, e)

    return SignupResponse(
        message="Account created successfully! You can now login.",
        user=UserOut(id=user.id, email=user.email, name=user.name),
    )


@router.post("/login", response_model=Union[LoginResponse, AuthErrorResponse])
async def login(req: LoginRequest, auth: SupabaseAuthGateway = Depends(get_auth)):
    try:
        session = await asyncio.to_thread(auth.sign_in, req.email, req.password)
    except AuthError as e:
        logger.info("Login rejected: %s", e)
        return AuthErrorResponse(error_type="auth_error", message=str(e))

    user = session.user
    return LoginResponse(
        message="Login successful!",
        access_token=session.access_token,
        user=UserOut(id=user.id, email=user.email, name=user.name),
    )


@router.post("/logout", response_model=Union[LogoutResponse, AuthErrorResponse])
async def logout(
    token: str = Depends(bearer_token),
    auth: SupabaseAuthGateway = Depends(get_auth),
    services: AppServices = Depends(get_services),
):
    """End the token's session and forget the in-process conversation state."""
    user = await asyncio.to_thread(auth.get_user, token)
    try:
        await asyncio.to_thread(auth.sign_out, token)
    except AuthError as e:
        logger.warning("Logout failed: %s", e)
        return AuthErrorResponse(error_type="auth_error", message=str(e))

    if user is not None:
        services.registry.drop(user.id)
    return LogoutResponse()
