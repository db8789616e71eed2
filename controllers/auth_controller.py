from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from models.auth import User
from helpers.credential_store import add_or_update_credential, list_credentials, mask_token
from helpers.token_helper import generate_user_token, get_current_user

auth_router = APIRouter(prefix="/auth")
ph = PasswordHasher()

# ////////////////////////////  Schemas  /////////////////////////////////////////////////

class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class AccessTokenPayload(BaseModel):
    access_token: str = Field(..., min_length=1)
    app_name: Optional[str] = None


async def _user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "access_token": mask_token(user.access_token),
        "facebook_app_id": user.facebook_app_id,
        "has_app_secret": bool(user.facebook_app_secret),
        "facebook_apps": await list_credentials(user.id),
    }

# ////////////////////////////  Register  /////////////////////////////////////////////////
@auth_router.post("/register", status_code=201)
async def register(payload: RegisterPayload):
    email = payload.email.lower()
    if await User.filter(email=email).exists():
        raise HTTPException(status_code=400, detail="User already exists")

    user = await User.create(
        name=payload.name.strip(),
        email=email,
        password=ph.hash(payload.password),
    )
    return {
        "success": True,
        "data": {
            "token": generate_user_token(user),
            "user": await _user_payload(user),
        },
    }

# ////////////////////////////  Login  /////////////////////////////////////////////////
@auth_router.post("/login")
async def login(data: LoginPayload):
    user = await User.get_or_none(email=data.email.lower())
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    try:
        ph.verify(user.password, data.password)
    except (VerificationError, InvalidHashError):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return {
        "success": True,
        "data": {
            "token": generate_user_token(user),
            "user": await _user_payload(user),
        },
    }

# ////////////////////////////  Profile  /////////////////////////////////////////////////
@auth_router.get("/profile")
async def profile(user: User = Depends(get_current_user)):
    return {"success": True, "data": await _user_payload(user)}


@auth_router.put("/access-token")
async def update_access_token(payload: AccessTokenPayload, user: User = Depends(get_current_user)):
    """Legacy single-token endpoint; stored as a new app credential as well."""
    app = await add_or_update_credential(
        user.id,
        access_token=payload.access_token.strip(),
        app_name=payload.app_name,
    )
    return {
        "success": True,
        "message": "Access token updated successfully",
        "data": {"id": str(app.id), "app_name": app.app_name},
    }
