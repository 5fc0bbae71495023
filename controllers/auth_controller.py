from typing import Annotated

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from helpers.get_admin import get_admin
from helpers.settings import Settings, get_settings
from helpers.user_token import generate_user_token
from models.auth import User

auth_router = APIRouter(prefix="/auth", tags=["Authentication"])
ph = PasswordHasher()


# ////////////////////////////  Schemas  /////////////////////////////////////////////////
class LoginPayload(BaseModel):
    email: str
    password: str


def _user_out(user: User) -> dict:
    return {
        'user_id': user.id,
        'name': user.name,
        'email': user.email,
        'role': user.role,
    }


# ////////////////////////////  Sign in  /////////////////////////////////////////////////
@auth_router.post("/signin")
async def signin(data: LoginPayload, settings: Annotated[Settings, Depends(get_settings)]):
    user = await User.filter(email=data.email.strip().lower()).first()
    if not user or not user.is_active:
        raise HTTPException(status_code=400, detail="Invalid Credentials.")
    try:
        ph.verify(user.password, data.password)
    except (VerifyMismatchError, InvalidHashError):
        raise HTTPException(status_code=400, detail="Invalid Credentials.")

    if ph.check_needs_rehash(user.password):
        user.password = ph.hash(data.password)
        await user.save()

    return {
        "success": True,
        "token": generate_user_token(user, settings),
        "user": _user_out(user),
        "detail": "Login Successfully",
    }


# ////////////////////////////  Current user  /////////////////////////////////////////////////
@auth_router.get("/me")
async def me(user: Annotated[User, Depends(get_admin)]):
    return {"success": True, "user": _user_out(user)}
