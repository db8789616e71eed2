import os
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import HTTPException

from models.auth import User

JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "30"))


def _jwt_key() -> str:
    key = os.getenv("JWT_SECRET")
    if not key:
        raise RuntimeError("Missing required environment variable: JWT_SECRET")
    return key


def generate_user_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": user.id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(days=JWT_EXPIRES_DAYS)).timestamp()),
    }
    return jwt.encode(payload, _jwt_key(), algorithm=JWT_ALGORITHM)


async def decode_user_token(token: str) -> User:
    try:
        payload = jwt.decode(token, _jwt_key(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await User.get_or_none(id=payload.get("user_id"))
    if not user:
        raise HTTPException(status_code=401, detail="User does not exist")
    return user
