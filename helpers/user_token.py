import jwt
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException

from helpers.settings import Settings
from models.auth import User


def generate_user_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "role": user.role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=settings.jwt_ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm='HS256')


async def decode_user_token(token: str, settings: Settings) -> User:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=['HS256'])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await User.get_or_none(id=payload.get('id'))
    if not user:
        raise HTTPException(status_code=401, detail="User does not exist")
    return user
