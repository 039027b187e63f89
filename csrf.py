import time
from typing import Optional

from fastapi import Header, HTTPException
from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings

CSRF_HEADER = "X-CSRF-Token"


def _serializer() -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.csrf_secret, salt="csrf-token")


def generate_csrf_token(user_id: int = 1, max_age_hours: int = 2) -> str:
    timestamp = int(time.time())
    token_data = {"u": user_id, "ts": timestamp, "exp": timestamp + max_age_hours * 3600}
    return _serializer().dumps(token_data)


def validate_csrf_token(token: str, user_id: int = 1) -> bool:
    try:
        data = _serializer().loads(token)
    except BadSignature:
        return False
    if not isinstance(data, dict) or data.get("u") != user_id:
        return False
    return int(time.time()) <= data.get("exp", 0)


def require_csrf(x_csrf_token: Optional[str] = Header(default=None)) -> None:
    if not x_csrf_token or not validate_csrf_token(x_csrf_token):
        raise HTTPException(status_code=403, detail="Invalid CSRF token")
