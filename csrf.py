from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings

SALT = "csrf-token"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(get_settings().csrf_secret, salt=SALT)


def generate_csrf_token(session_id: str = "local") -> str:
    return _serializer().dumps({"s": session_id})


def validate_csrf_token(token: Optional[str], session_id: str = "local") -> bool:
    """True when ``token`` was signed by us for ``session_id`` and has not expired."""
    if not token:
        return False
    max_age = get_settings().csrf_max_age_hours * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return False
    return isinstance(data, dict) and data.get("s") == session_id
