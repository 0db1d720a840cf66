from typing import Optional

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt='auth')


def issue_token(user_id: int) -> str:
    return _serializer().dumps({'uid': int(user_id)})


def resolve_token(token) -> Optional[int]:
    """Return the user id a token was issued for, or None if it is bad or expired."""
    if not token or not isinstance(token, str):
        return None
    max_age = int(current_app.config.get('AUTH_TOKEN_MAX_AGE_SEC', 0)) or None
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        current_app.logger.info("[auth] expired token")
        return None
    except BadSignature:
        return None
    try:
        return int(data['uid'])
    except (KeyError, TypeError, ValueError):
        return None
