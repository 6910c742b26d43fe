# healthpass/utils.py
import hashlib
from datetime import timedelta
from jose import jwt, JWTError
from healthpass import config
from healthpass.models import utcnow

def sign_token(payload: dict, ttl: timedelta = timedelta(hours=1)) -> str:
    """Return a compact HS256 JWT for payload with an exp claim."""
    claims = dict(payload)
    claims.setdefault("exp", utcnow() + ttl)
    return jwt.encode(claims, config.JWT_SECRET, algorithm=config.JWT_ALG)

def verify_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALG],
                          options={"verify_aud": False})
    except JWTError:
        return {}

def hash_value(val: str) -> str:
    return hashlib.sha256(val.encode()).hexdigest()
