# healthpass/auth.py
"""
Session handling.

Sessions are issued by the identity provider as HS256 JWTs whose `sub` claim is
the user id; this service only verifies them. Request handlers get the caller
through the get_current_user dependency. Long-running clients (the scanner
CLI) hold one process-wide SessionContext and subscribe to its changes instead
of re-reading the token everywhere.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from healthpass import models, utils
from healthpass.db import SessionLocal
from healthpass.errors import Forbidden, Unauthorized
from healthpass.store import Store

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class SessionUser:
    id: str
    email: Optional[str] = None
    claims: dict = field(default_factory=dict, compare=False, hash=False)


def user_from_token(token: str) -> SessionUser:
    claims = utils.verify_token(token)
    if not claims or not claims.get("sub"):
        raise Unauthorized("invalid or expired session")
    return SessionUser(id=str(claims["sub"]), email=claims.get("email"), claims=claims)


class SessionContext:
    def __init__(self):
        self._lock = threading.Lock()
        self._user: Optional[SessionUser] = None
        self._subscribers: List[Callable[[str, Optional[SessionUser]], None]] = []

    def current(self) -> Optional[SessionUser]:
        return self._user

    def set_session(self, token: str) -> SessionUser:
        user = user_from_token(token)
        with self._lock:
            self._user = user
        self._notify(SIGNED_IN, user)
        return user

    def sign_out(self):
        with self._lock:
            had_user, self._user = self._user is not None, None
        if had_user:
            self._notify(SIGNED_OUT, None)

    def subscribe(self, callback: Callable[[str, Optional[SessionUser]], None]) -> Callable[[], None]:
        """Register for session changes; returns the matching unsubscribe."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, event: str, user: Optional[SessionUser]):
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(event, user)


session_context = SessionContext()


# --- FastAPI dependencies

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> Store:
    return Store(db)


def get_current_user(authorization: Optional[str] = Header(None)) -> SessionUser:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise Unauthorized("missing bearer token")
    return user_from_token(authorization.split(" ", 1)[1].strip())


def user_roles(store: Store, user_id: str) -> set:
    return {r.role for r in store.select(models.UserRole, user_id=user_id)}


def require_role(*roles: str):
    def dependency(user: SessionUser = Depends(get_current_user), store: Store = Depends(get_store)) -> SessionUser:
        if not user_roles(store, user.id) & set(roles):
            logger.info("user %s lacks any of roles %s", user.id, roles)
            raise Forbidden("insufficient role")
        return user
    return dependency
