# healthpass/roles.py
import logging
from collections import defaultdict
from typing import Dict, List

from healthpass import models, policy
from healthpass.errors import ConstraintViolation
from healthpass.store import Store

logger = logging.getLogger(__name__)


def list_users_with_roles(store: Store) -> List[dict]:
    profiles = store.select(models.Profile, order_by="created_at", descending=True)
    roles_by_user: Dict[str, List[str]] = defaultdict(list)
    for row in store.select(models.UserRole, order_by="created_at"):
        roles_by_user[row.user_id].append(row.role)
    return [
        {
            "id": p.id,
            "first_name": p.first_name,
            "last_name": p.last_name,
            "roles": roles_by_user.get(p.id, []),
        }
        for p in profiles
    ]


def _check_role(role: str):
    if role not in policy.ROLES:
        raise ValueError(f"unknown role: {role!r}")


def add_role(store: Store, user_id: str, role: str, actor: str) -> models.UserRole:
    _check_role(role)
    try:
        row = store.insert(models.UserRole(user_id=user_id, role=role))
    except ConstraintViolation as e:
        raise ConstraintViolation("User already has this role") from e
    store.insert(models.Audit(actor=actor, action="add_role", target=user_id, meta={"role": role}))
    logger.info("role %s granted to %s by %s", role, user_id, actor)
    return row


def remove_role(store: Store, user_id: str, role: str, actor: str) -> int:
    """Removing a role the user does not hold is a successful no-op."""
    _check_role(role)
    removed = store.delete(models.UserRole, user_id=user_id, role=role)
    if removed:
        store.insert(models.Audit(actor=actor, action="remove_role", target=user_id, meta={"role": role}))
        logger.info("role %s removed from %s by %s", role, user_id, actor)
    return removed
