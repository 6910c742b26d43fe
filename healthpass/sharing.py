# healthpass/sharing.py
"""
QR-code based scoped sharing.

    issue_share_token -> codec.encode -> QR image -> scan -> codec.decode
        -> resolve_share (liveness check) -> resolve_patient_view

resolve_patient_view is the scoped reader: it fetches the profile, and for the
emergency/full tiers also the clinical categories, newest first.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_

from healthpass import codec, config, models, policy
from healthpass.errors import NotFound, ShareDenied, StoreError
from healthpass.models import utcnow
from healthpass.store import Store

logger = logging.getLogger(__name__)


@dataclass
class PatientView:
    access_level: str
    profile: models.Profile
    medical_records: Optional[List[models.MedicalRecord]] = None
    prescriptions: Optional[List[models.Prescription]] = None
    medications: Optional[List[models.Medication]] = None
    # categories that failed to load; the rest of the view is still usable
    errors: List[str] = field(default_factory=list)

    @property
    def access_label(self) -> str:
        return policy.LABELS[self.access_level]


def _audit(store: Store, actor: str, action: str, target: str, **meta):
    store.insert(models.Audit(actor=actor, action=action, target=target, meta=meta))


# --- issuer

def issue_share_token(store: Store, patient_id: str, access_level: str,
                      validity: Optional[timedelta] = None, max_usage: Optional[int] = None,
                      now: Optional[datetime] = None) -> models.ShareToken:
    level = policy.normalize_access_level(access_level)
    if level is None:
        raise ValueError(f"unknown access level: {access_level!r}")
    if store.get(models.Profile, patient_id) is None:
        raise NotFound("patient not found")
    now = now or utcnow()
    validity = validity if validity is not None else timedelta(days=config.SHARE_TOKEN_VALIDITY_DAYS)
    token = models.ShareToken(
        patient_id=patient_id,
        access_level=level,
        valid_from=now,
        valid_until=now + validity,
        is_active=True,
        usage_count=0,
        max_usage=max_usage,
        created_at=now,
    )
    store.insert(token)
    _audit(store, patient_id, "issue_share_token", token.id, access_level=level)
    logger.info("issued share token %s (%s) for patient %s", token.id, level, patient_id)
    return token


def latest_active_token(store: Store, patient_id: str) -> Optional[models.ShareToken]:
    return store.first(models.ShareToken, order_by="created_at", descending=True,
                       patient_id=patient_id, is_active=True)


def deactivate_token(store: Store, token_id: str, actor: str) -> models.ShareToken:
    token = store.get(models.ShareToken, token_id)
    if token is None:
        raise NotFound("share token not found")
    store.update(token, is_active=False)
    _audit(store, actor, "revoke_share_token", token_id)
    logger.info("share token %s deactivated by %s", token_id, actor)
    return token


# --- resolver

def resolve_patient_view(store: Store, patient_id: str, access_level: str) -> PatientView:
    level = policy.normalize_access_level(access_level)
    if level is None:
        raise ValueError(f"unknown access level: {access_level!r}")
    profile = store.get(models.Profile, patient_id)
    if profile is None:
        raise NotFound("patient not found")
    view = PatientView(access_level=level, profile=profile)

    allowed = policy.categories_for(level)
    for category, model in ((policy.MEDICAL_RECORDS, models.MedicalRecord),
                            (policy.PRESCRIPTIONS, models.Prescription),
                            (policy.MEDICATIONS, models.Medication)):
        if category not in allowed:
            continue
        try:
            rows = store.select(model, order_by="created_at", descending=True, patient_id=patient_id)
        except StoreError:
            logger.warning("could not load %s for patient %s", category, patient_id)
            view.errors.append(category)
            continue
        setattr(view, category, rows)
    return view


def resolve_share(store: Store, text: str, requester: str, now: Optional[datetime] = None) -> PatientView:
    """Decode a scanned payload, check the stored token is live, then resolve."""
    return resolve_payload(store, codec.decode(text), requester, now)


def resolve_payload(store: Store, payload, requester: str, now: Optional[datetime] = None) -> PatientView:
    now = now or utcnow()
    token = store.get(models.ShareToken, payload.token_id)
    ok, reason = policy.evaluate_share(token, payload, now)
    if not ok:
        _refuse(store, requester, payload.token_id, reason)
    try:
        view = resolve_patient_view(store, token.patient_id, token.access_level)
    except NotFound:
        _audit(store, requester, "resolve_share", payload.token_id, outcome="patient_not_found")
        raise
    if not _claim_use(store, token.id):
        # another scan used up the cap since evaluate_share looked at the row
        _refuse(store, requester, payload.token_id, "usage_exhausted")
    _audit(store, requester, "resolve_share", payload.token_id, outcome="ok")
    return view


def _refuse(store: Store, requester: str, token_id: str, reason: str):
    _audit(store, requester, "resolve_share", token_id, outcome=reason)
    logger.info("share %s refused for %s: %s", token_id, requester, reason)
    raise ShareDenied(reason)


def _claim_use(store: Store, token_id: str) -> bool:
    """Increment usage_count in one statement that re-checks max_usage."""
    usage = models.ShareToken.usage_count
    cap = models.ShareToken.max_usage
    claimed = store.update_where(
        models.ShareToken,
        (models.ShareToken.id == token_id, or_(cap.is_(None), usage < cap)),
        {usage: usage + 1},
    )
    return claimed == 1
