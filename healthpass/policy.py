# healthpass/policy.py
from datetime import datetime
from typing import FrozenSet, Optional, Tuple

BASIC = "basic"
EMERGENCY = "emergency"
FULL = "full"

ACCESS_LEVELS = (BASIC, EMERGENCY, FULL)
# older codes were issued with "medical" for the emergency tier
ALIASES = {"medical": EMERGENCY}

LABELS = {
    BASIC: "Basic Info",
    EMERGENCY: "Emergency",
    FULL: "Full Access",
}

MEDICAL_RECORDS = "medical_records"
PRESCRIPTIONS = "prescriptions"
MEDICATIONS = "medications"

_CLINICAL = frozenset({MEDICAL_RECORDS, PRESCRIPTIONS, MEDICATIONS})

# emergency and full reveal the same categories; they differ only in label
CATEGORIES = {
    BASIC: frozenset(),
    EMERGENCY: _CLINICAL,
    FULL: _CLINICAL,
}

ROLES = ("patient", "doctor", "pharmacist", "admin")


def normalize_access_level(level: str) -> Optional[str]:
    """Canonical access level, or None when the tag is unknown."""
    if not isinstance(level, str):
        return None
    level = level.strip().lower()
    level = ALIASES.get(level, level)
    return level if level in ACCESS_LEVELS else None


def categories_for(level: str) -> FrozenSet[str]:
    canonical = normalize_access_level(level)
    if canonical is None:
        raise ValueError(f"unknown access level: {level!r}")
    return CATEGORIES[canonical]


def evaluate_share(token_record, payload, now: datetime) -> Tuple[bool, str]:
    """
    Liveness check for a scanned share: the stored token must be active,
    unexpired, under its usage cap, and agree with what the QR code claims.
    """
    if token_record is None:
        return False, "token_not_found"
    if not token_record.is_active:
        return False, "token_not_active"
    if token_record.valid_from and token_record.valid_from > now:
        return False, "token_not_yet_valid"
    if token_record.valid_until and token_record.valid_until < now:
        return False, "token_expired"
    if token_record.max_usage is not None and (token_record.usage_count or 0) >= token_record.max_usage:
        return False, "usage_exhausted"
    if token_record.patient_id != payload.patient_id:
        return False, "payload_mismatch"
    if normalize_access_level(token_record.access_level) != normalize_access_level(payload.access_level):
        return False, "payload_mismatch"
    return True, "ok"
