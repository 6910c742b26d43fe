# healthpass/codec.py
"""
Share payload codec: the text embedded in a QR image.

encode() turns the shareable subset of a ShareToken into compact, deterministic
JSON; decode() parses it back. The codec only moves data. Expiry and access
semantics live in policy.py.
"""
import json
from datetime import datetime, timezone

from healthpass.errors import MalformedPayload
from healthpass.schemas import SharePayload

PAYLOAD_VERSION = 1

_FIELDS = ("tokenId", "patientId", "accessLevel", "validUntil")


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def parse_timestamp(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    value = datetime.fromisoformat(text)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def encode(token) -> str:
    body = {
        "v": PAYLOAD_VERSION,
        "tokenId": token.id,
        "patientId": token.patient_id,
        "accessLevel": token.access_level,
        "validUntil": format_timestamp(token.valid_until),
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":"))


def decode(text) -> SharePayload:
    if isinstance(text, (bytes, bytearray)):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPayload("payload is not utf-8 text") from e
    if not isinstance(text, str):
        raise MalformedPayload("payload must be text")
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise MalformedPayload("payload is not valid JSON") from e
    if not isinstance(data, dict):
        raise MalformedPayload("payload must be a JSON object")

    version = data.get("v", PAYLOAD_VERSION)
    if isinstance(version, bool) or version != PAYLOAD_VERSION:
        raise MalformedPayload(f"unsupported payload version: {version!r}")

    # codes printed before tokenId was introduced carry qrId
    if "tokenId" not in data and "qrId" in data:
        data["tokenId"] = data["qrId"]

    values = {}
    for field in _FIELDS:
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            raise MalformedPayload(f"missing or invalid field: {field}")
        values[field] = value

    try:
        valid_until = parse_timestamp(values["validUntil"])
    except (ValueError, OverflowError) as e:
        # offsets can push a valid ISO string outside the datetime range
        raise MalformedPayload("validUntil is not an ISO-8601 timestamp") from e

    return SharePayload(
        token_id=values["tokenId"],
        patient_id=values["patientId"],
        access_level=values["accessLevel"],
        valid_until=valid_until,
        version=PAYLOAD_VERSION,
    )
