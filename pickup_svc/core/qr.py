from __future__ import annotations
import base64
import binascii
import hashlib
import json
import re
from datetime import datetime, timezone
from io import BytesIO
from urllib.parse import parse_qsl, quote, unquote, urlsplit

import qrcode
from pydantic import ValidationError

from .errors import InvalidTokenFormat
from ..schemas import TokenPayload

PAYLOAD_VERSION = "1.0"
VALIDATOR_PATH = "validator"

_TOKEN_PARAM = re.compile(r"[?&]token=([^&]+)")


def format_timestamp(dt: datetime) -> str:
    # millisecond precision, Z suffix (same shape a JS Date.toISOString() emits)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"

def parse_timestamp(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

def encode_payload(payload: TokenPayload) -> str:
    raw = json.dumps(payload.to_json_dict(), separators=(",", ":"), ensure_ascii=False)
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")

def build_deep_link(scheme: str, token_data: str) -> str:
    return f"{scheme}://{VALIDATOR_PATH}?token={quote(token_data, safe='')}"

def extract_token_data(scanned: str, scheme: str) -> str:
    """
    Pull the base64 blob out of whatever a scanner handed back: the full deep
    link, a bare "...validator?token=..." fragment, or the raw base64 itself.
    """
    data = scanned.strip()
    if not (data.startswith(f"{scheme}://") or "token=" in data):
        return data

    token: str | None = None
    try:
        query = urlsplit(data).query
        for key, value in parse_qsl(query, keep_blank_values=True):
            if key == "token":
                token = value
                break
    except ValueError:
        token = None

    if not token:
        m = _TOKEN_PARAM.search(data)
        if m:
            token = unquote(m.group(1))

    if not token:
        return data
    # form decoding turns an unescaped '+' into a space; base64 never contains spaces
    return token.replace(" ", "+")

def decode_payload(token_data: str) -> TokenPayload:
    try:
        padded = token_data + "=" * (-len(token_data) % 4)
        raw = base64.b64decode(padded, validate=True).decode("utf-8")
        obj = json.loads(raw)
        if not isinstance(obj, dict):
            raise InvalidTokenFormat()
        payload = TokenPayload.model_validate(obj)
        parse_timestamp(payload.timestamp)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValidationError, ValueError) as e:
        raise InvalidTokenFormat() from e
    return payload

def credential_digest(token_data: str) -> str:
    """Stable key for the replay guard; the wire payload has no id of its own."""
    return hashlib.sha256(token_data.encode("utf-8")).hexdigest()

def render_png(data: str) -> bytes:
    img = qrcode.make(data)
    b = BytesIO(); img.save(b, format="PNG")
    return b.getvalue()
