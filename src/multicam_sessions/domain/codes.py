"""Session join codes and QR payloads."""

import re
import secrets
from urllib.parse import urlencode

from multicam_sessions.domain.errors import SessionNotFoundError

CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CODE_LENGTH = 6

_CODE_PATTERN = re.compile(r"^[A-Z0-9]{6}$")
_QR_CODE_PATTERN = re.compile(r"code=([A-Z0-9]{6})", re.IGNORECASE)


def generate_code() -> str:
    """Draw a code uniformly from the join-code alphabet."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def is_valid_code(value: str) -> bool:
    return bool(_CODE_PATTERN.match(value))


def normalize_code(raw: str) -> str:
    """Return the upper-case code from typed input or a scanned QR payload."""
    match = _QR_CODE_PATTERN.search(raw)
    code = match.group(1) if match else raw.strip()
    code = code.upper()
    if not is_valid_code(code):
        raise SessionNotFoundError("Session code must be 6 characters")
    return code


def join_url(base_url: str, code: str) -> str:
    """Build the URL encoded into the session QR code."""
    return f"{base_url.rstrip('/')}/studio?{urlencode({'code': code})}"
