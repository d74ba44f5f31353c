from __future__ import annotations

import base64
import hashlib
import hmac
import os
import re
from typing import Any, Iterable, Mapping

_ITERATIONS = 200_000
_SPLIT = re.compile(r"[\s,;]+")


def _b64e(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64d(txt: str) -> bytes:
    return base64.b64decode(txt.encode("ascii"))


def hash_password(password: str, *, salt: bytes | None = None) -> tuple[str, str]:
    if salt is None:
        salt = os.urandom(16)
    pwd = password.encode("utf-8")
    derived = hashlib.pbkdf2_hmac("sha256", pwd, salt, _ITERATIONS)
    return _b64e(salt), _b64e(derived)


def verify_password(password: str, *, salt_b64: str, password_hash_b64: str) -> bool:
    try:
        salt = _b64d(salt_b64)
        expected = _b64d(password_hash_b64)
    except (ValueError, TypeError):
        return False
    pwd = password.encode("utf-8")
    derived = hashlib.pbkdf2_hmac("sha256", pwd, salt, _ITERATIONS)
    return hmac.compare_digest(derived, expected)


def check_passcode(admin: Mapping[str, Any], submitted: str) -> bool:
    """Client-side convenience gate. Not a security boundary."""
    salt_b64 = str(admin.get("passcodeSalt") or "")
    hash_b64 = str(admin.get("passcodeHash") or "")
    if not salt_b64 or not hash_b64:
        return False
    return verify_password(submitted, salt_b64=salt_b64, password_hash_b64=hash_b64)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def parse_admin_emails(raw: str | Iterable[str] | None) -> frozenset[str]:
    if not raw:
        return frozenset()
    items = _SPLIT.split(raw) if isinstance(raw, str) else list(raw)
    return frozenset(e for e in (normalize_email(x) for x in items) if e)


def admin_emails_from_env() -> frozenset[str]:
    return parse_admin_emails(os.getenv("SQUARES_ADMIN_EMAILS"))


def is_admin_email(email: str | None, allow_list: Iterable[str]) -> bool:
    normalized = normalize_email(email)
    return bool(normalized) and normalized in {normalize_email(e) for e in allow_list}
