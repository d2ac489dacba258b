"""Credential identifiers: CERT-{time}-{random}.

    CERT-0LZ3K9XQ1-7QK2M4ZA
         └───┬───┘ └──┬───┘
       ms since     40 random bits,
       epoch, base36 base32 (8 chars)
       (9 chars, zero-padded)

The fixed-width time part makes ids sort lexically by creation time;
the random part makes collisions negligible.  Uniqueness is still
enforced by the store's unique constraint on credential_id.
"""

from __future__ import annotations

import base64
import re
import secrets
import time

PREFIX = "CERT"

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_TIME_WIDTH = 9
_RANDOM_BYTES = 5  # 40 bits

_CREDENTIAL_ID_RE = re.compile(rf"^{PREFIX}-[0-9A-Z]{{{_TIME_WIDTH}}}-[A-Z2-7]{{8}}$")


def _base36(value: int, width: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)).rjust(width, "0")


def new_credential_id(*, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    time_part = _base36(now_ms, _TIME_WIDTH)
    random_part = base64.b32encode(secrets.token_bytes(_RANDOM_BYTES)).decode("ascii")
    return f"{PREFIX}-{time_part}-{random_part}"


def is_credential_id(value: str) -> bool:
    return bool(_CREDENTIAL_ID_RE.match(value))
