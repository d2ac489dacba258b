"""Certificate fingerprinting.

A certificate's fingerprint is SHA-256 over the canonical JSON encoding
of its payload, as lowercase hex.  It is the tamper-evident identifier
everything downstream relies on: it is stored with the certificate,
embedded in the ledger note, and recomputed at verification time.

CANONICAL PAYLOAD
------------------
Exactly these keys, nothing more:

  studentName      required
  institutionName  required
  courseName       required
  issueDate        required (ISO-8601)
  expiryDate       "" when absent
  metadata         {} when absent

The field set and the defaulting rules are part of the hash contract.
Changing either changes every fingerprint, so they are versioned by
FINGERPRINT_SCHEME, which is stored next to each fingerprint.

CANONICAL BYTES
----------------
json.dumps with sort_keys=True sorts keys at EVERY nesting level, so the
order in which metadata was assembled never reaches the hash.  Compact
separators and ensure_ascii=False keep the encoding stable: one byte
sequence per logical payload.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from collections.abc import Mapping
from typing import Any

from certanchor.core.errors import ValidationError

FINGERPRINT_SCHEME = "sha256-canonical-json/v1"

REQUIRED_FIELDS = ("studentName", "institutionName", "courseName", "issueDate")

_SHORT_FINGERPRINT_HEX_CHARS = 8


class FingerprintError(ValidationError):
    """Payload violates the canonical payload contract."""


def canonical_payload(
    *,
    student_name: str,
    institution_name: str,
    course_name: str,
    issue_date: str,
    expiry_date: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Assemble the canonical payload, applying the defaulting rules."""
    payload = {
        "studentName": student_name,
        "institutionName": institution_name,
        "courseName": course_name,
        "issueDate": issue_date,
        "expiryDate": expiry_date or "",
        "metadata": metadata if metadata is not None else {},
    }
    _validate(payload)
    payload["metadata"] = dict(payload["metadata"])
    return payload


def _validate(payload: Mapping[str, Any]) -> None:
    for name in REQUIRED_FIELDS:
        value = payload.get(name)
        if not isinstance(value, str) or not value.strip():
            raise FingerprintError(f"{name} is required")

    expiry = payload.get("expiryDate", "")
    if not isinstance(expiry, str):
        raise FingerprintError("expiryDate must be a string")

    metadata = payload.get("metadata", {})
    if not isinstance(metadata, Mapping):
        raise FingerprintError("metadata must be a mapping")


def canonical_bytes(payload: Mapping[str, Any]) -> bytes:
    _validate(payload)
    normalized = {
        "studentName": payload["studentName"],
        "institutionName": payload["institutionName"],
        "courseName": payload["courseName"],
        "issueDate": payload["issueDate"],
        "expiryDate": payload.get("expiryDate") or "",
        "metadata": payload.get("metadata") or {},
    }
    try:
        text = json.dumps(
            normalized,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise FingerprintError(f"payload is not canonically serializable: {e}") from None
    return text.encode("utf-8")


def fingerprint(payload: Mapping[str, Any]) -> str:
    """Return the lowercase hex SHA-256 fingerprint of a canonical payload."""
    return hashlib.sha256(canonical_bytes(payload)).hexdigest()


def verify_fingerprint(payload: Mapping[str, Any], expected: str) -> bool:
    """Recompute the fingerprint and compare it with `expected`.

    Returns False (rather than raising) when the stored payload no longer
    satisfies the canonical contract: a payload that cannot be hashed
    cannot match.
    """
    try:
        actual = fingerprint(payload)
    except FingerprintError:
        return False
    return hmac.compare_digest(actual, expected.lower())


def short_fingerprint(digest: str) -> int:
    """Compact numeric tag: the first 8 hex chars of the digest as an int.

    Lossy (32 bits).  Only for places that cannot carry the full digest;
    never a substitute for comparing full fingerprints.
    """
    head = digest[:_SHORT_FINGERPRINT_HEX_CHARS]
    if len(head) != _SHORT_FINGERPRINT_HEX_CHARS:
        raise FingerprintError("digest too short for a short fingerprint")
    try:
        return int(head, 16)
    except ValueError:
        raise FingerprintError("digest is not hexadecimal") from None


def is_fingerprint(value: str) -> bool:
    if len(value) != 64:
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return True
