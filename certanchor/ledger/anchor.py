"""Ledger anchoring and on-chain verification of certificate fingerprints.

ANCHORING IS BEST-EFFORT
-------------------------
The local certificate record is the source of truth.  anchor() layers an
on-chain copy of the fingerprint on top when it can and reports an
AnchorFailure when it cannot; it never raises.  Callers issue the
certificate either way.

    build acfg txn ─► sign ─► submit ──(timeout: retry w/ backoff)──► wait N rounds
                                 │                                         │
                          rejected/malformed                     timeout: abandon
                                 ▼                                         ▼
                           AnchorFailure                             AnchorFailure

Retrying a timed-out submit resends the same signed bytes.  The tx id is
derived from the body, so the ledger sees a duplicate rather than a
second asset, and the validity window from the suggested params bounds
how long a stale transaction can still land.

Anchor calls that share a signing identity are serialized by a
per-address lock so one account never has two creations in flight.
The lock is held only around ledger I/O, never around local state.

VERIFYING AN ANCHOR
--------------------
verify_anchor() looks the asset up and compares the fingerprint recorded
in its creation note with the expected one, byte for byte.  Existence of
the asset alone proves nothing about its content and is NOT reported as
confirmation.

Assets whose note only carries the 32-bit short fingerprint (created by
systems that could not fit the full digest) can only be matched on that
tag.  Such matches are reported as CONFIRMED_TRUNCATED with
full_digest=False so callers can present them as the weaker check they are.
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from certanchor.core.metrics import (
    CHAIN_CHECKS,
    LEDGER_ANCHOR_ATTEMPTS,
    LEDGER_ANCHOR_DURATION,
)
from certanchor.ledger.errors import (
    LedgerError,
    LedgerIntegerOverflow,
    LedgerRejectedError,
    LedgerResponseError,
    LedgerTimeoutError,
)
from certanchor.ledger.rpc import LedgerRpc
from certanchor.ledger.signing import SigningIdentity
from certanchor.ledger.transactions import (
    build_asset_create,
    decode_note,
    sign_transaction,
    to_uint64,
)
from certanchor.services.fingerprint import FingerprintError, short_fingerprint

logger = logging.getLogger(__name__)


class AnchorFailureReason(StrEnum):
    NOT_CONFIGURED = "not_configured"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    MALFORMED_RESPONSE = "malformed_response"
    OVERFLOW = "overflow"
    UNEXPECTED = "unexpected"


@dataclass(frozen=True, slots=True)
class AnchorReceipt:
    asset_id: int
    tx_id: str
    confirmed_round: int


@dataclass(frozen=True, slots=True)
class AnchorFailure:
    reason: AnchorFailureReason
    detail: str = ""

    @property
    def retryable(self) -> bool:
        return self.reason in (
            AnchorFailureReason.TIMEOUT,
            AnchorFailureReason.NOT_CONFIGURED,
        )


AnchorOutcome = AnchorReceipt | AnchorFailure


class ChainStatus(StrEnum):
    CONFIRMED = "CONFIRMED"
    CONFIRMED_TRUNCATED = "CONFIRMED_TRUNCATED"
    MISMATCH = "MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    INCONCLUSIVE = "INCONCLUSIVE"
    UNANCHORED = "UNANCHORED"


@dataclass(frozen=True, slots=True)
class AnchorVerification:
    status: ChainStatus
    full_digest: bool = False
    owner: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    detail: str = ""

    @property
    def valid(self) -> bool:
        return self.status in (ChainStatus.CONFIRMED, ChainStatus.CONFIRMED_TRUNCATED)


class LedgerAnchorClient:
    def __init__(
        self,
        rpc: LedgerRpc,
        *,
        confirmation_rounds: int = 3,
        submit_attempts: int = 3,
        backoff_seconds: float = 0.5,
        metadata_base_url: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if confirmation_rounds < 1 or submit_attempts < 1:
            raise ValueError("confirmation_rounds and submit_attempts must be >= 1")
        self._rpc = rpc
        self._confirmation_rounds = confirmation_rounds
        self._submit_attempts = submit_attempts
        self._backoff_seconds = backoff_seconds
        self._metadata_base_url = metadata_base_url
        self._sleep = sleep
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def rpc(self) -> LedgerRpc:
        return self._rpc

    def _lock_for(self, address: str) -> asyncio.Lock:
        lock = self._locks.get(address)
        if lock is None:
            lock = self._locks[address] = asyncio.Lock()
        return lock

    def _metadata_url(self, credential_id: str) -> str | None:
        if not self._metadata_base_url:
            return None
        return f"{self._metadata_base_url.rstrip('/')}/{credential_id}/metadata"

    # ------------------------------------------------------------------
    # anchor
    # ------------------------------------------------------------------

    async def anchor(
        self,
        credential_id: str,
        fingerprint: str,
        identity: SigningIdentity | None,
    ) -> AnchorOutcome:
        """Create an asset whose note records (credential_id, fingerprint)."""
        if identity is None:
            LEDGER_ANCHOR_ATTEMPTS.labels(result="skipped").inc()
            logger.info(
                "No signing identity configured, skipping anchoring for %s",
                credential_id,
                extra={"credential_id": credential_id},
            )
            return AnchorFailure(AnchorFailureReason.NOT_CONFIGURED)

        start = time.monotonic()
        try:
            async with self._lock_for(identity.address):
                outcome = await self._anchor_locked(credential_id, fingerprint, identity)
        except Exception as e:
            logger.exception(
                "Unexpected error anchoring %s",
                credential_id,
                extra={"credential_id": credential_id},
            )
            outcome = AnchorFailure(AnchorFailureReason.UNEXPECTED, type(e).__name__)
        finally:
            LEDGER_ANCHOR_DURATION.observe(time.monotonic() - start)

        if isinstance(outcome, AnchorReceipt):
            LEDGER_ANCHOR_ATTEMPTS.labels(result="anchored").inc()
            logger.info(
                "Anchored %s as asset=%d tx=%s round=%d",
                credential_id,
                outcome.asset_id,
                outcome.tx_id,
                outcome.confirmed_round,
                extra={
                    "credential_id": credential_id,
                    "ledger_asset_id": outcome.asset_id,
                    "ledger_tx_id": outcome.tx_id,
                },
            )
        else:
            LEDGER_ANCHOR_ATTEMPTS.labels(result="failed").inc()
            logger.warning(
                "Anchoring failed for %s: %s %s",
                credential_id,
                outcome.reason,
                outcome.detail,
                extra={"credential_id": credential_id},
            )
        return outcome

    @staticmethod
    def _failure(e: LedgerError) -> AnchorFailure:
        if isinstance(e, LedgerTimeoutError):
            return AnchorFailure(AnchorFailureReason.TIMEOUT, str(e))
        if isinstance(e, LedgerRejectedError):
            return AnchorFailure(AnchorFailureReason.REJECTED, str(e))
        if isinstance(e, LedgerIntegerOverflow):
            return AnchorFailure(AnchorFailureReason.OVERFLOW, str(e))
        return AnchorFailure(AnchorFailureReason.MALFORMED_RESPONSE, str(e))

    async def _anchor_locked(
        self, credential_id: str, fingerprint: str, identity: SigningIdentity
    ) -> AnchorOutcome:
        try:
            params = await self._rpc.suggested_params()
        except LedgerError as e:
            return self._failure(e)
        txn = build_asset_create(
            sender=identity.address,
            credential_id=credential_id,
            fingerprint=fingerprint,
            params=params,
            metadata_url=self._metadata_url(credential_id),
        )
        signed = sign_transaction(txn, identity)

        tx_id: str | None = None
        for attempt in range(1, self._submit_attempts + 1):
            try:
                tx_id = await self._rpc.submit_signed_transaction(signed)
                break
            except LedgerTimeoutError as e:
                if attempt == self._submit_attempts:
                    return self._failure(e)
                delay = self._backoff_seconds * 2 ** (attempt - 1)
                logger.info(
                    "Submit attempt %d/%d for %s timed out, retrying in %.1fs",
                    attempt,
                    self._submit_attempts,
                    credential_id,
                    delay,
                )
                await self._sleep(delay)
            except LedgerError as e:
                return self._failure(e)

        if tx_id is None:
            return AnchorFailure(AnchorFailureReason.TIMEOUT)

        try:
            receipt = await self._rpc.wait_for_confirmation(
                tx_id, self._confirmation_rounds
            )
        except LedgerError as e:
            return self._failure(e)

        if receipt.asset_id is None:
            return AnchorFailure(
                AnchorFailureReason.MALFORMED_RESPONSE, "receipt has no asset id"
            )
        try:
            asset_id = to_uint64(receipt.asset_id, field_name="asset_id")
        except LedgerIntegerOverflow as e:
            return self._failure(e)

        return AnchorReceipt(
            asset_id=asset_id, tx_id=receipt.tx_id, confirmed_round=receipt.confirmed_round
        )

    # ------------------------------------------------------------------
    # verify_anchor
    # ------------------------------------------------------------------

    async def verify_anchor(
        self,
        asset_id: int,
        expected_fingerprint: str,
        *,
        expected_credential_id: str | None = None,
    ) -> AnchorVerification:
        result = await self._verify(asset_id, expected_fingerprint, expected_credential_id)
        CHAIN_CHECKS.labels(status=result.status.lower()).inc()
        return result

    async def _verify(
        self,
        asset_id: int,
        expected_fingerprint: str,
        expected_credential_id: str | None,
    ) -> AnchorVerification:
        try:
            asset = await self._rpc.lookup_asset(to_uint64(asset_id, field_name="asset_id"))
        except LedgerIntegerOverflow as e:
            return AnchorVerification(ChainStatus.INCONCLUSIVE, detail=str(e))
        except LedgerTimeoutError as e:
            logger.warning("Ledger unreachable verifying asset=%s: %s", asset_id, e)
            return AnchorVerification(ChainStatus.INCONCLUSIVE, detail="ledger unreachable")
        except LedgerError as e:
            logger.warning("Malformed ledger data for asset=%s: %s", asset_id, e)
            return AnchorVerification(ChainStatus.INCONCLUSIVE, detail=str(e))

        if asset is None or asset.deleted:
            return AnchorVerification(ChainStatus.NOT_FOUND)

        owner = asset.creator
        metadata = {
            "name": asset.name,
            "unit_name": asset.unit_name,
            "url": asset.url,
            "total": asset.total,
        }

        if asset.note is None:
            return AnchorVerification(
                ChainStatus.INCONCLUSIVE,
                owner=owner,
                metadata=metadata,
                detail="asset carries no fingerprint note",
            )
        try:
            note = decode_note(asset.note)
        except LedgerResponseError as e:
            return AnchorVerification(
                ChainStatus.INCONCLUSIVE, owner=owner, metadata=metadata, detail=str(e)
            )

        # Short-fingerprint notes predate the credential id field.
        noted_credential = note.get("credential_id")
        if (
            expected_credential_id is not None
            and noted_credential is not None
            and noted_credential != expected_credential_id
        ):
            return AnchorVerification(
                ChainStatus.MISMATCH,
                owner=owner,
                metadata=metadata,
                detail="credential id in note does not match",
            )

        noted_fingerprint = note.get("fingerprint")
        if isinstance(noted_fingerprint, str):
            matches = hmac.compare_digest(
                noted_fingerprint.lower(), expected_fingerprint.lower()
            )
            return AnchorVerification(
                ChainStatus.CONFIRMED if matches else ChainStatus.MISMATCH,
                full_digest=True,
                owner=owner,
                metadata=metadata,
            )

        noted_short = note.get("short_fingerprint")
        if isinstance(noted_short, int) and not isinstance(noted_short, bool):
            try:
                matches = noted_short == short_fingerprint(expected_fingerprint)
            except FingerprintError as e:
                return AnchorVerification(ChainStatus.INCONCLUSIVE, detail=str(e))
            if matches:
                logger.warning(
                    "Asset %s matched on the 32-bit short fingerprint only; "
                    "full digest not available on chain",
                    asset_id,
                )
            return AnchorVerification(
                ChainStatus.CONFIRMED_TRUNCATED if matches else ChainStatus.MISMATCH,
                full_digest=False,
                owner=owner,
                metadata=metadata,
                detail="only the truncated fingerprint is recorded on chain",
            )

        return AnchorVerification(
            ChainStatus.INCONCLUSIVE,
            owner=owner,
            metadata=metadata,
            detail="asset note has no fingerprint",
        )
