"""Ledger RPC capability: params, submit, wait for confirmation, look up assets.

The anchor client only needs these calls from the ledger, captured by
the LedgerRpc Protocol.  Same pattern as the repos: a Protocol with an
in-memory implementation for dev/tests and a network implementation
for production.

  AlgodLedgerRpc     an Algorand node (algosdk AlgodClient) plus indexer
                     (IndexerClient).  The SDK clients are blocking, so
                     every call runs in a worker thread under a timeout,
                     and every transport or decoding problem is
                     translated into certanchor.ledger.errors.

  InMemoryLedgerRpc  a simulated ledger that decodes the same msgpack
                     signed transactions, checks signature, genesis and
                     validity window, mints asset ids, and can be told
                     to fail or stall.

Clients are constructed explicitly and closed with aclose(); the app
owns one for its lifetime (see lifespan_ledger in certanchor.ledger.client).
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from algosdk import error, transaction
from algosdk.v2client.algod import AlgodClient
from algosdk.v2client.indexer import IndexerClient

from certanchor.ledger.errors import (
    LedgerError,
    LedgerIntegerOverflow,
    LedgerRejectedError,
    LedgerResponseError,
    LedgerTimeoutError,
)
from certanchor.ledger.signing import verify_signature
from certanchor.ledger.transactions import (
    decode_signed_transaction,
    signing_bytes,
    to_uint64,
)

logger = logging.getLogger(__name__)

# Genesis ids of the public networks; anything else (sandbox, localnet)
# is accepted regardless of LEDGER_NETWORK.
_PUBLIC_NETWORKS = ("mainnet", "testnet", "betanet")


@dataclass(frozen=True, slots=True)
class Receipt:
    tx_id: str
    confirmed_round: int
    asset_id: int | None = None


@dataclass(frozen=True, slots=True)
class AssetInfo:
    asset_id: int
    creator: str
    name: str
    unit_name: str
    total: int
    url: str | None = None
    note: bytes | None = None  # note of the creation transaction
    deleted: bool = False


@runtime_checkable
class LedgerRpc(Protocol):
    async def suggested_params(self) -> transaction.SuggestedParams: ...
    async def submit_signed_transaction(self, raw: bytes) -> str: ...
    async def wait_for_confirmation(self, tx_id: str, max_rounds: int) -> Receipt: ...
    async def lookup_asset(self, asset_id: int) -> AssetInfo | None: ...
    async def aclose(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory ledger
# ---------------------------------------------------------------------------

IN_MEMORY_GENESIS_ID = "certanchor-inmemory-v1"
IN_MEMORY_GENESIS_HASH = base64.b64encode(
    hashlib.sha256(IN_MEMORY_GENESIS_ID.encode()).digest()
).decode("ascii")
MIN_FEE = 1000
_VALIDITY_WINDOW = 1000


@dataclass
class _Pending:
    stxn: transaction.SignedTransaction
    submitted_round: int


class InMemoryLedgerRpc:
    """Simulated ledger for tests and local dev, no network needed.

    Failure injection:
        params_error:       raised by every suggested_params call
        submit_error:       raised by every submit (e.g. LedgerTimeoutError())
        lookup_error:       raised by every lookup
        confirmation_rounds: rounds a transaction takes to confirm; if it
                            exceeds the caller's max_rounds the wait times out
    """

    def __init__(self, *, confirmation_rounds: int = 1) -> None:
        self.confirmation_rounds = confirmation_rounds
        self.params_error: LedgerError | None = None
        self.submit_error: LedgerError | None = None
        self.lookup_error: LedgerError | None = None
        self.submit_calls = 0
        self.closed = False
        self._round = 1000
        self._asset_ids = itertools.count(10_000)
        self._pending: dict[str, _Pending] = {}
        self._confirmed: dict[str, Receipt] = {}
        self._assets: dict[int, AssetInfo] = {}

    @property
    def current_round(self) -> int:
        return self._round

    def advance(self, rounds: int) -> None:
        self._round += rounds

    async def suggested_params(self) -> transaction.SuggestedParams:
        if self.params_error is not None:
            raise self.params_error
        return transaction.SuggestedParams(
            fee=MIN_FEE,
            first=self._round,
            last=self._round + _VALIDITY_WINDOW,
            gh=IN_MEMORY_GENESIS_HASH,
            gen=IN_MEMORY_GENESIS_ID,
            flat_fee=True,
            min_fee=MIN_FEE,
        )

    async def submit_signed_transaction(self, raw: bytes) -> str:
        self.submit_calls += 1
        if self.submit_error is not None:
            raise self.submit_error

        stxn = decode_signed_transaction(raw)
        txn = stxn.transaction
        try:
            signature = base64.b64decode(stxn.signature or "", validate=True)
        except binascii.Error:
            raise LedgerRejectedError("signature is not base64") from None
        if not verify_signature(txn.sender, signing_bytes(txn), signature):
            raise LedgerRejectedError("invalid signature")
        if txn.genesis_hash != IN_MEMORY_GENESIS_HASH:
            raise LedgerRejectedError("transaction is for a different network")
        if not txn.first_valid_round <= self._round <= txn.last_valid_round:
            raise LedgerRejectedError(
                f"round {self._round} outside validity window "
                f"[{txn.first_valid_round}, {txn.last_valid_round}]"
            )
        if txn.fee < MIN_FEE:
            raise LedgerRejectedError(f"fee {txn.fee} below minimum {MIN_FEE}")

        tx_id = stxn.get_txid()
        if tx_id not in self._confirmed:
            self._pending.setdefault(tx_id, _Pending(stxn, self._round))
        return tx_id

    async def wait_for_confirmation(self, tx_id: str, max_rounds: int) -> Receipt:
        if tx_id in self._confirmed:
            return self._confirmed[tx_id]
        pending = self._pending.get(tx_id)
        if pending is None:
            raise LedgerResponseError(f"unknown transaction {tx_id}")

        if self.confirmation_rounds > max_rounds:
            self._round += max_rounds
            raise LedgerTimeoutError(
                f"transaction {tx_id} not confirmed after {max_rounds} rounds"
            )

        self._round += self.confirmation_rounds
        del self._pending[tx_id]
        txn = pending.stxn.transaction
        receipt = Receipt(tx_id=tx_id, confirmed_round=self._round)
        if isinstance(txn, transaction.AssetConfigTxn) and not txn.index:
            asset_id = next(self._asset_ids)
            self._assets[asset_id] = AssetInfo(
                asset_id=asset_id,
                creator=txn.sender,
                name=txn.asset_name or "",
                unit_name=txn.unit_name or "",
                total=txn.total or 0,
                url=txn.url or None,
                note=txn.note,
            )
            receipt = Receipt(
                tx_id=tx_id, confirmed_round=self._round, asset_id=asset_id
            )
        self._confirmed[tx_id] = receipt
        return receipt

    async def lookup_asset(self, asset_id: int) -> AssetInfo | None:
        if self.lookup_error is not None:
            raise self.lookup_error
        return self._assets.get(asset_id)

    def put_asset(self, asset: AssetInfo) -> None:
        """Seed an asset directly (e.g. one created by another system)."""
        self._assets[asset.asset_id] = asset

    def destroy_asset(self, asset_id: int) -> None:
        asset = self._assets.get(asset_id)
        if asset is not None:
            self._assets[asset_id] = AssetInfo(
                asset_id=asset.asset_id,
                creator=asset.creator,
                name=asset.name,
                unit_name=asset.unit_name,
                total=asset.total,
                url=asset.url,
                note=asset.note,
                deleted=True,
            )

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Algorand node + indexer
# ---------------------------------------------------------------------------


def _http_status(e: Exception) -> int | None:
    code = getattr(e, "code", None)
    return code if isinstance(code, int) else None


class AlgodLedgerRpc:
    """LedgerRpc over an Algorand node and indexer.

    Error mapping:
        transport failure, call timeout, HTTP 5xx  -> LedgerTimeoutError
        HTTP 4xx, pool error                       -> LedgerRejectedError
        confirmation not reached in max_rounds     -> LedgerTimeoutError
        unexpected response shape                  -> LedgerResponseError
    """

    def __init__(
        self,
        algod: AlgodClient,
        indexer: IndexerClient,
        *,
        network: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._algod = algod
        self._indexer = indexer
        self._network = network
        self._timeout = timeout_seconds

    @classmethod
    def connect(
        cls,
        node_url: str,
        *,
        indexer_url: str | None = None,
        api_token: str | None = None,
        network: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> AlgodLedgerRpc:
        token = api_token or ""
        return cls(
            AlgodClient(token, node_url),
            IndexerClient(token, indexer_url or node_url),
            network=network,
            timeout_seconds=timeout_seconds,
        )

    async def _call(
        self,
        what: str,
        fn: Callable[..., Any],
        *args: Any,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs), timeout or self._timeout
            )
        except TimeoutError as e:
            raise LedgerTimeoutError(f"{what} timed out") from e
        except error.ConfirmationTimeoutError as e:
            raise LedgerTimeoutError(str(e)) from e
        except error.TransactionRejectedError as e:
            raise LedgerRejectedError(str(e)) from e
        except (error.AlgodHTTPError, error.IndexerHTTPError) as e:
            status = _http_status(e)
            if status is None or status >= 500:
                raise LedgerTimeoutError(f"{what} failed ({status}): {e}") from e
            raise LedgerRejectedError(f"{what} refused ({status}): {e}") from e
        except OSError as e:
            raise LedgerTimeoutError(f"{what} failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerResponseError(f"unexpected {what} response: {e}") from e

    async def suggested_params(self) -> transaction.SuggestedParams:
        params = await self._call("suggested params", self._algod.suggested_params)
        genesis = (params.gen or "").split("-", 1)[0]
        if self._network and genesis in _PUBLIC_NETWORKS and genesis != self._network:
            raise LedgerRejectedError(
                f"node serves {params.gen}, expected {self._network}"
            )
        return params

    async def submit_signed_transaction(self, raw: bytes) -> str:
        tx_id = decode_signed_transaction(raw).get_txid()
        try:
            sent = await self._call(
                "submit",
                self._algod.send_raw_transaction,
                base64.b64encode(raw).decode("ascii"),
            )
        except LedgerRejectedError as e:
            # A retried submit whose first attempt did land.
            if "already in ledger" in str(e):
                return tx_id
            raise
        if sent != tx_id:
            raise LedgerResponseError(f"node acknowledged {sent!r}, expected {tx_id}")
        return tx_id

    async def wait_for_confirmation(self, tx_id: str, max_rounds: int) -> Receipt:
        info = await self._call(
            "confirmation",
            transaction.wait_for_confirmation,
            self._algod,
            tx_id,
            max_rounds,
            timeout=self._timeout * (max_rounds + 1),
        )
        try:
            asset_id = info.get("asset-index")
            return Receipt(
                tx_id=tx_id,
                confirmed_round=to_uint64(info["confirmed-round"], field_name="round"),
                asset_id=(
                    to_uint64(asset_id, field_name="asset-index")
                    if asset_id is not None
                    else None
                ),
            )
        except (KeyError, AttributeError, LedgerIntegerOverflow) as e:
            raise LedgerResponseError(f"malformed confirmation: {e}") from None

    async def lookup_asset(self, asset_id: int) -> AssetInfo | None:
        asset_id = to_uint64(asset_id, field_name="asset_id")

        def asset_info() -> dict[str, Any] | None:
            try:
                return self._indexer.asset_info(asset_id, include_all=True)
            except error.IndexerHTTPError as e:
                if _http_status(e) == 404 or "no assets found" in str(e).lower():
                    return None
                raise

        body = await self._call("asset lookup", asset_info)
        if body is None:
            return None

        try:
            asset = body["asset"]
            params = asset["params"]
            info = AssetInfo(
                asset_id=to_uint64(asset["index"], field_name="index"),
                creator=str(params["creator"]),
                name=str(params.get("name", "")),
                unit_name=str(params.get("unit-name", "")),
                total=to_uint64(params.get("total", 0), field_name="total"),
                url=params.get("url"),
                deleted=bool(asset.get("deleted", False)),
            )
        except (KeyError, TypeError, LedgerIntegerOverflow) as e:
            raise LedgerResponseError(f"malformed asset response: {e}") from None

        return AssetInfo(
            asset_id=info.asset_id,
            creator=info.creator,
            name=info.name,
            unit_name=info.unit_name,
            total=info.total,
            url=info.url,
            note=await self._creation_note(asset_id),
            deleted=info.deleted,
        )

    async def _creation_note(self, asset_id: int) -> bytes | None:
        body = await self._call(
            "asset transactions lookup",
            self._indexer.search_asset_transactions,
            asset_id,
            txn_type="acfg",
            limit=1,
        )
        transactions = body.get("transactions") or []
        if not transactions:
            return None
        note = transactions[0].get("note")
        if note is None:
            return None
        try:
            return base64.b64decode(note, validate=True)
        except (binascii.Error, TypeError):
            raise LedgerResponseError("asset note is not base64") from None

    async def aclose(self) -> None:
        # algosdk clients hold no pooled connections
        logger.info("Ledger clients released")
