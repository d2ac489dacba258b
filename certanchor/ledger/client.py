"""Ledger wiring: one anchor client and keyring per app.

Mirrors db/engine.py and db/redis.py: configuration decides at startup
whether a real ledger node is used.  Unlike those modules the clients
are NOT module globals.  lifespan_ledger() builds them, stores them on
app.state, and closes them on shutdown; handlers receive them through
the get_ledger dependency, which tests override with an in-memory ledger.

Without LEDGER_NODE_URL there is no rpc at all.  Certificates are then
issued unanchored and on-chain checks report UNANCHORED.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from uuid import UUID

from fastapi import FastAPI

from certanchor.core.config import Settings
from certanchor.ledger.anchor import (
    AnchorFailure,
    AnchorFailureReason,
    AnchorOutcome,
    AnchorVerification,
    ChainStatus,
    LedgerAnchorClient,
)
from certanchor.ledger.rpc import AlgodLedgerRpc, LedgerRpc
from certanchor.ledger.signing import SigningIdentity, SigningKeyring

logger = logging.getLogger(__name__)


@dataclass
class LedgerServices:
    anchor_client: LedgerAnchorClient | None = None
    keyring: SigningKeyring = field(default_factory=SigningKeyring)

    @property
    def enabled(self) -> bool:
        return self.anchor_client is not None and self.keyring.configured

    async def anchor(
        self, credential_id: str, fingerprint: str, institution_id: UUID
    ) -> AnchorOutcome:
        if self.anchor_client is None:
            return AnchorFailure(AnchorFailureReason.NOT_CONFIGURED, "no ledger node")
        identity = self.keyring.for_institution(institution_id)
        return await self.anchor_client.anchor(credential_id, fingerprint, identity)

    async def verify_anchor(
        self,
        asset_id: int | None,
        expected_fingerprint: str,
        *,
        expected_credential_id: str | None = None,
    ) -> AnchorVerification:
        if asset_id is None:
            return AnchorVerification(ChainStatus.UNANCHORED)
        if self.anchor_client is None:
            return AnchorVerification(
                ChainStatus.INCONCLUSIVE, detail="ledger lookups not configured"
            )
        return await self.anchor_client.verify_anchor(
            asset_id, expected_fingerprint, expected_credential_id=expected_credential_id
        )

    async def aclose(self) -> None:
        if self.anchor_client is not None:
            await self.anchor_client.rpc.aclose()


def build_ledger_services(
    settings: Settings, *, rpc: LedgerRpc | None = None
) -> LedgerServices:
    """Build the ledger services described by settings.

    Passing `rpc` skips the node clients (tests pass InMemoryLedgerRpc).
    """
    keyring = SigningKeyring(
        default=(
            SigningIdentity.from_seed_hex(settings.ledger_signing_key)
            if settings.ledger_signing_key
            else None
        )
    )
    if rpc is None and settings.ledger_node_url:
        rpc = AlgodLedgerRpc.connect(
            settings.ledger_node_url,
            indexer_url=settings.ledger_indexer_url,
            api_token=settings.ledger_api_token,
            network=settings.ledger_network,
            timeout_seconds=settings.ledger_timeout_seconds,
        )
    if rpc is None:
        return LedgerServices(keyring=keyring)

    client = LedgerAnchorClient(
        rpc,
        confirmation_rounds=settings.ledger_confirmation_rounds,
        submit_attempts=settings.ledger_submit_attempts,
        metadata_base_url=settings.cert_metadata_base_url,
    )
    return LedgerServices(anchor_client=client, keyring=keyring)


@asynccontextmanager
async def lifespan_ledger(app: FastAPI, settings: Settings):
    ledger = build_ledger_services(settings)
    app.state.ledger = ledger
    if ledger.anchor_client is None:
        logger.info("No LEDGER_NODE_URL configured — certificates are issued unanchored")
    elif not ledger.keyring.configured:
        logger.warning("Ledger node configured without LEDGER_SIGNING_KEY — anchoring disabled")
    else:
        logger.info(
            "Ledger anchoring enabled network=%s confirmation_rounds=%d",
            settings.ledger_network,
            settings.ledger_confirmation_rounds,
        )
    try:
        yield ledger
    finally:
        await ledger.aclose()
