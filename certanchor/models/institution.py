from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Institution:
    id: UUID
    name: str
    ledger_address: str | None = None
    verified: bool = False

    @staticmethod
    def new(
        *, name: str, ledger_address: str | None = None, verified: bool = False
    ) -> Institution:
        return Institution(
            id=uuid4(), name=name, ledger_address=ledger_address, verified=verified
        )
