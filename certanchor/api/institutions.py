"""Institution endpoints.

- GET  /v1/institutions — public directory (id, name, verified)
- POST /v1/institutions — platform admin only
"""

from __future__ import annotations

from typing import Annotated

from algosdk import encoding
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from certanchor.api.dependencies import get_store, require_role
from certanchor.core.errors import StoreConflictError
from certanchor.models.institution import Institution
from certanchor.models.principal import PLATFORM_ADMIN, Principal
from certanchor.repos.store import Store

router = APIRouter(prefix="/v1/institutions", tags=["institutions"])


class InstitutionCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    ledger_address: str | None = Field(default=None, max_length=58)
    verified: bool = False


class InstitutionOut(BaseModel):
    id: str
    name: str
    verified: bool


class InstitutionDetailOut(InstitutionOut):
    ledger_address: str | None


@router.get("", response_model=list[InstitutionOut])
async def list_institutions(
    store: Annotated[Store, Depends(get_store)],
) -> list[InstitutionOut]:
    institutions = await store.institutions.list_all()
    return [InstitutionOut(id=str(i.id), name=i.name, verified=i.verified) for i in institutions]


@router.post("", response_model=InstitutionDetailOut, status_code=status.HTTP_201_CREATED)
async def create_institution(
    body: InstitutionCreateIn,
    _admin: Annotated[Principal, Depends(require_role(PLATFORM_ADMIN))],
    store: Annotated[Store, Depends(get_store)],
) -> InstitutionDetailOut:
    name = body.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="name is required")
    if body.ledger_address is not None and not encoding.is_valid_address(body.ledger_address):
        raise HTTPException(status_code=422, detail="ledger_address is not an Algorand address")

    institution = Institution.new(
        name=name, ledger_address=body.ledger_address, verified=body.verified
    )
    try:
        await store.institutions.add(institution)
    except StoreConflictError:
        raise HTTPException(status_code=409, detail="institution name already taken") from None
    await store.commit()

    return InstitutionDetailOut(
        id=str(institution.id),
        name=institution.name,
        verified=institution.verified,
        ledger_address=institution.ledger_address,
    )
