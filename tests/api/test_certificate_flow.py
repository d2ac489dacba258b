"""End-to-end certificate flow over HTTP.

Verifies:
1. Student submits, institution admin approves, certificate is anchored
2. Public verification by credential id and by fingerprint
3. Revocation makes verification fail with REVOKED
4. Rejection, listings, and owner-only download
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from certanchor.models.institution import Institution
from tests.conftest import auth, create_test_institution, mint_token


def _submit(client: TestClient, institution: Institution, **overrides) -> dict:
    body = {
        "institution_id": str(institution.id),
        "subject_name": "Jane Doe",
        "course_name": "CS101",
    }
    body.update(overrides)
    resp = client.post(
        "/v1/certificate-requests",
        json=body,
        headers=auth(mint_token("jane", ["student"])),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def _admin_headers(institution: Institution) -> dict[str, str]:
    return auth(mint_token("registrar", ["institution_admin"], institution.id))


def test_submit_approve_verify_revoke(client: TestClient) -> None:
    mit = create_test_institution("MIT")
    request = _submit(client, mit)
    assert request["status"] == "PENDING"

    resp = client.post(
        f"/v1/certificate-requests/{request['id']}/approve", headers=_admin_headers(mit)
    )
    assert resp.status_code == 201, resp.text
    issued = resp.json()
    certificate = issued["certificate"]
    assert issued["anchor"]["anchored"] is True
    assert isinstance(issued["anchor"]["asset_id"], int)
    assert certificate["status"] == "ACTIVE"
    assert certificate["institution_name"] == "MIT"
    assert certificate["ledger_asset_id"] == issued["anchor"]["asset_id"]
    credential_id = certificate["credential_id"]

    verified = client.get(f"/v1/certificates/{credential_id}/verify")
    assert verified.status_code == 200
    body = verified.json()
    assert body["valid"] is True
    assert body["chain_confirmed"] is True
    assert body["certificate"]["subject"] == "Jane Doe"
    assert body["certificate"]["institution"] == "MIT"
    assert body["certificate"]["course"] == "CS101"
    assert body["chain"]["status"] == "CONFIRMED"
    assert body["chain"]["full_digest"] is True
    assert "reason" not in body

    by_fingerprint = client.post(
        "/v1/certificates/verify", json={"identifier": certificate["fingerprint"]}
    )
    assert by_fingerprint.status_code == 200
    assert by_fingerprint.json()["certificate"]["credential_id"] == credential_id

    revoked = client.post(
        f"/v1/certificates/{credential_id}/revoke", headers=_admin_headers(mit)
    )
    assert revoked.status_code == 200
    assert revoked.json()["status"] == "REVOKED"

    after = client.get(f"/v1/certificates/{credential_id}/verify").json()
    assert after == {"valid": False, "chain_confirmed": False, "reason": "REVOKED"}


def test_verify_unknown_returns_not_found_without_details(client: TestClient) -> None:
    resp = client.get("/v1/certificates/CERT-000000000-AAAAAAAA/verify")
    assert resp.status_code == 200
    assert resp.json() == {"valid": False, "chain_confirmed": False, "reason": "NOT_FOUND"}


def test_verify_body_rejects_empty_identifier(client: TestClient) -> None:
    resp = client.post("/v1/certificates/verify", json={"identifier": ""})
    assert resp.status_code == 422


def test_second_approval_conflicts(client: TestClient) -> None:
    mit = create_test_institution("MIT")
    request = _submit(client, mit)
    url = f"/v1/certificate-requests/{request['id']}/approve"
    assert client.post(url, headers=_admin_headers(mit)).status_code == 201
    assert client.post(url, headers=_admin_headers(mit)).status_code == 409

    reject = client.post(
        f"/v1/certificate-requests/{request['id']}/reject", headers=_admin_headers(mit)
    )
    assert reject.status_code == 409


def test_reject_with_and_without_reason(client: TestClient) -> None:
    mit = create_test_institution("MIT")
    first = _submit(client, mit)
    second = _submit(client, mit, course_name="CS102")

    resp = client.post(
        f"/v1/certificate-requests/{first['id']}/reject",
        json={"reason": "missing transcript"},
        headers=_admin_headers(mit),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "REJECTED"
    assert resp.json()["rejection_reason"] == "missing transcript"

    resp = client.post(
        f"/v1/certificate-requests/{second['id']}/reject", headers=_admin_headers(mit)
    )
    assert resp.status_code == 200
    assert resp.json()["rejection_reason"] == "Request rejected by institution"


def test_listings(client: TestClient) -> None:
    mit = create_test_institution("MIT")
    first = _submit(client, mit)
    _submit(client, mit, course_name="CS102")
    client.post(f"/v1/certificate-requests/{first['id']}/approve", headers=_admin_headers(mit))

    student_headers = auth(mint_token("jane", ["student"]))
    mine = client.get("/v1/certificate-requests/mine", headers=student_headers).json()
    assert {r["course_name"] for r in mine} == {"CS101", "CS102"}

    pending = client.get(
        f"/v1/institutions/{mit.id}/certificate-requests",
        params={"status": "PENDING"},
        headers=_admin_headers(mit),
    )
    assert pending.status_code == 200
    assert [r["course_name"] for r in pending.json()] == ["CS102"]

    issued = client.get(f"/v1/institutions/{mit.id}/certificates", headers=_admin_headers(mit))
    assert [c["course_name"] for c in issued.json()] == ["CS101"]

    my_certs = client.get("/v1/certificates/mine", headers=student_headers).json()
    assert len(my_certs) == 1


def test_download_is_owner_only(client: TestClient) -> None:
    mit = create_test_institution("MIT")
    request = _submit(client, mit)
    issued = client.post(
        f"/v1/certificate-requests/{request['id']}/approve", headers=_admin_headers(mit)
    ).json()
    credential_id = issued["certificate"]["credential_id"]

    own = client.get(
        f"/v1/certificates/{credential_id}/download",
        headers=auth(mint_token("jane", ["student"])),
    )
    assert own.status_code == 200
    assert own.json()["payload"]["studentName"] == "Jane Doe"
    assert own.json()["payload"]["institutionName"] == "MIT"

    other = client.get(
        f"/v1/certificates/{credential_id}/download",
        headers=auth(mint_token("mallory", ["student"])),
    )
    assert other.status_code == 404
