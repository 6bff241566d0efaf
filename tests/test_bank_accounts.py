import pytest

from app.models import FreelancerBankAccount

ACCOUNT = {
    "bank_name": "Capitec",
    "account_holder_name": "Sipho Dlamini",
    "account_number": "1234 5678 90",
    "branch_code": "470010",
    "account_type": "savings",
}


@pytest.mark.anyio
async def test_create_account_returns_masked_number(client, db_session, make_user, headers_for):
    freelancer = make_user()

    response = await client.post("/me/bank-accounts", json=ACCOUNT, headers=headers_for(freelancer))

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["account_number"] == "***7890"
    assert body["is_verified"] is False
    assert body["is_primary"] is True
    stored = db_session.get(FreelancerBankAccount, body["id"])
    assert stored.account_number == "1234567890"


@pytest.mark.anyio
async def test_account_number_must_be_digits(client, make_user, headers_for):
    response = await client.post(
        "/me/bank-accounts",
        json={**ACCOUNT, "account_number": "12AB5678"},
        headers=headers_for(make_user()),
    )
    assert response.status_code == 422


@pytest.mark.anyio
async def test_changing_details_clears_verification(client, db_session, make_user, make_bank_account, headers_for):
    freelancer = make_user()
    account = make_bank_account(freelancer)
    headers = headers_for(freelancer)

    same = await client.put(
        f"/me/bank-accounts/{account.id}",
        json={
            "bank_name": "FNB",
            "account_holder_name": "Thandi Nkosi",
            "account_number": "62845571234",
            "branch_code": "250655",
            "is_primary": True,
        },
        headers=headers,
    )
    assert same.status_code == 200
    assert same.json()["is_verified"] is True

    changed = await client.put(f"/me/bank-accounts/{account.id}", json=ACCOUNT, headers=headers)
    assert changed.status_code == 200
    assert changed.json()["is_verified"] is False
    assert changed.json()["verified_at"] is None


@pytest.mark.anyio
async def test_new_primary_demotes_previous(client, make_user, make_bank_account, headers_for):
    freelancer = make_user()
    old = make_bank_account(freelancer)
    headers = headers_for(freelancer)

    await client.post("/me/bank-accounts", json=ACCOUNT, headers=headers)
    listed = await client.get("/me/bank-accounts", headers=headers)

    primaries = {row["id"]: row["is_primary"] for row in listed.json()}
    assert primaries[old.id] is False
    assert sum(primaries.values()) == 1


@pytest.mark.anyio
async def test_operator_verifies_account(client, make_user, headers_for):
    freelancer = make_user()
    operator = make_user(is_operator=True)
    created = await client.post("/me/bank-accounts", json=ACCOUNT, headers=headers_for(freelancer))
    account_id = created.json()["id"]

    refused = await client.post(f"/operator/bank-accounts/{account_id}/verify", headers=headers_for(freelancer))
    assert refused.status_code == 403

    verified = await client.post(f"/operator/bank-accounts/{account_id}/verify", headers=headers_for(operator))
    assert verified.status_code == 200, verified.text
    assert verified.json()["is_verified"] is True
    assert verified.json()["verified_at"] is not None

    missing = await client.post("/operator/bank-accounts/999999/verify", headers=headers_for(operator))
    assert missing.status_code == 404


@pytest.mark.anyio
async def test_other_users_account_is_not_found(client, make_user, make_bank_account, headers_for):
    owner = make_user()
    account = make_bank_account(owner)

    response = await client.put(
        f"/me/bank-accounts/{account.id}", json=ACCOUNT, headers=headers_for(make_user())
    )

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "BANK_ACCOUNT_NOT_FOUND"


@pytest.mark.anyio
async def test_service_key_has_no_bank_accounts(client, service_headers):
    response = await client.get("/me/bank-accounts", headers=service_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "USER_REQUIRED"
