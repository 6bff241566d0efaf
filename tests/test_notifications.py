import pytest

from app.services import notifications


@pytest.fixture
def inbox(db_session, make_user):
    user = make_user()
    for index in range(3):
        notifications.notify(
            db_session,
            user_id=user.id,
            kind="payout_sent",
            title=f"Payout {index}",
            message="Your payout is on its way.",
            related_entity="PayoutItem",
            related_id=index,
        )
    db_session.commit()
    return user


@pytest.mark.anyio
async def test_list_newest_first(client, inbox, headers_for):
    response = await client.get("/me/notifications", headers=headers_for(inbox))

    assert response.status_code == 200
    titles = [row["title"] for row in response.json()]
    assert titles == ["Payout 2", "Payout 1", "Payout 0"]
    assert response.json()[0]["related_id"] == "2"


@pytest.mark.anyio
async def test_mark_read_and_filter_unread(client, inbox, headers_for):
    headers = headers_for(inbox)
    newest = (await client.get("/me/notifications", headers=headers)).json()[0]

    marked = await client.post(f"/me/notifications/{newest['id']}/read", headers=headers)
    assert marked.status_code == 200
    assert marked.json()["is_read"] is True

    unread = await client.get("/me/notifications", params={"unread_only": True}, headers=headers)
    assert [row["title"] for row in unread.json()] == ["Payout 1", "Payout 0"]


@pytest.mark.anyio
async def test_read_all(client, inbox, headers_for):
    headers = headers_for(inbox)

    response = await client.post("/me/notifications/read-all", headers=headers)

    assert response.json() == {"updated": 3}
    unread = await client.get("/me/notifications", params={"unread_only": True}, headers=headers)
    assert unread.json() == []


@pytest.mark.anyio
async def test_cannot_read_someone_elses_notification(client, inbox, make_user, headers_for):
    own = (await client.get("/me/notifications", headers=headers_for(inbox))).json()[0]

    response = await client.post(f"/me/notifications/{own['id']}/read", headers=headers_for(make_user()))

    assert response.status_code == 404


def test_operator_fan_out_skips_regular_users(db_session, make_user):
    first = make_user(is_operator=True)
    second = make_user(is_operator=True)
    make_user()

    sent = notifications.notify_operators(db_session, kind="plan_flagged", title="Check plan", message="Sum is 101%")

    assert sorted(n.user_id for n in sent) == sorted([first.id, second.id])
