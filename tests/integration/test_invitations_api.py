"""Integration tests for inviting people into groups."""

from datetime import timedelta

import pytest

from groupsplit.db.models import GroupInvitation
from groupsplit.services.email import EmailDeliveryError
from groupsplit.utils.dates import utc_now


def invitations_url(group_id, suffix=""):
    return f"/api/groups/{group_id}/invitations{suffix}"


def expire_invitations(db_session):
    db_session.query(GroupInvitation).update(
        {GroupInvitation.expires_at: utc_now() - timedelta(minutes=1)}
    )
    db_session.commit()


@pytest.mark.integration
class TestInvite:
    """Test sending invitations."""

    def test_invite_sends_email(self, client, alice, mailer, create_group, invite):
        group = create_group(alice, "Coloc")
        invitation = invite(group["id"], alice, "Dana@Example.com")

        assert invitation["email"] == "dana@example.com"
        assert invitation["invited_by"] == "Alice"

        message = mailer.outbox[-1]
        assert message["To"] == "dana@example.com"
        assert message["Subject"] == 'Alice vous invite à rejoindre "Coloc" sur GroupSplit'
        assert "http://localhost:5173/invite/" in message.get_body(preferencelist=("plain",)).get_content()

    def test_invite_creates_pending_member(self, client, alice, create_group, invite):
        group = create_group(alice)
        invite(group["id"], alice, "dana@example.com")

        members = client.get(f"/api/groups/{group['id']}/members", headers=alice.headers).json()["members"]

        assert [m["name"] for m in members] == ["Alice", "dana"]
        assert members[1]["is_pending"] is True
        assert [m["coefficient"] for m in members] == [5000, 5000]

    def test_already_member(self, client, alice, bob, shared_group):
        response = client.post(
            invitations_url(shared_group.id), json={"email": "BOB@example.com"}, headers=alice.headers
        )

        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_MEMBER"

    def test_already_invited(self, client, alice, create_group, invite):
        group = create_group(alice)
        invite(group["id"], alice, "dana@example.com")

        response = client.post(
            invitations_url(group["id"]), json={"email": "dana@example.com"}, headers=alice.headers
        )

        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_INVITED"

    def test_expired_invitation_can_be_renewed(self, client, alice, db_session, create_group, invite):
        group = create_group(alice)
        invite(group["id"], alice, "dana@example.com")
        expire_invitations(db_session)

        invite(group["id"], alice, "dana@example.com")

        members = client.get(f"/api/groups/{group['id']}/members", headers=alice.headers).json()["members"]
        assert len(members) == 2

    def test_invalid_email(self, client, alice, create_group):
        group = create_group(alice)
        response = client.post(
            invitations_url(group["id"]), json={"email": "dana"}, headers=alice.headers
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Adresse email invalide"

    def test_email_failure_rolls_back(self, client, alice, mailer, monkeypatch, create_group):
        group = create_group(alice)

        async def broken(*args, **kwargs):
            raise EmailDeliveryError("connection refused")

        monkeypatch.setattr(mailer, "send_invitation", broken)

        response = client.post(
            invitations_url(group["id"]), json={"email": "dana@example.com"}, headers=alice.headers
        )

        assert response.status_code == 500
        assert response.json()["code"] == "EMAIL_SEND_FAILED"
        assert client.get(invitations_url(group["id"]), headers=alice.headers).json()["invitations"] == []
        members = client.get(f"/api/groups/{group['id']}/members", headers=alice.headers).json()["members"]
        assert len(members) == 1

    def test_list_and_cancel(self, client, alice, create_group, invite):
        group = create_group(alice)
        invitation = invite(group["id"], alice, "dana@example.com")

        listed = client.get(invitations_url(group["id"]), headers=alice.headers).json()["invitations"]
        assert [i["id"] for i in listed] == [invitation["id"]]

        response = client.delete(invitations_url(group["id"], f"/{invitation['id']}"), headers=alice.headers)

        assert response.status_code == 204
        assert client.get(invitations_url(group["id"]), headers=alice.headers).json()["invitations"] == []
        members = client.get(f"/api/groups/{group['id']}/members", headers=alice.headers).json()["members"]
        assert [m["name"] for m in members] == ["Alice"]
        assert members[0]["coefficient"] == 10000

    def test_resend_replaces_link(self, client, alice, make_user, mailer, create_group, invite, invitation_token):
        dana = make_user("dana@example.com", "Dana")
        group = create_group(alice)
        invitation = invite(group["id"], alice, dana.email)
        old_token = invitation_token(group["id"], dana)

        response = client.post(
            invitations_url(group["id"], f"/{invitation['id']}/resend"), headers=alice.headers
        )

        assert response.status_code == 200
        assert len(mailer.outbox) == 2
        new_token = invitation_token(group["id"], dana)
        assert new_token != old_token
        assert client.get(f"/api/invitations/{old_token}").status_code == 404


@pytest.mark.integration
class TestRespond:
    """Test viewing, accepting and declining an invitation."""

    @pytest.fixture
    def pending(self, alice, make_user, create_group, invite, invitation_token):
        dana = make_user("dana@example.com", "Dana")
        group = create_group(alice, "Coloc")
        invite(group["id"], alice, dana.email, name="D.")
        return group, dana, invitation_token(group["id"], dana)

    def test_pending_list(self, client, pending):
        group, dana, token = pending
        invitations = client.get("/api/invitations/pending", headers=dana.headers).json()["invitations"]

        assert len(invitations) == 1
        assert invitations[0]["group"] == {"id": group["id"], "name": "Coloc"}
        assert invitations[0]["invited_by"] == "Alice"

    def test_view_without_session(self, client, pending):
        group, _, token = pending
        body = client.get(f"/api/invitations/{token}").json()

        assert body["group"]["name"] == "Coloc"
        assert body["inviter_name"] == "Alice"
        assert body["is_for_current_user"] is None

    def test_view_as_recipient(self, client, bob, pending):
        _, dana, token = pending

        assert client.get(f"/api/invitations/{token}", headers=dana.headers).json()["is_for_current_user"] is True
        assert client.get(f"/api/invitations/{token}", headers=bob.headers).json()["is_for_current_user"] is False

    def test_unknown_token(self, client):
        response = client.get("/api/invitations/no-such-token")

        assert response.status_code == 404
        assert response.json()["code"] == "INVITATION_NOT_FOUND"

    def test_expired(self, client, db_session, pending):
        _, dana, token = pending
        expire_invitations(db_session)

        response = client.post(f"/api/invitations/{token}/accept", headers=dana.headers)

        assert response.status_code == 400
        assert response.json()["code"] == "INVITATION_EXPIRED"

    def test_accept(self, client, pending):
        group, dana, token = pending

        response = client.post(f"/api/invitations/{token}/accept", headers=dana.headers)

        assert response.status_code == 200
        assert response.json() == {"group_id": group["id"]}

        me = client.get(f"/api/groups/{group['id']}/members/me", headers=dana.headers).json()
        assert me["name"] == "Dana"
        assert me["is_pending"] is False
        members = client.get(f"/api/groups/{group['id']}/members", headers=dana.headers).json()["members"]
        assert len(members) == 2

        assert client.post(f"/api/invitations/{token}/accept", headers=dana.headers).status_code == 404
        assert client.get("/api/invitations/pending", headers=dana.headers).json()["invitations"] == []

    def test_accept_keeps_pending_history(self, client, alice, add_expense, pending):
        group, dana, token = pending
        pending_member = client.get(f"/api/groups/{group['id']}/members", headers=alice.headers).json()["members"][1]
        add_expense(group["id"], alice, group["my_member_id"], 1000, [pending_member["id"]])

        client.post(f"/api/invitations/{token}/accept", headers=dana.headers)

        me = client.get(f"/api/groups/{group['id']}/members/me", headers=dana.headers).json()
        assert me["id"] == pending_member["id"]
        mine = client.get(f"/api/groups/{group['id']}/balances/me", headers=dana.headers).json()
        assert mine["balance"]["net_balance"] == -1000

    def test_accept_for_someone_else(self, client, bob, pending):
        _, _, token = pending
        response = client.post(f"/api/invitations/{token}/accept", headers=bob.headers)

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_accept_requires_session(self, client, pending):
        _, _, token = pending
        assert client.post(f"/api/invitations/{token}/accept").status_code == 401

    def test_decline(self, client, alice, pending):
        group, dana, token = pending

        assert client.post(f"/api/invitations/{token}/decline", headers=dana.headers).status_code == 204

        members = client.get(f"/api/groups/{group['id']}/members", headers=alice.headers).json()["members"]
        assert [m["name"] for m in members] == ["Alice"]
        assert client.get(f"/api/invitations/{token}").status_code == 404
        assert client.get(f"/api/groups/{group['id']}", headers=dana.headers).status_code == 403
