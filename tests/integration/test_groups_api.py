"""Integration tests for groups and their members."""

import pytest


@pytest.mark.integration
class TestGroups:
    """Test creating, reading and changing groups."""

    def test_create_group(self, client, alice, create_group):
        group = create_group(alice, "Vacances", description="Été 2024", currency="CHF")

        assert group["name"] == "Vacances"
        assert group["description"] == "Été 2024"
        assert group["currency"] == "CHF"
        assert group["income_frequency"] == "annual"
        assert group["is_creator"] is True
        assert group["is_archived"] is False
        assert len(group["members"]) == 1

        me = group["members"][0]
        assert me["id"] == group["my_member_id"]
        assert me["name"] == "Alice"
        assert me["coefficient"] == 10000
        assert me["coefficient_percent"] == 100
        assert me["is_current_user"] is True
        assert me["is_pending"] is False

    def test_member_named_after_email_without_name(self, client, make_user, create_group):
        dana = make_user("dana@example.com")
        group = create_group(dana)
        assert group["members"][0]["name"] == "dana"

    def test_name_required(self, client, alice):
        response = client.post("/api/groups", json={"name": ""}, headers=alice.headers)
        assert response.status_code == 422

    def test_unknown_currency(self, client, alice):
        response = client.post(
            "/api/groups", json={"name": "Coloc", "currency": "XYZ"}, headers=alice.headers
        )
        assert response.status_code == 422

    def test_list_groups(self, client, alice, bob, create_group):
        first = create_group(alice, "Coloc")
        create_group(alice, "Vacances")
        create_group(bob, "Chez Bob")

        groups = client.get("/api/groups", headers=alice.headers).json()["groups"]

        assert {g["name"] for g in groups} == {"Coloc", "Vacances"}
        coloc = next(g for g in groups if g["id"] == first["id"])
        assert coloc["member_count"] == 1
        assert coloc["my_balance"] == 0

    def test_list_shows_my_balance(self, client, alice, bob, shared_group, add_expense):
        add_expense(
            shared_group.id, alice, shared_group.alice_member, 1000,
            [shared_group.alice_member, shared_group.bob_member],
        )

        alice_groups = client.get("/api/groups", headers=alice.headers).json()["groups"]
        bob_groups = client.get("/api/groups", headers=bob.headers).json()["groups"]

        assert alice_groups[0]["my_balance"] == 500
        assert bob_groups[0]["my_balance"] == -500
        assert alice_groups[0]["member_count"] == 2

    def test_get_group(self, client, alice, bob, shared_group):
        group = client.get(f"/api/groups/{shared_group.id}", headers=bob.headers).json()

        assert group["my_member_id"] == shared_group.bob_member
        assert group["is_creator"] is False
        assert [m["name"] for m in group["members"]] == ["Alice", "Bob"]
        assert [m["coefficient_percent"] for m in group["members"]] == [50, 50]

    def test_outsider_is_refused(self, client, carol, shared_group):
        response = client.get(f"/api/groups/{shared_group.id}", headers=carol.headers)

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_A_MEMBER"

    def test_unknown_group(self, client, alice):
        response = client.get(
            "/api/groups/00000000-0000-4000-8000-000000000000", headers=alice.headers
        )

        assert response.status_code == 404
        assert response.json()["code"] == "GROUP_NOT_FOUND"

    def test_update_group(self, client, bob, shared_group):
        response = client.patch(
            f"/api/groups/{shared_group.id}",
            json={"name": "  Appart  ", "description": "Loyer et courses"},
            headers=bob.headers,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Appart"
        assert response.json()["description"] == "Loyer et courses"

    def test_clear_description(self, client, alice, create_group):
        group = create_group(alice, description="Temporaire")
        response = client.patch(
            f"/api/groups/{group['id']}", json={"description": ""}, headers=alice.headers
        )
        assert response.json()["description"] is None

    def test_blank_name_rejected(self, client, alice, create_group):
        group = create_group(alice)
        response = client.patch(
            f"/api/groups/{group['id']}", json={"name": "   "}, headers=alice.headers
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_NAME"

    def test_archive_toggle(self, client, alice, create_group):
        group = create_group(alice)
        url = f"/api/groups/{group['id']}/archive"

        assert client.post(url, headers=alice.headers).json() == {"is_archived": True}
        assert client.get(f"/api/groups/{group['id']}", headers=alice.headers).json()["is_archived"]
        assert client.post(url, headers=alice.headers).json() == {"is_archived": False}

    def test_only_creator_deletes(self, client, alice, bob, shared_group):
        response = client.delete(f"/api/groups/{shared_group.id}", headers=bob.headers)

        assert response.status_code == 403
        assert response.json()["code"] == "NOT_AUTHORIZED"

    def test_delete_group(self, client, alice, shared_group, add_expense):
        add_expense(shared_group.id, alice, shared_group.alice_member, 1000, [shared_group.bob_member])

        assert client.delete(f"/api/groups/{shared_group.id}", headers=alice.headers).status_code == 204
        response = client.get(f"/api/groups/{shared_group.id}", headers=alice.headers)
        assert response.status_code == 404


@pytest.mark.integration
class TestLeaving:
    """Test leaving a group."""

    def test_cannot_leave_alone(self, client, alice, create_group):
        group = create_group(alice)
        response = client.post(f"/api/groups/{group['id']}/leave", headers=alice.headers)

        assert response.status_code == 400
        assert response.json()["code"] == "CANNOT_LEAVE_ALONE"

    def test_leave(self, client, alice, bob, shared_group):
        assert client.post(f"/api/groups/{shared_group.id}/leave", headers=bob.headers).status_code == 204

        assert client.get(f"/api/groups/{shared_group.id}", headers=bob.headers).status_code == 403
        group = client.get(f"/api/groups/{shared_group.id}", headers=alice.headers).json()
        assert [m["name"] for m in group["members"]] == ["Alice"]
        assert group["members"][0]["coefficient"] == 10000


@pytest.mark.integration
class TestMembers:
    """Test the member endpoints and income-based coefficients."""

    def test_list_members(self, client, alice, shared_group):
        members = client.get(f"/api/groups/{shared_group.id}/members", headers=alice.headers).json()["members"]

        assert [m["id"] for m in members] == [shared_group.alice_member, shared_group.bob_member]
        assert members[0]["is_current_user"] is True
        assert members[1]["is_current_user"] is False

    def test_me(self, client, bob, shared_group):
        me = client.get(f"/api/groups/{shared_group.id}/members/me", headers=bob.headers).json()

        assert me["id"] == shared_group.bob_member
        assert me["name"] == "Bob"
        assert me["email"] == "bob@example.com"
        assert me["income"] == 0

    def test_income_sets_coefficients(self, client, alice, bob, shared_group):
        client.patch(
            f"/api/groups/{shared_group.id}/members/me", json={"income": 300000}, headers=alice.headers
        )
        response = client.patch(
            f"/api/groups/{shared_group.id}/members/me", json={"income": 100000}, headers=bob.headers
        )

        assert response.status_code == 200
        assert response.json()["coefficient"] == 2500
        assert response.json()["coefficient_percent"] == 25

        alice_view = client.get(
            f"/api/groups/{shared_group.id}/members/{shared_group.alice_member}", headers=bob.headers
        ).json()
        assert alice_view["coefficient"] == 7500
        assert alice_view["is_current_user"] is False

    def test_rename_other_member(self, client, alice, shared_group):
        response = client.patch(
            f"/api/groups/{shared_group.id}/members/{shared_group.bob_member}",
            json={"name": "Bobby"},
            headers=alice.headers,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Bobby"

    def test_negative_income_rejected(self, client, alice, shared_group):
        response = client.patch(
            f"/api/groups/{shared_group.id}/members/me", json={"income": -1}, headers=alice.headers
        )
        assert response.status_code == 422

    def test_unknown_member(self, client, alice, shared_group):
        response = client.get(
            f"/api/groups/{shared_group.id}/members/00000000-0000-4000-8000-000000000000",
            headers=alice.headers,
        )

        assert response.status_code == 404
        assert response.json()["code"] == "MEMBER_NOT_FOUND"

    def test_remove_member(self, client, alice, bob, shared_group):
        response = client.delete(
            f"/api/groups/{shared_group.id}/members/{shared_group.bob_member}", headers=alice.headers
        )

        assert response.status_code == 204
        members = client.get(f"/api/groups/{shared_group.id}/members", headers=alice.headers).json()["members"]
        assert [m["id"] for m in members] == [shared_group.alice_member]
        assert client.get(f"/api/groups/{shared_group.id}", headers=bob.headers).status_code == 403

    def test_cannot_remove_self(self, client, alice, shared_group):
        response = client.delete(
            f"/api/groups/{shared_group.id}/members/{shared_group.alice_member}", headers=alice.headers
        )

        assert response.status_code == 400
        assert response.json()["code"] == "CANNOT_REMOVE_SELF"

    def test_pending_member_is_listed(self, client, alice, shared_group, invite):
        invite(shared_group.id, alice, "dana@example.com", name="Dana")

        members = client.get(f"/api/groups/{shared_group.id}/members", headers=alice.headers).json()["members"]

        assert len(members) == 3
        dana = members[-1]
        assert dana["name"] == "Dana"
        assert dana["is_pending"] is True
        assert dana["user_id"] is None
        assert [m["coefficient_percent"] for m in members] == [33, 33, 33]
