"""Integration tests for balances, member detail and statistics."""

import pytest


@pytest.fixture
def spending(alice, bob, shared_group, add_expense):
    both = [shared_group.alice_member, shared_group.bob_member]
    add_expense(shared_group.id, alice, shared_group.alice_member, 3000, both, "Loyer", "2024-02-01")
    add_expense(shared_group.id, bob, shared_group.bob_member, 1000, both, "Courses", "2024-03-05")
    return shared_group


@pytest.mark.integration
class TestBalances:
    """Test group balances."""

    def test_balances(self, client, alice, spending):
        body = client.get(f"/api/groups/{spending.id}/balances", headers=alice.headers).json()

        assert body["total_expenses"] == 4000
        assert body["is_valid"] is True

        creditor, debtor = body["balances"]
        assert creditor["member_id"] == spending.alice_member
        assert creditor["member_name"] == "Alice"
        assert creditor["total_paid"] == 3000
        assert creditor["total_owed"] == 2000
        assert creditor["net_balance"] == 1000
        assert creditor["is_current_user"] is True
        assert debtor["net_balance"] == -1000
        assert debtor["is_current_user"] is False

    def test_settlement_moves_balance(self, client, alice, bob, spending, add_settlement):
        add_settlement(spending.id, bob, spending.alice_member, 600)

        balances = client.get(f"/api/groups/{spending.id}/balances", headers=alice.headers).json()["balances"]
        by_member = {b["member_id"]: b for b in balances}

        assert by_member[spending.alice_member]["settlements_received"] == 600
        assert by_member[spending.alice_member]["net_balance"] == 400
        assert by_member[spending.bob_member]["settlements_paid"] == 600
        assert by_member[spending.bob_member]["balance"] == -1000
        assert by_member[spending.bob_member]["net_balance"] == -400

    def test_deleted_expense_is_ignored(self, client, alice, shared_group, add_expense):
        expense = add_expense(
            shared_group.id, alice, shared_group.alice_member, 1000, [shared_group.bob_member]
        )
        client.delete(f"/api/groups/{shared_group.id}/expenses/{expense['id']}", headers=alice.headers)

        body = client.get(f"/api/groups/{shared_group.id}/balances", headers=alice.headers).json()

        assert body["total_expenses"] == 0
        assert all(b["net_balance"] == 0 for b in body["balances"])

    def test_departed_member_leaves_balances(self, client, alice, bob, spending):
        client.post(f"/api/groups/{spending.id}/leave", headers=bob.headers)

        balances = client.get(f"/api/groups/{spending.id}/balances", headers=alice.headers).json()["balances"]

        assert [b["member_id"] for b in balances] == [spending.alice_member]

    def test_my_balance(self, client, bob, spending, add_settlement):
        add_settlement(spending.id, bob, spending.alice_member, 250)

        body = client.get(f"/api/groups/{spending.id}/balances/me", headers=bob.headers).json()

        assert body["balance"]["member_id"] == spending.bob_member
        assert body["balance"]["net_balance"] == -750
        assert {e["description"] for e in body["expenses"]} == {"Loyer", "Courses"}
        courses = next(e for e in body["expenses"] if e["description"] == "Courses")
        assert courses["is_payer"] is True
        assert courses["my_share"] == 500
        assert body["settlements"][0]["direction"] == "sent"
        assert body["settlements"][0]["other_member"]["name"] == "Alice"


@pytest.mark.integration
class TestStats:
    """Test spending statistics."""

    def test_all_time(self, client, alice, spending):
        body = client.get(f"/api/groups/{spending.id}/stats", headers=alice.headers).json()

        assert body["period"] == "all"
        assert body["total_expenses"] == 4000
        assert body["expense_count"] == 2
        assert body["average_expense"] == 2000
        assert body["by_member"][0] == {
            "member_id": spending.alice_member,
            "member_name": "Alice",
            "total_paid": 3000,
            "percentage": 75,
        }
        assert body["by_month"] == [
            {"month": "2024-03", "total": 1000, "count": 1},
            {"month": "2024-02", "total": 3000, "count": 1},
        ]

    def test_recent_period_excludes_old_expenses(self, client, alice, spending):
        body = client.get(
            f"/api/groups/{spending.id}/stats", params={"period": "week"}, headers=alice.headers
        ).json()

        assert body["period"] == "week"
        assert body["expense_count"] == 0
        assert body["average_expense"] == 0

    def test_unknown_period(self, client, alice, spending):
        response = client.get(
            f"/api/groups/{spending.id}/stats", params={"period": "decade"}, headers=alice.headers
        )
        assert response.status_code == 422
