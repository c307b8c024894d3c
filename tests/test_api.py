"""
REST surface: every constituent mutation leaves the Finances aggregate consistent.
"""

from decimal import Decimal

import pytest
from sqlalchemy import text


def D(value) -> Decimal:
    return Decimal(str(value))


def _fin(client, uid):
    resp = client.get(f"/users/{uid}/finances")
    assert resp.status_code == 200
    return resp.json()


class TestUsers:

    def test_create_user_is_idempotent(self, client):
        first = client.post("/users", json={"username": "bob"})
        again = client.post("/users", json={"username": "bob"})
        assert first.status_code == 201
        assert again.status_code == 200
        assert first.json()["id"] == again.json()["id"]

    def test_new_user_has_empty_finances(self, client, user_id):
        fin = _fin(client, user_id)
        assert D(fin["income"]) == 0 and D(fin["net_worth"]) == 0
        assert fin["expense_categories"] == []

    def test_unknown_user(self, client):
        assert client.get("/users/999/tasks").status_code == 404


class TestTasksAndHabits:

    def test_task_crud_and_toggle(self, client, user_id):
        base = f"/users/{user_id}/tasks"
        created = client.post(base, json={"title": "File taxes", "due_date": "2026-10-20", "priority": "high"})
        assert created.status_code == 201
        tid = created.json()["id"]

        toggled = client.post(f"{base}/{tid}/toggle").json()
        assert toggled["completed"] is True

        updated = client.put(f"{base}/{tid}", json={"title": "File taxes", "due_date": "2026-10-21"}).json()
        assert updated["due_date"] == "2026-10-21" and updated["priority"] == "medium"

        assert client.delete(f"{base}/{tid}").json() == {"ok": True}
        assert client.get(base).json() == []

    def test_tasks_sorted_by_due_date(self, client, user_id):
        base = f"/users/{user_id}/tasks"
        client.post(base, json={"title": "later", "due_date": "2026-11-01"})
        client.post(base, json={"title": "sooner", "due_date": "2026-10-01"})
        assert [t["title"] for t in client.get(base).json()] == ["sooner", "later"]

    def test_invalid_task_rejected(self, client, user_id):
        resp = client.post(f"/users/{user_id}/tasks", json={"title": "x", "due_date": "soon", "priority": "urgent"})
        assert resp.status_code == 422

    def test_other_users_rows_are_not_found(self, client, user_id):
        other = client.post("/users", json={"username": "mallory"}).json()["id"]
        tid = client.post(f"/users/{user_id}/tasks", json={"title": "mine", "due_date": "2026-10-01"}).json()["id"]
        assert client.delete(f"/users/{other}/tasks/{tid}").status_code == 404

    def test_habit_day_toggle(self, client, user_id):
        base = f"/users/{user_id}/habits"
        hid = client.post(base, json={"title": "Run", "frequency": "weekly", "completed_days": [4, 2, 2]}).json()["id"]
        habit = client.post(f"{base}/{hid}/days/6/toggle").json()
        assert habit["completed_days"] == [2, 4, 6]
        habit = client.post(f"{base}/{hid}/days/2/toggle").json()
        assert habit["completed_days"] == [4, 6]

    def test_habit_day_out_of_range(self, client, user_id):
        base = f"/users/{user_id}/habits"
        hid = client.post(base, json={"title": "Read"}).json()["id"]
        assert client.post(f"{base}/{hid}/days/8/toggle").status_code == 422
        assert client.post(base, json={"title": "Bad", "completed_days": [0]}).status_code == 422


class TestGoals:

    def test_progress_follows_milestones(self, client, user_id):
        base = f"/users/{user_id}/goals"
        goal = client.post(base, json={
            "title": "Half marathon",
            "target_date": "2027-04-01",
            "milestones": [
                {"text": "5k", "completed": True},
                {"text": "10k", "completed": True},
                {"text": "15k"},
                "21k",
            ],
        }).json()
        assert goal["progress"] == 50
        assert [m["id"] for m in goal["milestones"]] == [1, 2, 3, 4]

        goal = client.post(f"{base}/{goal['id']}/milestones/3/toggle").json()
        assert goal["progress"] == 75
        goal = client.post(f"{base}/{goal['id']}/milestones/3/toggle", json={"completed": False}).json()
        assert goal["progress"] == 50

    def test_progress_is_not_user_settable(self, client, user_id):
        goal = client.post(f"/users/{user_id}/goals", json={
            "title": "Read more", "target_date": "2026-12-31", "progress": 90,
        }).json()
        assert goal["progress"] == 0

    def test_replacing_milestones_recomputes(self, client, user_id):
        base = f"/users/{user_id}/goals"
        gid = client.post(base, json={"title": "Empty", "target_date": "2026-12-31"}).json()["id"]
        goal = client.put(f"{base}/{gid}", json={
            "title": "Empty", "target_date": "2026-12-31", "milestones": ["a", {"text": "b", "completed": True}],
        }).json()
        assert goal["progress"] == 50

    def test_toggle_on_empty_goal_is_404(self, client, user_id):
        base = f"/users/{user_id}/goals"
        gid = client.post(base, json={"title": "Empty", "target_date": "2026-12-31"}).json()["id"]
        assert client.post(f"{base}/{gid}/milestones/1/toggle").status_code == 404

    def test_links_tolerate_dangling_ids(self, client, user_id):
        tid = client.post(f"/users/{user_id}/tasks", json={"title": "Buy shoes", "due_date": "2026-10-01"}).json()["id"]
        fgid = client.post(f"/users/{user_id}/finances/goals", json={"name": "Race fund", "target_amount": "300"}).json()["id"]
        gid = client.post(f"/users/{user_id}/goals", json={
            "title": "Marathon", "target_date": "2027-04-01",
            "task_ids": [tid, 999], "habit_ids": [123], "financial_goal_id": fgid,
        }).json()["id"]
        links = client.get(f"/users/{user_id}/goals/{gid}/links").json()
        assert [t["id"] for t in links["tasks"]] == [tid]
        assert links["habits"] == []
        assert links["financial_goal"]["name"] == "Race fund"

        client.delete(f"/users/{user_id}/finances/goals/{fgid}")
        assert client.get(f"/users/{user_id}/goals/{gid}/links").json()["financial_goal"] is None


class TestFinances:

    def test_income_and_categories(self, client, user_id):
        base = f"/users/{user_id}/finances"
        assert client.put(base, json={"income": "3000"}).status_code == 200
        rent = client.post(f"{base}/categories", json={"name": "Rent", "amount": "1200"}).json()

        fin = _fin(client, user_id)
        assert D(fin["expenses"]) == D("1200")
        assert D(fin["savings"]) == D("1800")

        client.put(f"{base}/categories/{rent['id']}", json={"name": "Rent", "amount": "1250.55"})
        client.post(f"{base}/categories", json={"name": "Food", "amount": "0.45"})
        fin = _fin(client, user_id)
        assert D(fin["expenses"]) == D("1251.00")
        assert D(fin["savings"]) == D("1749.00")

        client.delete(f"{base}/categories/{rent['id']}")
        fin = _fin(client, user_id)
        assert D(fin["expenses"]) == D("0.45")
        assert [c["name"] for c in fin["expense_categories"]] == ["Food"]

    def test_non_numeric_amount_leaves_totals(self, client, user_id):
        base = f"/users/{user_id}/finances"
        client.post(f"{base}/categories", json={"name": "Rent", "amount": "900"})
        assert client.post(f"{base}/categories", json={"name": "Bad", "amount": "lots"}).status_code == 422
        assert D(_fin(client, user_id)["expenses"]) == D("900")

    @pytest.mark.parametrize("amount", ["1000000000000000000000000000", "1e30", "0.001"])
    def test_oversize_amount_rejected(self, client, user_id, amount):
        base = f"/users/{user_id}/finances"
        client.post(f"{base}/categories", json={"name": "Rent", "amount": "900"})
        assert client.post(f"{base}/categories", json={"name": "Huge", "amount": amount}).status_code == 422
        assert client.put(base, json={"income": amount}).status_code == 422
        assert client.post(f"{base}/accounts", json={"name": "Huge", "balance": amount}).status_code == 422
        fin = _fin(client, user_id)
        assert D(fin["expenses"]) == D("900")
        assert D(fin["income"]) == 0

    def test_largest_amounts_sum_exactly(self, client, user_id):
        base = f"/users/{user_id}/finances"
        client.post(f"{base}/categories", json={"name": "A", "amount": "9999999999999.99"})
        client.post(f"{base}/categories", json={"name": "B", "amount": "0.01"})
        assert D(_fin(client, user_id)["expenses"]) == D("10000000000000.00")

    def test_exponent_amount_stored_in_plain_notation(self, client, user_id, db):
        base = f"/users/{user_id}/finances"
        cat = client.post(f"{base}/categories", json={"name": "Gym", "amount": "1E+2"}).json()
        assert D(cat["amount"]) == D("100")
        raw = db.execute(text("SELECT amount FROM expense_categories WHERE id = :id"), {"id": cat["id"]}).scalar()
        assert raw == "100"

    def test_missing_category_is_404_and_nothing_changes(self, client, user_id):
        base = f"/users/{user_id}/finances"
        client.post(f"{base}/categories", json={"name": "Rent", "amount": "900"})
        assert client.put(f"{base}/categories/555", json={"name": "X", "amount": "1"}).status_code == 404
        assert D(_fin(client, user_id)["expenses"]) == D("900")

    def test_net_worth_from_accounts_and_investments(self, client, user_id):
        base = f"/users/{user_id}/finances"
        checking = client.post(f"{base}/accounts", json={"name": "Checking", "balance": "2000"}).json()
        client.post(f"{base}/accounts", json={"name": "Visa", "type": "credit_card", "balance": "-450.25"})
        client.post(f"{base}/accounts", json={"name": "Joint", "balance": "10000", "include_in_net_worth": False})
        inv = client.post(f"{base}/investments", json={"name": "VTI", "type": "etfs", "value": "1500", "purchase_price": "1200"}).json()
        assert D(_fin(client, user_id)["net_worth"]) == D("3049.75")

        client.put(f"{base}/investments/{inv['id']}", json={"name": "VTI", "type": "etfs", "value": "1600"})
        client.delete(f"{base}/accounts/{checking['id']}")
        assert D(_fin(client, user_id)["net_worth"]) == D("1149.75")

    def test_financial_goals_archival(self, client, user_id):
        base = f"/users/{user_id}/finances/goals"
        client.post(base, json={"name": "Rainy day", "type": "emergency_fund", "target_amount": "5000"})
        client.post(base, json={"name": "Old car", "type": "car", "target_amount": "8000", "archived": True})
        assert [g["name"] for g in client.get(base).json()] == ["Rainy day"]
        assert len(client.get(base, params={"include_archived": True}).json()) == 2
        assert client.post(base, json={"name": "Boat", "type": "yacht"}).status_code == 422

    def test_bill_pay_and_snooze(self, client, user_id):
        base = f"/users/{user_id}/finances/bills"
        bill = client.post(base, json={"name": "Phone", "amount": "45", "frequency": "monthly", "next_due_date": "2026-01-31"}).json()

        paid = client.post(f"{base}/{bill['id']}/pay", json={"paid_on": "2026-01-29"}).json()
        assert paid["next_due_date"] == "2026-02-28"
        assert paid["last_paid_date"] == "2026-01-29"

        snoozed = client.post(f"{base}/{bill['id']}/snooze").json()
        assert snoozed["next_due_date"] == "2026-03-07"
        assert snoozed["last_paid_date"] == "2026-01-29"

    def test_recompute_endpoint(self, client, user_id):
        base = f"/users/{user_id}/finances"
        client.put(base, json={"income": "100"})
        client.post(f"{base}/categories", json={"name": "Gym", "amount": "30"})
        fin = client.post(f"{base}/recompute").json()
        assert D(fin["savings"]) == D("70")


class TestCalendarAndSummary:

    @pytest.fixture
    def seeded(self, client, user_id):
        u = f"/users/{user_id}"
        client.post(f"{u}/tasks", json={"title": "Dentist", "due_date": "2026-10-01", "priority": "high"})
        client.post(f"{u}/goals", json={"title": "Ship v1", "target_date": "2026-10-01"})
        client.post(f"{u}/habits", json={"title": "Swim", "frequency": "weekly", "completed_days": [2, 4]})
        client.post(f"{u}/finances/categories", json={"name": "Credit Card", "amount": "200"})
        client.post(f"{u}/finances/bills", json={"name": "Water", "amount": "30", "next_due_date": "2026-10-20", "reminder_days": 2})
        return u

    def test_calendar_month(self, client, seeded):
        resp = client.get(f"{seeded}/calendar", params={"year": 2026, "month": 10, "today": "2026-10-19"})
        assert resp.status_code == 200
        body = resp.json()
        days = body["days"]
        assert len(days) == 42
        first = next(d for d in days if d["date"] == "2026-10-01")
        assert [e["type"] for e in first["events"]] == ["task", "goal", "finance"]
        assert first["events"][2]["title"] == "Credit Card Payment Due"
        assert [d["date"] for d in days if d["is_today"]] == ["2026-10-19"]

        monday = next(d for d in days if d["date"] == "2026-10-05")
        assert [e["title"] for e in monday["events"]] == ["Swim"]
        tuesday = next(d for d in days if d["date"] == "2026-10-06")
        assert tuesday["events"] == []

    def test_calendar_type_filter(self, client, seeded):
        resp = client.get(f"{seeded}/calendar", params={"year": 2026, "month": 10, "type": ["finance"]})
        types = {e["type"] for d in resp.json()["days"] for e in d["events"]}
        assert types == {"finance"}

    def test_calendar_bad_params(self, client, seeded):
        assert client.get(f"{seeded}/calendar", params={"month": 13}).status_code == 422
        assert client.get(f"{seeded}/calendar", params={"type": ["meeting"]}).status_code == 422

    @pytest.mark.parametrize("year,month", [(0, 6), (10000, 1), (9999, 12), (1, 1)])
    def test_calendar_year_out_of_range(self, client, seeded, year, month):
        resp = client.get(f"{seeded}/calendar", params={"year": year, "month": month})
        assert resp.status_code == 422

    def test_calendar_last_supported_month(self, client, seeded):
        resp = client.get(f"{seeded}/calendar", params={"year": 9999, "month": 11})
        assert resp.status_code == 200
        assert len(resp.json()["days"]) == 42

    def test_summary(self, client, seeded):
        client.put(f"{seeded}/finances", json={"income": "1000"})
        body = client.get(f"{seeded}/summary", params={"today": "2026-10-19"}).json()
        assert body["tasks"]["total"] == 1 and body["tasks"]["overdue"] == 1
        assert body["goals"]["average_progress"] == 0
        assert body["habits"]["items"][0]["completed_days"] == [2, 4]
        assert D(body["finances"]["savings"]) == D("800")
        assert [b["name"] for b in body["finances"]["bills_due"]] == ["Water"]
