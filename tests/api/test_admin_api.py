"""
Tests for user administration, policy, blacklist and audit endpoints.
"""

from conftest import auth_headers, make_user
from maker_checker.models.enums import UserRole


class TestCreatePrivilegedUser:

    def test_superadmin_creates_checker(self, client, mailer, superadmin):
        response = client.post("/admin/users", json={
            "email": "chen@example.com",
            "first_name": "Chen",
            "last_name": "Li",
            "role": "checker",
        }, headers=auth_headers(superadmin))

        assert response.status_code == 201
        assert response.json()["user"]["role"] == "checker"
        assert mailer.outbox[-1].to == "chen@example.com"

    def test_admin_is_forbidden(self, client, admin):
        response = client.post("/admin/users", json={
            "email": "chen@example.com",
            "first_name": "Chen",
            "last_name": "Li",
            "role": "checker",
        }, headers=auth_headers(admin))
        assert response.status_code == 403

    def test_mail_failure_creates_nobody(self, client, mailer, superadmin):
        mailer.fail = True
        body = {
            "email": "chen@example.com",
            "first_name": "Chen",
            "last_name": "Li",
            "role": "admin",
        }

        assert client.post("/admin/users", json=body, headers=auth_headers(superadmin)).status_code == 503

        mailer.fail = False
        assert client.post("/admin/users", json=body, headers=auth_headers(superadmin)).status_code == 201


class TestListUsers:

    def test_paged_search(self, client, db_session, superadmin, maker, checker):
        make_user(db_session, UserRole.MAKER, email="okafor@example.com", first_name="Nia")
        headers = auth_headers(superadmin)

        everyone = client.get("/admin/users", params={"limit": 2}, headers=headers).json()
        assert everyone["total"] == 4
        assert everyone["page"] == 1
        assert everyone["has_more"] is True
        assert [u["email"] for u in everyone["data"]] == ["okafor@example.com", checker.email]

        last = client.get("/admin/users", params={"limit": 2, "page": 2}, headers=headers).json()
        assert last["has_more"] is False
        assert len(last["data"]) == 2

        makers = client.get("/admin/users", params={"role": "maker"}, headers=headers).json()
        assert makers["total"] == 2

        found = client.get("/admin/users", params={"search": "nia"}, headers=headers).json()
        assert [u["email"] for u in found["data"]] == ["okafor@example.com"]

    def test_admin_is_forbidden(self, client, admin):
        assert client.get("/admin/users", headers=auth_headers(admin)).status_code == 403

    def test_page_must_be_positive(self, client, superadmin):
        response = client.get("/admin/users", params={"page": 0}, headers=auth_headers(superadmin))
        assert response.status_code == 422


class TestPolicyRules:

    def test_create_toggle_and_list(self, client, admin, checker):
        created = client.post("/policy/rules", json={
            "name": "Large transfers",
            "rule_type": "amount_threshold",
            "threshold_value": "10000",
        }, headers=auth_headers(admin))
        assert created.status_code == 201
        rule_id = created.json()["rule"]["id"]

        toggled = client.post(
            f"/policy/rules/{rule_id}/toggle", json={"is_active": False}, headers=auth_headers(admin)
        )
        assert toggled.json()["rule"]["is_active"] is False

        rules = client.get("/policy/rules", headers=auth_headers(checker)).json()
        assert [r["id"] for r in rules] == [rule_id]

    def test_update(self, client, admin):
        rule_id = client.post("/policy/rules", json={
            "name": "Night", "rule_type": "time_based",
        }, headers=auth_headers(admin)).json()["rule"]["id"]

        response = client.patch(
            f"/policy/rules/{rule_id}", json={"description": "Off-hours activity"},
            headers=auth_headers(admin),
        )
        assert response.json()["rule"]["description"] == "Off-hours activity"

    def test_null_name_is_400(self, client, admin):
        rule_id = client.post("/policy/rules", json={
            "name": "Night", "rule_type": "time_based",
        }, headers=auth_headers(admin)).json()["rule"]["id"]

        response = client.patch(
            f"/policy/rules/{rule_id}", json={"name": None}, headers=auth_headers(admin),
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Rule name cannot be empty"

        rules = client.get("/policy/rules", headers=auth_headers(admin)).json()
        assert rules[0]["name"] == "Night"

    def test_missing_threshold_is_400(self, client, admin):
        response = client.post("/policy/rules", json={
            "name": "Broken", "rule_type": "amount_threshold",
        }, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_checker_cannot_create(self, client, checker):
        response = client.post("/policy/rules", json={
            "name": "Night", "rule_type": "time_based",
        }, headers=auth_headers(checker))
        assert response.status_code == 403


class TestBlacklist:

    def test_add_deactivate_remove(self, client, admin):
        headers = auth_headers(admin)
        created = client.post("/blacklist", json={
            "account_number": "ACC-BAD-1", "reason": "Fraud",
        }, headers=headers)
        assert created.status_code == 201
        entry_id = created.json()["entry"]["id"]

        duplicate = client.post("/blacklist", json={"account_number": "ACC-BAD-1"}, headers=headers)
        assert duplicate.status_code == 409

        patched = client.patch(f"/blacklist/{entry_id}", json={"is_active": False}, headers=headers)
        assert patched.json()["entry"]["is_active"] is False

        assert client.delete(f"/blacklist/{entry_id}", headers=headers).status_code == 200
        assert client.get("/blacklist", headers=headers).json() == []

    def test_remove_unknown_is_404(self, client, admin):
        assert client.delete("/blacklist/42", headers=auth_headers(admin)).status_code == 404


class TestAuditTrail:

    def test_mutations_show_up_newest_first(self, client, admin):
        headers = auth_headers(admin)
        client.post("/blacklist", json={"account_number": "ACC-BAD-1"}, headers=headers)
        client.post("/policy/rules", json={"name": "Night", "rule_type": "time_based"}, headers=headers)

        entries = client.get("/audit", headers=headers).json()
        assert [e["action"] for e in entries] == ["POLICY_CREATED", "BLACKLIST_ADDED"]
        assert all(e["user_id"] == admin.id for e in entries)

        filtered = client.get("/audit", params={"entity_type": "blacklist"}, headers=headers).json()
        assert len(filtered) == 1

    def test_audit_is_admin_only(self, client, checker):
        assert client.get("/audit", headers=auth_headers(checker)).status_code == 403

    def test_entries_record_client_address(self, client, superadmin):
        headers = auth_headers(superadmin)
        client.post("/blacklist", json={"account_number": "ACC-BAD-1"}, headers=headers)
        client.post("/policy/rules", json={"name": "Night", "rule_type": "time_based"}, headers=headers)
        client.post("/admin/users", json={
            "email": "chen@example.com", "first_name": "Chen", "last_name": "Li", "role": "checker",
        }, headers=headers)

        entries = client.get("/audit", headers=headers).json()
        assert [e["action"] for e in entries] == ["USER_CREATED", "POLICY_CREATED", "BLACKLIST_ADDED"]
        assert {e["ip_address"] for e in entries} == {"testclient"}
