from decimal import Decimal

import pytest

from extensions import db
from models import User, TeamReferral, Withdrawal
from conftest import MONDAY, reload


@pytest.fixture
def level2(make_level):
    return make_level(number=2)


@pytest.fixture
def admin(make_user):
    return make_user(name="Admin", role="admin")


class TestEnvelope:
    def test_healthz(self, client):
        assert client.get("/healthz").get_json() == {"status": "ok"}

    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/api/does-not-exist")
        body = response.get_json()
        assert response.status_code == 404
        assert body["status"] == "error"
        assert body["statusCode"] == 404

    def test_protected_route_requires_login(self, client):
        response = client.get("/api/wallet")
        assert response.status_code == 401
        assert response.get_json()["message"] == "User not authenticated"


class TestAuth:
    def test_signup_with_referral_pays_commission(self, client, make_user, level2):
        parent = make_user(level=level2)

        response = client.post("/api/signup", json={
            "name": "New Member",
            "phone": "0712345678",
            "password": "secret123",
            "referralCode": parent.referral_code.lower(),
        })

        body = response.get_json()
        assert response.status_code == 201, body
        assert body["data"]["referral"]["tiersCreated"] == 1
        new_user = User.query.filter_by(phone="0712345678").one()
        assert new_user.referred_by == parent.id
        assert TeamReferral.query.filter_by(user_id=parent.id, level="A").count() == 1
        assert reload(parent).commission_wallet == Decimal("1200.00")

        # signup logs the new user in
        assert client.get("/api/user/profile").get_json()["data"]["user"]["phone"] == "0712345678"

    def test_signup_with_unknown_code_still_creates_user(self, client):
        response = client.post("/api/signup", json={
            "name": "Lost", "phone": "0712345679", "password": "secret123", "referralCode": "ZZZZ0000",
        })

        assert response.status_code == 201
        assert response.get_json()["data"]["referral"]["tiersCreated"] == 0
        user = User.query.filter_by(phone="0712345679").one()
        assert user.referred_by is None
        assert TeamReferral.query.count() == 0

    def test_signup_with_own_code_is_rejected(self, client, make_user):
        existing = make_user()
        existing.email = "twin@example.com"
        db.session.commit()

        response = client.post("/api/signup", json={
            "name": "Twin", "phone": "0712345600", "email": "Twin@example.com",
            "password": "secret123", "referralCode": existing.referral_code,
        })

        assert response.status_code == 400
        assert response.get_json()["message"] == "Cannot use your own referral code."
        assert User.query.filter_by(phone="0712345600").first() is None

    def test_signup_validation(self, client, make_user):
        existing = make_user()
        missing = client.post("/api/signup", json={"name": "X", "password": "secret123"})
        duplicate = client.post("/api/signup", json={
            "name": "X", "phone": existing.phone, "password": "secret123",
        })
        assert missing.status_code == 400
        assert duplicate.status_code == 400

    def test_login_and_logout(self, client, make_user, login):
        user = make_user(main_wallet="75")
        login(user)

        wallet = client.get("/api/wallet").get_json()["data"]
        assert wallet["mainWallet"] == 75.0

        assert client.post("/api/logout").status_code == 200
        assert client.get("/api/wallet").status_code == 401

    def test_wrong_password(self, client, make_user):
        user = make_user()
        response = client.post("/api/login", json={"phone": user.phone, "password": "nope"})
        assert response.status_code == 401
        assert response.get_json()["title"] == "Unauthorized"


class TestUserEndpoints:
    def test_task_completion(self, client, make_user, make_task, level2, login):
        user = make_user(level=level2)
        task = make_task(level2, reward="50")
        login(user)

        first = client.post(f"/api/tasks/{task.id}/complete")
        second = client.post(f"/api/tasks/{task.id}/complete")

        assert first.status_code == 200
        assert first.get_json()["data"]["newBalance"] == 50.0
        assert second.status_code == 400
        assert second.get_json()["title"] == "Already Completed"

    def test_task_list(self, client, make_user, make_task, level2, login):
        user = make_user(level=level2)
        make_task(level2)
        login(user)

        data = client.get("/api/tasks").get_json()["data"]
        assert len(data["tasks"]) == 1
        assert data["tasks"][0]["isCompleted"] is False

    def test_team_endpoints(self, client, make_user, level2, login):
        user = make_user(level=level2)
        login(user)

        assert client.get("/api/team/stats").status_code == 200
        assert client.get("/api/team/members/B").get_json()["data"]["count"] == 0
        assert client.get("/api/team/members/X").status_code == 400
        link = client.get("/api/team/referral-link").get_json()["data"]
        assert user.referral_code in link["referralLink"]
        commissions = client.get("/api/team/commissions").get_json()["data"]
        assert commissions["pagination"]["total"] == 0

    def test_level_purchase(self, client, make_user, level2, make_level, login):
        make_level(number=3, investment="23000")
        user = make_user(level=level2, main_wallet="30000")
        login(user)

        response = client.post("/api/levels/purchase", json={"newLevelNumber": 3})

        assert response.status_code == 200
        assert response.get_json()["data"]["remainingBalance"] == 7000.0
        assert client.get("/api/levels").get_json()["data"]["levels"][1]["isCurrent"] is True

    def test_bank_accounts_and_recharge(self, client, make_user, login):
        user = make_user()
        login(user)

        created = client.post("/api/bank-accounts", json={
            "accountHolderName": user.name, "bankName": "State Bank",
            "accountNumber": "1234567890", "ifscCode": "SBIN0000123",
        })
        recharge = client.post("/api/recharges", json={"amount": 500, "transactionId": "UTR0001112223"})

        assert created.status_code == 201
        assert client.get("/api/bank-accounts").get_json()["data"]["accounts"][0]["isDefault"] is True
        assert recharge.status_code == 201
        assert recharge.get_json()["data"]["recharge"]["status"] == "processing"

    def test_insufficient_balance_payload(self, client, make_user, level2, make_bank_account, login, monkeypatch):
        from ledger import withdrawals
        from ledger.withdrawal_gate import GateDecision
        monkeypatch.setattr(withdrawals, "can_withdraw", lambda user, now=None: GateDecision(True, None))
        user = make_user(level=level2, main_wallet="100")
        account = make_bank_account(user)
        login(user)

        response = client.post("/api/withdrawals", json={
            "walletType": "mainWallet", "amount": 500, "bankAccountId": account.id,
        })

        body = response.get_json()
        assert response.status_code == 400
        assert body["title"] == "Insufficient Balance"
        assert body["data"] == {"available": 100.0, "requested": 500.0}


class TestAdminEndpoints:
    def test_non_admin_is_forbidden(self, client, make_user, login):
        login(make_user())
        assert client.get("/admin/withdrawals").status_code == 403

    def test_anonymous_is_unauthorized(self, client):
        assert client.get("/admin/withdrawals").status_code == 401

    def test_wallet_adjustments(self, client, admin, make_user, login):
        user = make_user(main_wallet="100")
        login(admin)

        added = client.post(f"/admin/users/{user.id}/wallet/add", json={"amount": "50", "reason": "promo"})
        overdraw = client.post(f"/admin/users/{user.id}/wallet/deduct", json={"amount": "500"})

        assert added.get_json()["data"]["newBalance"] == 150.0
        assert overdraw.status_code == 400
        assert reload(user).main_wallet == Decimal("150.00")

    def test_withdrawal_review(self, client, admin, make_user, level2, make_bank_account,
                               open_window, login):
        from ledger import withdrawals
        open_window(levels=(2,))
        user = make_user(level=level2, main_wallet="1000")
        account = make_bank_account(user)
        created = withdrawals.create_withdrawal(user.id, "mainWallet", "400", account.id, now=MONDAY)
        login(admin)

        listing = client.get("/admin/withdrawals?status=pending").get_json()["data"]
        rejected = client.put(f"/admin/withdrawals/{created['id']}/reject", json={"reason": "Wrong IFSC"})
        again = client.put(f"/admin/withdrawals/{created['id']}/approve", json={"transactionId": "T1"})

        assert listing["pagination"]["total"] == 1
        assert rejected.status_code == 200
        assert again.status_code == 400
        assert again.get_json()["title"] == "Already Processed"
        assert reload(user).main_wallet == Decimal("1000.00")
        assert Withdrawal.query.one().status == "rejected"

    def test_withdrawal_configs(self, client, admin, login):
        login(admin)

        updated = client.put("/admin/withdrawal-configs/3", json={"allowedLevels": [2], "startTime": "10:00"})
        invalid = client.put("/admin/withdrawal-configs/9", json={})
        configs = client.get("/admin/withdrawal-configs").get_json()["data"]["configs"]

        assert updated.status_code == 200
        assert invalid.status_code == 400
        assert configs[3]["startTime"] == "10:00"
        assert len(configs) == 7

    def test_task_management(self, client, admin, level2, login):
        login(admin)

        created = client.post("/admin/tasks", json={"videoUrl": "/videos/a.mp4", "levelNumber": 2})
        task_id = created.get_json()["data"]["task"]["id"]
        toggled = client.patch(f"/admin/tasks/{task_id}/toggle")

        assert created.status_code == 201
        assert toggled.get_json()["data"]["task"]["isActive"] is False

    def test_task_delete(self, client, admin, make_user, make_task, level2, login):
        unused = make_task(level2)
        settled = make_task(level2)
        worker = make_user(level=level2)
        from ledger import task_settlement
        task_settlement.complete_task(worker.id, settled.id, now=MONDAY)
        login(admin)

        deleted = client.delete(f"/admin/tasks/{unused.id}")
        refused = client.delete(f"/admin/tasks/{settled.id}")
        missing = client.delete(f"/admin/tasks/{unused.id}")

        assert deleted.status_code == 200
        assert refused.status_code == 409
        assert missing.status_code == 404

    def test_recharge_review(self, client, admin, make_user, login):
        from ledger import recharge
        user = make_user()
        order = recharge.submit_recharge(user.id, "500", "UTR5550001112", now=MONDAY)
        login(admin)

        listing = client.get("/admin/recharges?status=processing").get_json()["data"]
        approved = client.put(f"/admin/recharges/{order['id']}/approve", json={"remarks": "Verified"})
        rejected = client.put(f"/admin/recharges/{order['id']}/reject", json={"remarks": "Too late"})

        assert listing["pagination"]["total"] == 1
        assert approved.status_code == 200
        assert approved.get_json()["data"]["order"]["status"] == "completed"
        assert rejected.status_code == 400
        assert rejected.get_json()["title"] == "Already Processed"
        assert reload(user).main_wallet == Decimal("500.00")

    def test_user_management(self, client, admin, make_user, level2, login):
        user = make_user(name="Managed")
        login(admin)

        listing = client.get("/admin/users?search=Managed").get_json()["data"]
        details = client.get(f"/admin/users/{user.id}").get_json()["data"]
        deactivated = client.patch(f"/admin/users/{user.id}/status", json={"isActive": False})
        moved = client.put(f"/admin/users/{user.id}/level", json={"levelNumber": 2})
        bad_level = client.put(f"/admin/users/{user.id}/level", json={"levelNumber": 9})

        assert listing["pagination"]["total"] == 1
        assert listing["statistics"]["totalUsers"] == 2
        assert details["user"]["id"] == user.id
        assert deactivated.get_json()["data"]["user"]["isActive"] is False
        assert moved.get_json()["data"]["user"]["currentLevelNumber"] == 2
        assert bad_level.status_code == 404
        assert client.get("/admin/users/999").status_code == 404

        # a deactivated account can no longer log in
        client.post("/api/logout")
        assert client.post("/api/login", json={"phone": user.phone, "password": "secret123"}).status_code == 403
