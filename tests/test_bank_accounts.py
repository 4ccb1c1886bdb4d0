import pytest

from ledger import bank_accounts
from ledger.exceptions import Conflict, NotFound, ValidationError


def bank_payload(number="1234567890", **extra):
    payload = {
        "accountType": "savings",
        "accountHolderName": "Asha Patel",
        "bankName": "State Bank",
        "accountNumber": number,
        "ifscCode": "sbin0000123",
    }
    payload.update(extra)
    return payload


class TestAddAccount:
    def test_first_account_becomes_default(self, make_user):
        user = make_user()

        account = bank_accounts.add_account(user.id, bank_payload())

        assert account["isDefault"] is True
        assert account["ifscCode"] == "SBIN0000123"

    def test_explicit_default_moves_the_flag(self, make_user):
        user = make_user()
        first = bank_accounts.add_account(user.id, bank_payload("1111111111"))
        second = bank_accounts.add_account(user.id, bank_payload("2222222222", isDefault=True))

        listed = {a["id"]: a["isDefault"] for a in bank_accounts.list_accounts(user.id)}

        assert listed == {first["id"]: False, second["id"]: True}

    def test_missing_bank_fields(self, make_user):
        with pytest.raises(ValidationError):
            bank_accounts.add_account(make_user().id, bank_payload(ifscCode=""))

    def test_qr_account_needs_only_a_code_url(self, make_user):
        account = bank_accounts.add_account(
            make_user().id, {"accountType": "qr", "qrCodeUrl": "https://cdn.example.com/qr.png"},
        )
        assert account["accountType"] == "qr"
        assert account["accountNumber"] is None

    def test_qr_account_without_url(self, make_user):
        with pytest.raises(ValidationError):
            bank_accounts.add_account(make_user().id, {"accountType": "qr"})

    def test_unknown_account_type(self, make_user):
        with pytest.raises(ValidationError):
            bank_accounts.add_account(make_user().id, bank_payload(accountType="crypto"))

    def test_duplicate_number(self, make_user):
        user = make_user()
        bank_accounts.add_account(user.id, bank_payload())
        with pytest.raises(Conflict):
            bank_accounts.add_account(user.id, bank_payload())

    def test_account_limit(self, app, make_user):
        user = make_user()
        for i in range(app.config["MAX_BANK_ACCOUNTS"]):
            bank_accounts.add_account(user.id, bank_payload(f"100000000{i}"))
        with pytest.raises(ValidationError):
            bank_accounts.add_account(user.id, bank_payload("9999999999"))


class TestRemoveAndDefault:
    def test_delete_promotes_next_account(self, make_user):
        user = make_user()
        first = bank_accounts.add_account(user.id, bank_payload("1111111111"))
        second = bank_accounts.add_account(user.id, bank_payload("2222222222"))

        bank_accounts.delete_account(user.id, first["id"])

        remaining = bank_accounts.list_accounts(user.id)
        assert [a["id"] for a in remaining] == [second["id"]]
        assert remaining[0]["isDefault"] is True

    def test_deleted_number_can_be_added_again(self, make_user):
        user = make_user()
        account = bank_accounts.add_account(user.id, bank_payload())
        bank_accounts.delete_account(user.id, account["id"])

        assert bank_accounts.add_account(user.id, bank_payload())["isDefault"] is True

    def test_cannot_touch_another_users_account(self, make_user):
        owner, other = make_user(), make_user()
        account = bank_accounts.add_account(owner.id, bank_payload())

        with pytest.raises(NotFound):
            bank_accounts.delete_account(other.id, account["id"])
        with pytest.raises(NotFound):
            bank_accounts.set_default(other.id, account["id"])

    def test_set_default(self, make_user):
        user = make_user()
        first = bank_accounts.add_account(user.id, bank_payload("1111111111"))
        second = bank_accounts.add_account(user.id, bank_payload("2222222222"))

        bank_accounts.set_default(user.id, second["id"])

        listed = {a["id"]: a["isDefault"] for a in bank_accounts.list_accounts(user.id)}
        assert listed == {first["id"]: False, second["id"]: True}
