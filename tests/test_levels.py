from decimal import Decimal

import pytest

from ledger import levels
from ledger.exceptions import InsufficientBalance, NotFound, ValidationError
from conftest import reload


@pytest.fixture
def catalog(make_level):
    return [
        make_level(number=1, investment="0", reward="40", limit=6, rates=("8", "3", "1")),
        make_level(number=2, investment="12000", reward="50", limit=8, rates=("10", "4", "1")),
        make_level(number=3, investment="23000", reward="60", limit=12, rates=("12", "5", "2")),
    ]


class TestListLevels:
    def test_new_user_can_buy_the_lowest_level(self, catalog, make_user):
        user = make_user()

        listed = {lvl["levelNumber"]: lvl for lvl in levels.list_levels(user)}

        assert listed[1]["canPurchase"] is True
        assert listed[2]["canPurchase"] is False
        assert not any(lvl["isCurrent"] for lvl in listed.values())

    def test_next_level_needs_enough_balance(self, catalog, make_user):
        poor = make_user(level=catalog[0], main_wallet="11999.99")
        rich = make_user(level=catalog[0], main_wallet="12000")

        assert levels.list_levels(poor)[1]["canPurchase"] is False
        assert levels.list_levels(rich)[1]["canPurchase"] is True
        assert levels.list_levels(rich)[2]["canPurchase"] is False

    def test_invitation_amounts(self, catalog, make_user):
        level2 = levels.list_levels(make_user())[1]
        amounts = {i["tier"]: i["amount"] for i in level2["invitations"]}
        assert amounts == {"A": 1200.0, "B": 480.0, "C": 120.0}

    def test_current_level_flags(self, catalog, make_user):
        user = make_user(level=catalog[1])
        listed = {lvl["levelNumber"]: lvl for lvl in levels.list_levels(user)}
        assert listed[2]["isCurrent"] is True
        assert listed[1]["isUnlocked"] is True
        assert listed[3]["isUnlocked"] is False


class TestPurchaseLevel:
    def test_purchase_debits_main_wallet(self, catalog, make_user):
        user = make_user(level=catalog[0], main_wallet="15000")

        result = levels.purchase_level(user.id, 2)

        assert result["remainingBalance"] == 3000.0
        assert result["totalInvestment"] == 12000.0
        user = reload(user)
        assert user.current_level_number == 2
        assert user.current_level == "Apple2"
        assert user.main_wallet == Decimal("3000.00")

    def test_free_level_skips_the_debit(self, catalog, make_user):
        user = make_user()
        result = levels.purchase_level(user.id, 1)
        assert result["investmentAmount"] == 0.0
        assert reload(user).current_level_number == 1

    def test_insufficient_balance_keeps_level(self, catalog, make_user):
        user = make_user(level=catalog[0], main_wallet="100")
        with pytest.raises(InsufficientBalance):
            levels.purchase_level(user.id, 2)
        assert reload(user).current_level_number == 1

    def test_cannot_buy_same_or_lower_level(self, catalog, make_user):
        user = make_user(level=catalog[1], main_wallet="50000")
        with pytest.raises(ValidationError):
            levels.purchase_level(user.id, 2)
        with pytest.raises(ValidationError):
            levels.purchase_level(user.id, 1)

    def test_unknown_level(self, catalog, make_user):
        with pytest.raises(NotFound):
            levels.purchase_level(make_user().id, 9)
