"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path

os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("FLASK_ENV", "testing")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="taskearn-logs-"))

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from flask import g

from app import create_app
from config import TestConfig
from extensions import db
from models import User, Level, Task, BankAccount, WithdrawalConfig
from ledger.referral_tree import ReferralTreeHelper

# Monday 2025-01-06; Sunday-based day index 1
MONDAY = datetime(2025, 1, 6, 10, 0)
SUNDAY = datetime(2025, 1, 5, 10, 0)


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    # the fixture's app context outlives each request, so drop the cached login
    @app.teardown_request
    def _forget_login(exc):
        g.pop("_login_user", None)

    return app.test_client()


@pytest.fixture
def make_level(app):
    def _make(number=2, name=None, investment="12000", reward="50", limit=8,
              rates=("10", "4", "1"), is_active=True):
        level = Level(
            level_number=number,
            level_name=name or f"Apple{number}",
            investment_amount=Decimal(investment),
            reward_per_task=Decimal(reward),
            daily_task_limit=limit,
            a_level_commission_rate=Decimal(rates[0]),
            b_level_commission_rate=Decimal(rates[1]),
            c_level_commission_rate=Decimal(rates[2]),
            is_active=is_active,
            order=number,
        )
        db.session.add(level)
        db.session.commit()
        return level
    return _make


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make(name=None, phone=None, password="secret123", level=None, referred_by=None,
              main_wallet="0", commission_wallet="0", role="user", team_level=None):
        counter["n"] += 1
        user = User(
            name=name or f"User {counter['n']}",
            phone=phone or f"0700{counter['n']:06d}",
            referral_code=ReferralTreeHelper.generate_referral_code(),
            referred_by=referred_by.id if referred_by else None,
            main_wallet=Decimal(main_wallet),
            commission_wallet=Decimal(commission_wallet),
            role=role,
            team_level=team_level,
        )
        if level is not None:
            user.current_level = level.level_name
            user.current_level_number = level.level_number
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_task(app):
    def _make(level, reward="50", is_active=True, order=0):
        task = Task(
            title=f"Video for {level.level_name}",
            video_url=f"/videos/{level.level_number}-{Task.query.count() + 1}.mp4",
            level=level.level_name,
            level_number=level.level_number,
            reward_price=Decimal(reward),
            is_active=is_active,
            order=order,
        )
        db.session.add(task)
        db.session.commit()
        return task
    return _make


@pytest.fixture
def make_bank_account(app):
    def _make(user, number="1234567890", is_default=True):
        account = BankAccount(
            user_id=user.id,
            account_type="savings",
            account_holder_name=user.name,
            bank_name="State Bank",
            account_number=number,
            ifsc_code="SBIN0000123",
            is_default=is_default,
        )
        db.session.add(account)
        db.session.commit()
        return account
    return _make


@pytest.fixture
def open_window(app):
    """Withdrawal window on Mondays 08:30-17:00 for the given level numbers."""
    def _open(levels=(2,), day=1, start="08:30", end="17:00", is_active=True):
        config = WithdrawalConfig(
            day_of_week=day,
            day_name="Monday",
            allowed_levels=list(levels),
            is_active=is_active,
            start_time=start,
            end_time=end,
        )
        db.session.add(config)
        db.session.commit()
        return config
    return _open


@pytest.fixture
def login(client):
    def _login(user, password="secret123"):
        response = client.post("/api/login", json={"phone": user.phone, "password": password})
        assert response.status_code == 200, response.get_json()
        return response
    return _login


def reload(obj):
    db.session.refresh(obj)
    return obj
