# cli.py
# Usage: flask seed-levels | flask make-admin PHONE | flask auto-approve-recharges

from decimal import Decimal

import click
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import Level, User
from ledger.recharge import auto_approve_recharges
from ledger.referral_tree import ReferralTreeHelper

DEFAULT_LEVELS = [
    {
        "level_number": 1, "level_name": "Apple1", "investment_amount": "0",
        "reward_per_task": "40", "daily_task_limit": 6, "rates": ("8", "3", "1"),
    },
    {
        "level_number": 2, "level_name": "Apple2", "investment_amount": "12000",
        "reward_per_task": "50", "daily_task_limit": 8, "rates": ("10", "4", "1"),
    },
    {
        "level_number": 3, "level_name": "Apple3", "investment_amount": "23000",
        "reward_per_task": "60", "daily_task_limit": 12, "rates": ("12", "5", "2"),
    },
    {
        "level_number": 4, "level_name": "Apple4", "investment_amount": "42000",
        "reward_per_task": "80", "daily_task_limit": 16, "rates": ("15", "6", "3"),
    },
]


def seed_levels():
    """Insert the default level catalog; existing level numbers are left alone."""
    created = 0
    for order, entry in enumerate(DEFAULT_LEVELS):
        if Level.query.filter_by(level_number=entry["level_number"]).first():
            continue
        a_rate, b_rate, c_rate = entry["rates"]
        db.session.add(Level(
            level_number=entry["level_number"],
            level_name=entry["level_name"],
            investment_amount=Decimal(entry["investment_amount"]),
            reward_per_task=Decimal(entry["reward_per_task"]),
            daily_task_limit=entry["daily_task_limit"],
            a_level_commission_rate=Decimal(a_rate),
            b_level_commission_rate=Decimal(b_rate),
            c_level_commission_rate=Decimal(c_rate),
            is_active=True,
            order=order,
        ))
        created += 1
    db.session.commit()
    return created


def make_admin(phone, password=None, name=None):
    """Promote the user with `phone` to admin, creating the account when missing."""
    user = User.query.filter_by(phone=phone).first()
    created = False
    if user is None:
        if not password:
            raise click.UsageError(f"No user with phone {phone}; pass --password to create one.")
        user = User(
            name=name or "Administrator",
            phone=phone,
            referral_code=ReferralTreeHelper.generate_referral_code(),
        )
        user.set_password(password)
        db.session.add(user)
        created = True

    user.role = "admin"
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"Could not create or promote user {phone}.")
    return user, created


def register_commands(app):
    @app.cli.command("seed-levels")
    def seed_levels_command():
        """Seed the default level catalog."""
        created = seed_levels()
        click.echo(f"Seeded {created} level(s).")

    @app.cli.command("make-admin")
    @click.argument("phone")
    @click.option("--password", default=None, help="Password when the user has to be created.")
    @click.option("--name", default=None, help="Display name when the user has to be created.")
    def make_admin_command(phone, password, name):
        """Promote (or create) an admin user."""
        user, created = make_admin(phone, password, name)
        action = "Created" if created else "Promoted"
        click.echo(f"{action} user id={user.id}, phone={user.phone} as admin.")

    @app.cli.command("auto-approve-recharges")
    def auto_approve_recharges_command():
        """Approve processing recharges older than the approval delay."""
        approved = auto_approve_recharges()
        click.echo(f"Approved {approved} recharge(s).")
