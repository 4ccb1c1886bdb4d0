# models.py - Flask-SQLAlchemy models for users, referral tree, tasks and wallets
from datetime import datetime
from decimal import Decimal
import enum
from sqlalchemy import UniqueConstraint, Index, text
from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash
from extensions import db


def _money(value):
    return float(value if value is not None else Decimal("0.00"))


def _iso(value):
    return value.isoformat() if value else None


# ===========================================================
# ENUM DEFINITIONS
# ===========================================================

class TeamTier(enum.Enum):
    A = "A"
    B = "B"
    C = "C"


class CommissionType(enum.Enum):
    SIGNUP_BONUS = "signup_bonus"
    INVESTMENT_COMMISSION = "investment_commission"
    LEVEL_BONUS = "level_bonus"


class CommissionStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class WithdrawalStatus(enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class RechargeStatus(enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class AccountType(enum.Enum):
    SAVINGS = "savings"
    CURRENT = "current"
    QR = "qr"


# ===========================================================
# BASE MIXIN FOR COMMON FIELDS
# ===========================================================

class BaseMixin:
    """Provides created_at and updated_at timestamps to inheriting models."""
    created_at = db.Column(db.DateTime, default=datetime.now)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now)


# ===========================================================
# USER
# ===========================================================

class User(db.Model, UserMixin, BaseMixin):
    """Account holder: wallets, level, task counters and referral pointers."""
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), unique=True, nullable=False)
    email = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    withdrawal_password_hash = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="user", index=True)
    is_active = db.Column(db.Boolean, default=True)

    # Wallets
    main_wallet = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))
    commission_wallet = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))
    main_wallet_usdt = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))
    commission_wallet_usdt = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))
    investment_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"), server_default=text("0.00"))

    # Level; -1 means no level purchased
    current_level_number = db.Column(db.Integer, nullable=False, default=-1, server_default=text("-1"))
    current_level = db.Column(db.String(50), nullable=True)
    level_upgraded_at = db.Column(db.DateTime, nullable=True)
    team_level = db.Column(db.String(1), nullable=True)

    # Task and income counters
    total_tasks_completed = db.Column(db.Integer, nullable=False, default=0)
    today_tasks_completed = db.Column(db.Integer, nullable=False, default=0)
    today_income = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    monthly_income = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    total_revenue = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    total_profit = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    total_withdrawals = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    last_income_reset_date = db.Column(db.DateTime, nullable=True)
    last_monthly_reset_date = db.Column(db.DateTime, nullable=True)
    last_task_completed_at = db.Column(db.DateTime, nullable=True)

    # Referral pointers
    referral_code = db.Column(db.String(20), unique=True, nullable=False)
    referred_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    direct_referrals_count = db.Column(db.Integer, nullable=False, default=0)
    total_referrals = db.Column(db.Integer, nullable=False, default=0)

    referrer = db.relationship("User", remote_side=[id], backref="direct_referrals")
    bank_accounts = db.relationship("BankAccount", back_populates="user", lazy="dynamic")
    withdrawals = db.relationship("Withdrawal", back_populates="user", lazy="dynamic")

    __table_args__ = (
        Index("idx_user_referred_by", "referred_by"),
    )

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def set_withdrawal_password(self, password: str):
        self.withdrawal_password_hash = generate_password_hash(password)

    def check_withdrawal_password(self, password: str) -> bool:
        if not self.withdrawal_password_hash:
            return False
        return check_password_hash(self.withdrawal_password_hash, password or "")

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "role": self.role,
            "isActive": self.is_active,
            "mainWallet": _money(self.main_wallet),
            "commissionWallet": _money(self.commission_wallet),
            "mainWalletUsdt": _money(self.main_wallet_usdt),
            "commissionWalletUsdt": _money(self.commission_wallet_usdt),
            "investmentAmount": _money(self.investment_amount),
            "currentLevel": self.current_level,
            "currentLevelNumber": self.current_level_number,
            "teamLevel": self.team_level,
            "totalTasksCompleted": self.total_tasks_completed,
            "todayTasksCompleted": self.today_tasks_completed,
            "todayIncome": _money(self.today_income),
            "monthlyIncome": _money(self.monthly_income),
            "totalRevenue": _money(self.total_revenue),
            "totalProfit": _money(self.total_profit),
            "totalWithdrawals": _money(self.total_withdrawals),
            "referralCode": self.referral_code,
            "referredBy": self.referred_by,
            "directReferralsCount": self.direct_referrals_count,
            "totalReferrals": self.total_referrals,
            "hasWithdrawalPassword": self.withdrawal_password_hash is not None,
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id} {self.phone}>"


# ===========================================================
# LEVEL CATALOG
# ===========================================================

class Level(db.Model, BaseMixin):
    __tablename__ = "levels"

    id = db.Column(db.Integer, primary_key=True)
    level_number = db.Column(db.Integer, unique=True, nullable=False)
    level_name = db.Column(db.String(50), unique=True, nullable=False)
    investment_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    reward_per_task = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    daily_task_limit = db.Column(db.Integer, nullable=False, default=0)
    a_level_commission_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    b_level_commission_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    c_level_commission_rate = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    is_active = db.Column(db.Boolean, default=True)
    order = db.Column(db.Integer, default=0)
    description = db.Column(db.String(255), nullable=True)

    def rate_for(self, tier):
        """Commission percentage paid to a tier A/B/C receiver."""
        return {
            TeamTier.A.value: self.a_level_commission_rate,
            TeamTier.B.value: self.b_level_commission_rate,
            TeamTier.C.value: self.c_level_commission_rate,
        }[tier]

    def to_dict(self):
        return {
            "id": self.id,
            "levelNumber": self.level_number,
            "levelName": self.level_name,
            "investmentAmount": _money(self.investment_amount),
            "rewardPerTask": _money(self.reward_per_task),
            "dailyTaskLimit": self.daily_task_limit,
            "aLevelCommissionRate": _money(self.a_level_commission_rate),
            "bLevelCommissionRate": _money(self.b_level_commission_rate),
            "cLevelCommissionRate": _money(self.c_level_commission_rate),
            "isActive": self.is_active,
            "order": self.order,
            "description": self.description,
        }


# ===========================================================
# TEAM / REFERRAL TREE
# ===========================================================

class TeamReferral(db.Model, BaseMixin):
    """Directed edge: receiver `user_id` gets tier `level` commissions from `referred_user_id`."""
    __tablename__ = "team_referrals"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    referred_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    level = db.Column(db.String(1), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    total_earnings = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))

    receiver = db.relationship("User", foreign_keys=[user_id])
    referred_user = db.relationship("User", foreign_keys=[referred_user_id])

    __table_args__ = (
        UniqueConstraint("user_id", "referred_user_id", name="uq_team_referral_edge"),
        Index("idx_team_referral_user_level", "user_id", "level"),
    )

    @property
    def chain(self):
        """User ids from the receiver down to the referred user, derived from referred_by."""
        from ledger.referral_tree import ReferralTreeHelper

        depth = "ABC".index(self.level) + 1
        return ReferralTreeHelper.referral_chain(self.referred_user_id, depth)

    def to_dict(self):
        member = self.referred_user
        return {
            "id": self.id,
            "level": self.level,
            "isActive": self.is_active,
            "totalEarnings": _money(self.total_earnings),
            "joinedAt": _iso(self.created_at),
            "member": {
                "id": member.id,
                "name": member.name,
                "phone": member.phone,
                "currentLevel": member.current_level,
                "investmentAmount": _money(member.investment_amount),
            } if member else None,
        }


class TeamReferralHistory(db.Model, BaseMixin):
    """Append-only commission audit log."""
    __tablename__ = "team_referral_history"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    referred_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    referrer_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    level = db.Column(db.String(1), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    transaction_type = db.Column(db.String(32), nullable=False, default=CommissionType.SIGNUP_BONUS.value)
    investment_amount = db.Column(db.Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    status = db.Column(db.String(20), nullable=False, default=CommissionStatus.COMPLETED.value)
    description = db.Column(db.String(255), nullable=True)
    referral_chain = db.Column(db.JSON, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "referredUserId": self.referred_user_id,
            "referrerUserId": self.referrer_user_id,
            "level": self.level,
            "amount": _money(self.amount),
            "transactionType": self.transaction_type,
            "investmentAmount": _money(self.investment_amount),
            "commissionPercentage": _money(self.commission_percentage),
            "status": self.status,
            "description": self.description,
            "referralChain": self.referral_chain or [],
            "createdAt": _iso(self.created_at),
        }


# ===========================================================
# TASKS
# ===========================================================

class Task(db.Model, BaseMixin):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=True)
    video_url = db.Column(db.String(500), nullable=False)
    thumbnail = db.Column(db.String(500), nullable=True)
    level = db.Column(db.String(50), nullable=False)
    level_number = db.Column(db.Integer, nullable=False, index=True)
    reward_price = db.Column(db.Numeric(18, 2), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    order = db.Column(db.Integer, default=0)

    def to_dict(self, completed=None):
        data = {
            "id": self.id,
            "title": self.title,
            "videoUrl": self.video_url,
            "thumbnail": self.thumbnail,
            "level": self.level,
            "levelNumber": self.level_number,
            "rewardPrice": _money(self.reward_price),
            "isActive": self.is_active,
            "order": self.order,
        }
        if completed is not None:
            data["isCompleted"] = completed
        return data


class TaskCompletion(db.Model):
    __tablename__ = "task_completions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id"), nullable=False)
    reward_amount = db.Column(db.Numeric(18, 2), nullable=False)
    completed_at = db.Column(db.DateTime, nullable=False, default=datetime.now)

    __table_args__ = (
        UniqueConstraint("user_id", "task_id", name="uq_task_completion_user_task"),
    )


# ===========================================================
# WITHDRAWALS
# ===========================================================

class BankAccount(db.Model, BaseMixin):
    __tablename__ = "bank_accounts"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    account_type = db.Column(db.String(20), nullable=False, default=AccountType.SAVINGS.value)
    account_holder_name = db.Column(db.String(120), nullable=True)
    bank_name = db.Column(db.String(120), nullable=True)
    account_number = db.Column(db.String(40), nullable=True)
    ifsc_code = db.Column(db.String(20), nullable=True)
    branch_name = db.Column(db.String(120), nullable=True)
    qr_code_url = db.Column(db.String(500), nullable=True)
    is_default = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)

    user = db.relationship("User", back_populates="bank_accounts")

    def to_dict(self):
        return {
            "id": self.id,
            "accountType": self.account_type,
            "accountHolderName": self.account_holder_name,
            "bankName": self.bank_name,
            "accountNumber": self.account_number,
            "ifscCode": self.ifsc_code,
            "branchName": self.branch_name,
            "qrCodeUrl": self.qr_code_url,
            "isDefault": self.is_default,
            "createdAt": _iso(self.created_at),
        }


class Withdrawal(db.Model, BaseMixin):
    __tablename__ = "withdrawals"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    wallet_type = db.Column(db.String(30), nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    bank_account_id = db.Column(db.Integer, db.ForeignKey("bank_accounts.id"), nullable=True)

    # Payout details captured at request time
    account_holder_name = db.Column(db.String(120), nullable=True)
    bank_name = db.Column(db.String(120), nullable=True)
    account_number = db.Column(db.String(40), nullable=True)
    ifsc_code = db.Column(db.String(20), nullable=True)
    qr_code_url = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=WithdrawalStatus.PENDING.value, index=True)
    transaction_id = db.Column(db.String(100), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)
    processed_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", back_populates="withdrawals")

    def to_dict(self, include_user=False):
        data = {
            "id": self.id,
            "userId": self.user_id,
            "walletType": self.wallet_type,
            "amount": _money(self.amount),
            "bankAccountId": self.bank_account_id,
            "accountHolderName": self.account_holder_name,
            "bankName": self.bank_name,
            "accountNumber": self.account_number,
            "ifscCode": self.ifsc_code,
            "qrCodeUrl": self.qr_code_url,
            "status": self.status,
            "transactionId": self.transaction_id,
            "rejectionReason": self.rejection_reason,
            "processedAt": _iso(self.processed_at),
            "createdAt": _iso(self.created_at),
        }
        if include_user and self.user:
            data["user"] = {"id": self.user.id, "name": self.user.name, "phone": self.user.phone}
        return data


class WithdrawalConfig(db.Model, BaseMixin):
    """Per-weekday withdrawal window; day_of_week 0 is Sunday."""
    __tablename__ = "withdrawal_configs"

    id = db.Column(db.Integer, primary_key=True)
    day_of_week = db.Column(db.Integer, unique=True, nullable=False)
    day_name = db.Column(db.String(10), nullable=False)
    allowed_levels = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, default=True)
    start_time = db.Column(db.String(5), nullable=False, default="08:30")
    end_time = db.Column(db.String(5), nullable=False, default="17:00")

    def to_dict(self):
        return {
            "dayOfWeek": self.day_of_week,
            "dayName": self.day_name,
            "allowedLevels": list(self.allowed_levels or []),
            "isActive": self.is_active,
            "startTime": self.start_time,
            "endTime": self.end_time,
        }


# ===========================================================
# RECHARGES
# ===========================================================

class Recharge(db.Model, BaseMixin):
    __tablename__ = "recharges"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order_id = db.Column(db.String(40), unique=True, nullable=False)
    amount = db.Column(db.Numeric(18, 2), nullable=False)
    transaction_ref = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=RechargeStatus.PENDING.value, index=True)
    remarks = db.Column(db.String(255), nullable=True)
    submitted_at = db.Column(db.DateTime, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    rejected_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "orderId": self.order_id,
            "userId": self.user_id,
            "amount": _money(self.amount),
            "transactionRef": self.transaction_ref,
            "status": self.status,
            "remarks": self.remarks,
            "submittedAt": _iso(self.submitted_at),
            "approvedAt": _iso(self.approved_at),
            "rejectedAt": _iso(self.rejected_at),
            "createdAt": _iso(self.created_at),
        }
