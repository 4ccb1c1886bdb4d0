# ==========================================================================================================
# -------------- Configuration file for the Taskearn Flask application -------------------------------------
# ==========================================================================================================
import os
from decimal import Decimal
from dotenv import load_dotenv


if os.environ.get("FLASK_ENV") != "production":
    load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def _database_url():
    url = os.getenv("DATABASE_URL")
    if not url:
        url = f"sqlite:///{os.path.join(basedir, 'instance', 'taskearn.db')}"

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+pg8000://", 1)
    return url


class Config:

    SECRET_KEY = os.getenv("SECRET_KEY")
    if not SECRET_KEY:
        raise ValueError("SECRET_KEY must be set")

    FLASK_ENV = os.getenv("FLASK_ENV", "production")
    DEBUG = os.getenv("DEBUG", "False").lower() in ("true", "1", "t")

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = (
        {
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        }
        if SQLALCHEMY_DATABASE_URI.startswith("postgresql")
        else {}
    )

    LOG_DIR = os.getenv("LOG_DIR", "logs")

    FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

    # ---------------------------------------------------------------------
    # Ledger rules
    # ---------------------------------------------------------------------
    MIN_WITHDRAWAL_AMOUNT = Decimal(os.getenv("MIN_WITHDRAWAL_AMOUNT", "280"))
    MAX_BANK_ACCOUNTS = int(os.getenv("MAX_BANK_ACCOUNTS", "4"))
    RECHARGE_AUTO_APPROVE_SECONDS = int(os.getenv("RECHARGE_AUTO_APPROVE_SECONDS", "60"))
    DEFAULT_WITHDRAWAL_START = os.getenv("DEFAULT_WITHDRAWAL_START", "08:30")
    DEFAULT_WITHDRAWAL_END = os.getenv("DEFAULT_WITHDRAWAL_END", "17:00")


class TestConfig(Config):
    TESTING = True
    FLASK_ENV = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_DIR = os.getenv("LOG_DIR", os.path.join(basedir, "logs"))
