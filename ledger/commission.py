import logging
from decimal import Decimal

from extensions import db
from models import Level, TeamReferral, TeamReferralHistory, CommissionType, CommissionStatus
from utils import quantize
from ledger import wallet

logger = logging.getLogger(__name__)


def compute_commission(tier, level) -> Decimal:
    """round(investment_amount * rate(tier) / 100, 2) for the receiver's own level."""
    rate = Decimal(str(level.rate_for(tier or "A") or 0))
    investment = Decimal(str(level.investment_amount or 0))
    return quantize(investment * rate / Decimal("100"))


def resolve_referrer_level(user):
    if user is None or user.current_level_number is None or user.current_level_number < 0:
        return None
    query = Level.query.filter_by(level_number=user.current_level_number)
    if user.current_level:
        query = query.filter_by(level_name=user.current_level)
    return query.first()


def pay_commission(receiver, new_user, tier, chain, rate_tier=None,
                   transaction_type=CommissionType.SIGNUP_BONUS.value, referrer_user_id=None):
    """
    Credit one commission to `receiver` and append its history row.

    `tier` is the edge letter recorded on the history row; `rate_tier` picks
    the rate column when it differs (tier A uses the receiver's team level).
    Returns the TeamReferralHistory row, or None when nothing was paid.
    """
    level = resolve_referrer_level(receiver)
    if level is None:
        logger.warning(
            "No level configuration for user %s; skipping tier %s commission for new user %s",
            receiver.id, tier, new_user.id,
        )
        return None

    rate_tier = rate_tier or tier
    amount = compute_commission(rate_tier, level)
    if amount <= 0:
        logger.info(
            "Zero commission for user %s on level %s (tier %s); nothing credited",
            receiver.id, level.level_number, rate_tier,
        )
        return None

    wallet.credit(receiver.id, wallet.COMMISSION_WALLET, amount)

    TeamReferral.query.filter_by(user_id=receiver.id, referred_user_id=new_user.id).update(
        {TeamReferral.total_earnings: TeamReferral.total_earnings + amount},
        synchronize_session="fetch",
    )

    history = TeamReferralHistory(
        user_id=receiver.id,
        referred_user_id=new_user.id,
        referrer_user_id=referrer_user_id,
        level=tier,
        amount=amount,
        transaction_type=transaction_type,
        investment_amount=level.investment_amount,
        commission_percentage=level.rate_for(rate_tier),
        status=CommissionStatus.COMPLETED.value,
        description=f"Tier {tier} commission for referral of {new_user.name}",
        referral_chain=list(chain),
    )
    db.session.add(history)

    logger.info(
        "Commission %s paid to user %s (tier %s, rate tier %s, level %s) for new user %s",
        amount, receiver.id, tier, rate_tier, level.level_number, new_user.id,
    )
    return history
