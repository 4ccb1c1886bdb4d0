import logging
import secrets
from typing import Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import User, TeamReferral, TeamReferralHistory, TeamTier
from ledger.commission import pay_commission
from ledger.exceptions import NotFound, ValidationError, DuplicateReferralCode, InternalError

logger = logging.getLogger(__name__)

TIERS = [t.value for t in TeamTier]
MAX_TIER_DEPTH = len(TIERS)
SELF_REFERRAL = "Cannot use your own referral code."


def team_level_for(direct_count: int) -> Optional[str]:
    """Team level from the number of tier-A edges: 0 -> None, 1 -> B, 2+ -> C."""
    if direct_count >= 2:
        return TeamTier.C.value
    if direct_count == 1:
        return TeamTier.B.value
    return None


class ReferralTreeHelper:
    """
    Three-tier referral graph. Ancestry is derived from users.referred_by;
    team_referrals stores one materialized edge per (receiver, new user).
    """

    @staticmethod
    def walk_upline(user_id: int, depth: int = MAX_TIER_DEPTH) -> List[User]:
        """Ancestors of `user_id` nearest first, at most `depth` of them."""
        ancestors = []
        seen = {user_id}
        user = db.session.get(User, user_id)
        while user is not None and user.referred_by and len(ancestors) < depth:
            if user.referred_by in seen:
                logger.error("Referral cycle detected at user %s", user.id)
                break
            user = db.session.get(User, user.referred_by)
            if user is None:
                break
            seen.add(user.id)
            ancestors.append(user)
        return ancestors

    @staticmethod
    def referral_chain(user_id: int, depth: int = MAX_TIER_DEPTH) -> List[int]:
        """[top ancestor, ..., user_id] covering at most `depth` ancestors."""
        ancestors = ReferralTreeHelper.walk_upline(user_id, depth)
        return [u.id for u in reversed(ancestors)] + [user_id]

    @staticmethod
    def generate_referral_code(attempts: int = 10) -> str:
        for _ in range(attempts):
            code = secrets.token_hex(4).upper()
            if not User.query.filter_by(referral_code=code).first():
                return code
        raise DuplicateReferralCode("Could not allocate a unique referral code.")

    @staticmethod
    def validate_referrer(referrer: Optional[User], phone: str = None, email: str = None) -> Tuple[bool, str]:
        if referrer is None:
            return False, "Invalid referral code."
        if phone and referrer.phone == phone:
            return False, SELF_REFERRAL
        if email and referrer.email and referrer.email.lower() == email.lower():
            return False, SELF_REFERRAL
        if not referrer.is_active:
            return False, "Referrer account is inactive."
        return True, ""

    @staticmethod
    def resolve_referrer(referral_code: str, phone: str = None, email: str = None) -> Optional[User]:
        """
        Signup-side lookup. Unknown codes and inactive referrers give None so
        the signup goes ahead without referral benefits; only a self-referral
        raises ValidationError.
        """
        code = (referral_code or "").strip().upper()
        if not code:
            return None
        referrer = User.query.filter_by(referral_code=code).first()
        ok, message = ReferralTreeHelper.validate_referrer(referrer, phone=phone, email=email)
        if ok:
            return referrer
        if referrer is not None and message == SELF_REFERRAL:
            raise ValidationError(message)
        logger.info("Referral code %s ignored at signup: %s", code, message)
        return None

    # ---------------------------------------------------------------------
    # Edge construction
    # ---------------------------------------------------------------------
    @staticmethod
    def build_referral_edges(new_user_id: int, referrer_code: str) -> Dict:
        """
        Attach a freshly created user to up to three ancestors, pay each
        ancestor's signup commission and refresh the referrer's team level.
        Commits all writes in one transaction.
        """
        result = {"tiersCreated": 0, "teamLevel": None, "directReferralsCount": 0}

        code = (referrer_code or "").strip().upper()
        if not code:
            db.session.commit()
            return result

        new_user = db.session.get(User, new_user_id)
        if new_user is None:
            raise NotFound("User not found.")

        referrer = User.query.filter_by(referral_code=code).first()
        if referrer is None or referrer.id == new_user.id:
            logger.info("Referrer not found for code %s; no team edges created", code)
            db.session.commit()
            return result

        try:
            if new_user.referred_by is None:
                new_user.referred_by = referrer.id

            # tier A pays at the referrer's current team level, read before recompute
            tier_a_rate = referrer.team_level or TeamTier.A.value

            ancestors = [referrer] + ReferralTreeHelper.walk_upline(referrer.id, MAX_TIER_DEPTH - 1)
            for index, receiver in enumerate(ancestors):
                tier = TIERS[index]
                chain = [a.id for a in reversed(ancestors[:index + 1])] + [new_user.id]

                db.session.add(TeamReferral(
                    user_id=receiver.id,
                    referred_user_id=new_user.id,
                    level=tier,
                ))
                db.session.flush()

                pay_commission(
                    receiver,
                    new_user,
                    tier,
                    chain,
                    rate_tier=tier_a_rate if tier == TeamTier.A.value else tier,
                    referrer_user_id=referrer.id,
                )
                result["tiersCreated"] += 1

            User.query.filter(User.id == referrer.id).update(
                {User.total_referrals: User.total_referrals + 1},
                synchronize_session="fetch",
            )

            direct_count = TeamReferral.query.filter_by(user_id=referrer.id, level=TeamTier.A.value).count()
            team_level = team_level_for(direct_count)
            referrer.direct_referrals_count = direct_count
            if team_level is not None:
                referrer.team_level = team_level

            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception("Referral edge construction failed for user %s", new_user_id)
            raise InternalError("Could not record the referral. Please try again.") from exc

        result["teamLevel"] = referrer.team_level
        result["directReferralsCount"] = direct_count
        logger.info(
            "Referral edges for user %s: %s tiers, referrer %s now team level %s",
            new_user_id, result["tiersCreated"], referrer.id, referrer.team_level,
        )
        return result

    # ---------------------------------------------------------------------
    # Team reporting
    # ---------------------------------------------------------------------
    @staticmethod
    def get_team_stats(user_id: int) -> Dict:
        edges = TeamReferral.query.filter_by(user_id=user_id).order_by(TeamReferral.created_at.desc()).all()
        team_levels = []
        for tier in TIERS:
            tier_edges = [e for e in edges if e.level == tier]
            team_levels.append({
                "level": tier,
                "count": len(tier_edges),
                "totalEarnings": float(sum(e.total_earnings or 0 for e in tier_edges)),
                "members": [e.to_dict()["member"] for e in tier_edges],
            })
        return {"totalMembers": len(edges), "teamLevels": team_levels}

    @staticmethod
    def get_team_members(user_id: int, tier: str) -> Dict:
        tier = (tier or "").upper()
        if tier not in TIERS:
            raise ValidationError("Level must be A, B, or C")
        edges = TeamReferral.query.filter_by(user_id=user_id, level=tier).order_by(TeamReferral.created_at.desc()).all()
        members = [e.to_dict() for e in edges]
        return {"level": tier, "count": len(members), "members": members}

    @staticmethod
    def get_referral_link(user: User) -> Dict:
        base_url = current_app.config.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")
        link = f"{base_url}/signup?ref={user.referral_code}"
        return {
            "referralCode": user.referral_code,
            "referralLink": link,
            "shareMessage": (
                f"Join our amazing platform using my referral code: {user.referral_code}\n\n"
                f"Sign up here: {link}"
            ),
        }

    @staticmethod
    def get_commission_history(user_id: int, page: int = 1, limit: int = 10) -> Dict:
        query = TeamReferralHistory.query.filter_by(user_id=user_id)
        total = query.count()
        rows = (query.order_by(TeamReferralHistory.created_at.desc(), TeamReferralHistory.id.desc())
                .offset((page - 1) * limit).limit(limit).all())
        total_amount = db.session.query(db.func.coalesce(db.func.sum(TeamReferralHistory.amount), 0)) \
            .filter(TeamReferralHistory.user_id == user_id).scalar()
        return {
            "history": [r.to_dict() for r in rows],
            "totalCommission": float(total_amount or 0),
            "total": total,
        }
