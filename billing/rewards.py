import random
import string
from collections import namedtuple

from flask import current_app

from models.booking import Booking
from models.coupon import Coupon

REWARD_PREFIXES = ("ZUMI", "PET", "SAVE", "LUCKY", "BONUS", "VIP")
REWARD_DISCOUNTS = (10, 15, 20, 25, 30)
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
SUFFIX_LENGTH = 4

RewardPromo = namedtuple("RewardPromo", ["code", "discount"])


def generate_reward_code(rng=random) -> RewardPromo:
    """{prefix}{discount}{suffix}, e.g. LUCKY25X7QD."""
    prefix = rng.choice(REWARD_PREFIXES)
    discount = rng.choice(REWARD_DISCOUNTS)
    suffix = "".join(rng.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return RewardPromo(code=f"{prefix}{discount}{suffix}", discount=discount)


def _code_taken(code: str) -> bool:
    if Coupon.query.filter_by(code=code).first():
        return True
    return Booking.query.filter_by(reward_promo_code=code).first() is not None


def mint_reward_promo(rng=random) -> RewardPromo:
    """
    Mint a reward promo for the user's next booking.

    Collisions with stock coupons or earlier rewards are retried a few times;
    after that the last draw is kept, since reward codes are not guaranteed
    unique.
    """
    attempts = max(int(current_app.config.get("REWARD_CODE_MAX_ATTEMPTS", 5)), 1)
    promo = None
    for _ in range(attempts):
        promo = generate_reward_code(rng)
        if not _code_taken(promo.code):
            break
        current_app.logger.info("Reward code %s already in use, drawing again", promo.code)

    return promo
