"""
Fee catalog: the three tariffs (ordinary, associate, friend of the museum).

Parsed once at startup from the configuration strings and never mutated.
Any fee that is missing or cannot be read stops the server with ConfigError,
and so does a friend fee of 0.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import logging

from renewals import config
from renewals.errors import ConfigError

logger = logging.getLogger(__name__)

PENNY = Decimal("0.01")

# module renewals.fees
@dataclass(frozen=True)
class FeeCatalog:
    ordinary: Decimal
    associate: Decimal
    friend: Decimal

    def __post_init__(self):
        # A friend of the museum line always carries a fee
        if self.friend <= 0:
            raise ConfigError(f"friend of the museum fee must be greater than 0, got {self.friend}")

    @classmethod
    def from_strings(cls, ordinary: str, associate: str, friend: str) -> "FeeCatalog":
        return cls(
            ordinary=parse_fee("ordinary", ordinary),
            associate=parse_fee("associate", associate),
            friend=parse_fee("friend", friend),
        )

    def for_display(self) -> dict:
        return {
            "ordinary": f"{self.ordinary:.2f}",
            "associate": f"{self.associate:.2f}",
            "friend": f"{self.friend:.2f}",
        }


def parse_fee(name: str, raw: str) -> Decimal:
    """
    Parses one tariff.
    - Accepts a plain decimal string ("24", "6.00").
    - Rejects empty, non-numeric, non-finite and negative values with ConfigError.
    - Returns the value rounded half-up to pennies.
    """
    text = (raw or "").strip()
    if not text:
        raise ConfigError(f"{name} membership fee is not configured")
    try:
        value = Decimal(text)
    except InvalidOperation as e:
        raise ConfigError(f"illegal {name} membership fee {text!r}") from e
    if not value.is_finite() or value < 0:
        raise ConfigError(f"illegal {name} membership fee {text!r}")
    return value.quantize(PENNY, rounding=ROUND_HALF_UP)


def load_fee_catalog() -> FeeCatalog:
    """Reads the three fee strings from renewals.config. Called once by the app factory."""
    fees = FeeCatalog.from_strings(
        config.ORDINARY_MEMBER_FEE,
        config.ASSOCIATE_MEMBER_FEE,
        config.FRIEND_FEE,
    )
    logger.info("fees loaded ordinary=%s associate=%s friend=%s", fees.ordinary, fees.associate, fees.friend)
    return fees
