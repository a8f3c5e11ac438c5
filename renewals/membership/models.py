"""
Sale aggregate: one membership renewal paid in one checkout, for the full
member and optionally an associate member at the same address.

Monetary values are Decimal with two fractional digits. The total is always
computed from the parts, never stored.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import List

from pydantic import BaseModel, Field, field_validator, model_validator

PENNY = Decimal("0.01")
ZERO = Decimal("0.00")
# Largest amount a numeric(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")

# module renewals.membership.models
class PaymentStatus(str, Enum):
    PENDING = "Pending"
    COMPLETE = "Complete"
    CANCELLED = "Cancelled"


class CostLine(BaseModel):
    label: str
    amount: Decimal

    @property
    def display(self) -> str:
        return f"{self.amount:.2f}"


class MembershipSale(BaseModel):
    """
    A renewal transaction.
    - sale_id is 0 until the store has created the row.
    - associate_member_id is 0 when there is no associate member.
    - payment_session_id stays empty until the gateway reports success.
    """
    sale_id: int = Field(0, ge=0)
    membership_year: int
    full_member_id: int = Field(gt=0)
    full_member_fee: Decimal = Field(ge=0)
    full_member_is_friend: bool = False
    full_member_friend_fee: Decimal = Field(ZERO, ge=0)
    associate_member_id: int = Field(0, ge=0)
    associate_member_fee: Decimal = Field(ZERO, ge=0)
    associate_member_is_friend: bool = False
    associate_member_friend_fee: Decimal = Field(ZERO, ge=0)
    donation_to_society: Decimal = Field(ZERO, ge=0)
    donation_to_museum: Decimal = Field(ZERO, ge=0)
    giftaid: bool = False
    payment_service: str = "Stripe"
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_session_id: str = ""

    @field_validator(
        "full_member_fee",
        "full_member_friend_fee",
        "associate_member_fee",
        "associate_member_friend_fee",
        "donation_to_society",
        "donation_to_museum",
    )
    @classmethod
    def _to_pennies(cls, v: Decimal) -> Decimal:
        value = Decimal(v)
        if value.is_finite() and abs(value) > MAX_AMOUNT:
            raise ValueError(f"amount {value} is larger than {MAX_AMOUNT}")
        try:
            return value.quantize(PENNY, rounding=ROUND_HALF_UP)
        except InvalidOperation as e:
            raise ValueError(f"amount {value} cannot be rounded to pennies") from e

    @model_validator(mode="after")
    def _check_invariants(self) -> "MembershipSale":
        if self.associate_member_id == 0 and (
            self.associate_member_fee != 0 or self.associate_member_is_friend
        ):
            raise ValueError("associate fee or friend flag set without an associate member")
        _check_friend_fee("full member", self.full_member_is_friend, self.full_member_friend_fee)
        _check_friend_fee("associate member", self.associate_member_is_friend, self.associate_member_friend_fee)
        if self.payment_status == PaymentStatus.COMPLETE and not self.payment_session_id:
            raise ValueError("a complete sale needs the payment session id")
        return self

    @property
    def has_associate(self) -> bool:
        return self.associate_member_id > 0

    @property
    def is_complete(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETE

    @property
    def members_count(self) -> int:
        """Members at the address: 2 with an associate, otherwise 1."""
        return 2 if self.has_associate else 1

    @property
    def friends_count(self) -> int:
        """Friends of the museum at the address (0..2)."""
        return int(self.full_member_is_friend) + int(self.associate_member_is_friend)

    def total_payment(self) -> Decimal:
        total = self.full_member_fee + self.donation_to_society + self.donation_to_museum
        if self.full_member_is_friend:
            total += self.full_member_friend_fee
        if self.has_associate:
            total += self.associate_member_fee
            if self.associate_member_is_friend:
                total += self.associate_member_friend_fee
        return total.quantize(PENNY, rounding=ROUND_HALF_UP)

    def cost_breakdown(self) -> List[CostLine]:
        """
        Itemized cost, in display order.
        - Always starts with the ordinary membership and ends with the total.
        - Friend, associate and donation lines only appear when they apply.
        """
        lines = [CostLine(label="ordinary membership", amount=self.full_member_fee)]
        if self.full_member_is_friend:
            lines.append(CostLine(label="friend of the museum", amount=self.full_member_friend_fee))
        if self.has_associate:
            lines.append(CostLine(label="associate member", amount=self.associate_member_fee))
            if self.associate_member_is_friend:
                lines.append(CostLine(label="associate is friend of the museum", amount=self.associate_member_friend_fee))
        if self.donation_to_society > 0:
            lines.append(CostLine(label="donation to the society", amount=self.donation_to_society))
        if self.donation_to_museum > 0:
            lines.append(CostLine(label="donation to the museum", amount=self.donation_to_museum))
        lines.append(CostLine(label="Total", amount=self.total_payment()))
        return lines


def _check_friend_fee(who: str, is_friend: bool, fee: Decimal) -> None:
    if is_friend and fee <= 0:
        raise ValueError(f"{who} is a friend of the museum but no friend fee is set")
    if not is_friend and fee != 0:
        raise ValueError(f"{who} is not a friend of the museum but a friend fee is set")
