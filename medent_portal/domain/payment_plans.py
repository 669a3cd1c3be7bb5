"""
Payment plans offered on a payment link.

Amounts are whole yen; every derived amount is rounded up.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List


class PlanType(str, Enum):
    FULL = "full"
    INSTALLMENT = "installment"
    CUSTOM = "custom"


@dataclass(frozen=True)
class PaymentPlan:
    """
    One way of paying an amount.

    Attributes:
        type: full, installment or custom
        label: Display label
        months: Number of monthly payments
        monthly_payment: Amount of each payment
        total_payment: Sum paid over the plan
        interest_rate: Percentage added to the amount
        fee: ``total_payment`` minus the original amount
    """

    type: PlanType
    label: str
    months: int
    monthly_payment: int
    total_payment: int
    interest_rate: int
    fee: int


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def _with_interest(amount: int, rate: int) -> int:
    """``ceil(amount * (1 + rate/100))`` in integer arithmetic."""
    return _ceil_div(amount * (100 + rate), 100)


def custom_plan_rate(months: int) -> int:
    """Interest percentage for a custom number of installments."""
    if months <= 6:
        return 3
    if months <= 12:
        return 5
    if months <= 24:
        return 10
    if months <= 36:
        return 15
    return 20


def calculate_plans(total_amount: int) -> List[PaymentPlan]:
    """Standard plans: one-off payment, 12 installments at 5 %, 24 at 10 %."""
    plans = [
        PaymentPlan(
            type=PlanType.FULL,
            label="一括払い",
            months=1,
            monthly_payment=total_amount,
            total_payment=total_amount,
            interest_rate=0,
            fee=0,
        )
    ]
    for months, rate in ((12, 5), (24, 10)):
        total = _with_interest(total_amount, rate)
        plans.append(
            PaymentPlan(
                type=PlanType.INSTALLMENT,
                label=f"{months}回分割",
                months=months,
                monthly_payment=_ceil_div(total, months),
                total_payment=total,
                interest_rate=rate,
                fee=_ceil_div(total_amount * rate, 100),
            )
        )
    return plans


def calculate_custom_plan(amount: int, months: int) -> PaymentPlan:
    """
    Plan for a customer-chosen number of installments.

    Raises:
        ValueError: If ``months`` is not positive
    """
    if months < 1:
        raise ValueError("months must be at least 1")

    rate = custom_plan_rate(months)
    total = _with_interest(amount, rate)
    return PaymentPlan(
        type=PlanType.CUSTOM,
        label=f"{months}回分割（カスタム）",
        months=months,
        monthly_payment=_ceil_div(total, months),
        total_payment=total,
        interest_rate=rate,
        fee=total - amount,
    )


def plan_destination(link_id: str, plan: PaymentPlan, amount: int) -> str:
    """
    Next page after choosing a plan.

    One-off payments go to card payment; installment and custom plans go to
    loan company screening.
    """
    if plan.type is PlanType.FULL:
        return f"/apply/{link_id}/card-payment?amount={amount}"
    return f"/apply/{link_id}/loan-selection?amount={amount}&months={plan.months}"
