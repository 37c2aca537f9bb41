"""
Payment Engine Module

Accrual and payment-window rules for active debts.

Accrual is simple and linear: each whole accrual interval that has elapsed
since ``next_accrual`` credits ``principal * apr * interval / YEAR`` to the
claimable balance, never beyond the interest still held in escrow.
Nothing here runs on a timer; every figure is derived from the stored
timestamps and the time the caller supplies.
"""

from decimal import Decimal, ROUND_DOWN
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Tuple

from .errors import TimingViolationError
from .schedules import YEAR

if TYPE_CHECKING:
    from .debts import Debt


def elapsed_periods(anchor: datetime, interval: timedelta, now: datetime) -> int:
    """Count whole intervals reached at ``now`` when the first one ends at ``anchor``"""
    if now < anchor:
        return 0
    return 1 + (now - anchor) // interval


class PaymentEngine:
    """
    Computes accrued interest and validates payment timing
    """

    def __init__(self, payment_window: timedelta = timedelta(days=3), precision: int = 8):
        if payment_window < timedelta(0):
            raise ValueError("Payment window cannot be negative")
        self.payment_window = payment_window
        self.precision = precision
        self._quantum = Decimal(1).scaleb(-precision)

    def quantize(self, amount: Decimal) -> Decimal:
        """Round an amount down to the configured precision"""
        return amount.quantize(self._quantum, rounding=ROUND_DOWN)

    def required_interest(self, principal: Decimal, apr: Decimal) -> Decimal:
        """Total interest the payer must lock for a principal"""
        return self.quantize(principal * apr)

    def per_period_accrual(self, debt: 'Debt') -> Decimal:
        """Interest credited for one accrual interval (unrounded)"""
        fraction = Decimal(int(debt.accrual_interval.total_seconds())) / Decimal(int(YEAR.total_seconds()))
        return debt.principal * debt.apr * fraction

    def pending_accrual(self, debt: 'Debt', now: datetime) -> Tuple[Decimal, int]:
        """
        Interest accrued since ``next_accrual`` that is not yet credited.

        Returns:
            (amount, periods) where periods is the number of whole intervals
            that ``next_accrual`` must advance by
        """
        if not debt.owed or debt.next_accrual is None:
            return Decimal('0'), 0

        periods = elapsed_periods(debt.next_accrual, debt.accrual_interval, now)
        if periods == 0:
            return Decimal('0'), 0

        remaining = debt.interest - debt.interest_paid - debt.accrued_interest
        amount = self.quantize(self.per_period_accrual(debt) * periods)
        return min(amount, remaining), periods

    def accrue(self, debt: 'Debt', now: datetime) -> Decimal:
        """Credit pending accrual to the debt in place; returns the amount credited"""
        amount, periods = self.pending_accrual(debt, now)
        if periods:
            debt.accrued_interest += amount
            debt.next_accrual = debt.next_accrual + debt.accrual_interval * periods
        return amount

    def claimable(self, debt: 'Debt', now: datetime) -> Decimal:
        """Balance the payee could withdraw at ``now`` (pure query)"""
        amount, _ = self.pending_accrual(debt, now)
        return debt.accrued_interest + amount

    def payment_window_for(self, debt: 'Debt') -> Tuple[datetime, datetime]:
        """Inclusive bounds of the current payment window"""
        return debt.next_payment, debt.next_payment + self.payment_window

    def check_payment_window(self, debt: 'Debt', now: datetime) -> None:
        """
        Raises:
            TimingViolationError: unless next_payment <= now <= next_payment + window
        """
        if debt.next_payment is None:
            raise TimingViolationError(f"Debt {debt.id} has no payment due")
        opens, closes = self.payment_window_for(debt)
        if now < opens:
            raise TimingViolationError(
                f"Payment window for debt {debt.id} opens at {opens.isoformat()}"
            )
        if now > closes:
            raise TimingViolationError(
                f"Payment window for debt {debt.id} closed at {closes.isoformat()}"
            )

    def is_payment_overdue(self, debt: 'Debt', now: datetime) -> bool:
        """True once the current payment window has closed without a payment"""
        if not debt.owed or debt.next_payment is None:
            return False
        return now > debt.next_payment + self.payment_window

    def next_open_payment(self, debt: 'Debt', now: datetime) -> Tuple[datetime, int]:
        """
        First due time on the payment schedule whose window is still open at ``now``.

        Returns:
            (due_time, windows_skipped)
        """
        late = now - (debt.next_payment + self.payment_window)
        if late <= timedelta(0):
            return debt.next_payment, 0
        skipped = -(-late // debt.payment_interval)
        return debt.next_payment + debt.payment_interval * skipped, skipped
