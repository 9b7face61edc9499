"""
Interest Accrual Module

Background sweep that credits interest to every interest-bearing account.
Each account is reloaded and updated under its own lock, the same lock the
transaction processor takes, so a sweep never overwrites a concurrent
deposit or withdrawal. A failure on one account is logged and the sweep
moves on.
"""

import threading
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from .accounts import AccountManager, InterestBearing
from .audit import AuditLedger
from .currency import ZERO
from .logging_config import get_logger, log_action
from .transactions import TransactionProcessor, TransactionType


class InterestAccrualScheduler:
    """
    Periodic interest sweep on a daemon thread
    """

    def __init__(
        self,
        account_manager: AccountManager,
        transaction_processor: TransactionProcessor,
        audit_ledger: AuditLedger,
        interval_seconds: float = 86400.0,
        initial_delay: float = 0.0,
        system_actor_id: str = "SYSTEM"
    ):
        self.account_manager = account_manager
        self.transaction_processor = transaction_processor
        self.audit_ledger = audit_ledger
        self.interval_seconds = interval_seconds
        self.initial_delay = initial_delay
        self.system_actor_id = system_actor_id
        self.logger = get_logger("bac.interest")

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Start ticking; a no-op when already running"""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return

            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, name="interest-accrual")
            self._thread.daemon = True
            self._thread.start()

        self.logger.info(f"Interest scheduler started (interval {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel future ticks and wait for a running sweep to finish"""
        with self._lock:
            self._stop_event.set()
            thread = self._thread
            self._thread = None

        if thread is not None:
            thread.join(timeout=timeout)
        self.logger.info("Interest scheduler stopped")

    def is_running(self) -> bool:
        """Check if running"""
        thread = self._thread
        return thread is not None and thread.is_alive()

    def _run(self) -> None:
        if self._stop_event.wait(self.initial_delay):
            return

        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                self.logger.exception("Interest sweep failed")

            if self._stop_event.wait(self.interval_seconds):
                break

    def run_once(self, as_of: Optional[date] = None) -> Dict[str, Any]:
        """
        Run one sweep over every interest-bearing account

        Args:
            as_of: Date to accrue up to (defaults to today)

        Returns:
            Dictionary with accounts_checked, interest_applied,
            total_interest and errors
        """
        summary: Dict[str, Any] = {
            'accounts_checked': 0,
            'interest_applied': 0,
            'total_interest': ZERO,
            'errors': 0
        }

        for account in self.account_manager.get_all_accounts():
            if not isinstance(account, InterestBearing):
                continue

            summary['accounts_checked'] += 1
            try:
                interest = self._accrue(account.account_number, as_of)
            except Exception:
                summary['errors'] += 1
                self.logger.exception(f"Interest accrual failed for account {account.account_number}")
                continue

            if interest > ZERO:
                summary['interest_applied'] += 1
                summary['total_interest'] += interest

        log_action(
            self.logger, "info", "Interest sweep completed",
            action="INTEREST_SWEEP",
            extra={
                'accounts_checked': summary['accounts_checked'],
                'interest_applied': summary['interest_applied'],
                'total_interest': str(summary['total_interest']),
                'errors': summary['errors']
            }
        )
        return summary

    def _accrue(self, account_number: str, as_of: Optional[date]) -> Decimal:
        """Apply and persist interest for one account under its lock"""
        with self.account_manager.locks.lock(account_number):
            account = self.account_manager.get_account(account_number)
            if account is None or not isinstance(account, InterestBearing):
                return ZERO

            with self.account_manager.storage.atomic():
                interest = account.apply_interest(as_of)
                if interest <= ZERO:
                    return ZERO

                self.account_manager.update_account(account)
                self.transaction_processor.record_transaction(
                    TransactionType.INTEREST_PAYMENT,
                    interest,
                    f"Interest payment to account {account_number}",
                    account
                )

        # The owner's trail already holds the entry written by apply_interest
        if account.customer is None:
            self.audit_ledger.record_audit(
                self.system_actor_id, "INTEREST_APPLIED",
                f"Interest of {interest:.2f} applied to account {account_number}. "
                f"New balance: {account.balance:.2f}"
            )
        return interest
