"""
Identifier Generation Module

Issues customer, staff, account, transaction and audit identifiers. Counters
are seeded from the records already in storage and guarded by a lock, so ids
stay monotonic per role across restarts and threads.
"""

import re
import threading
import time
from typing import Dict, Iterable, Optional

from .storage import StorageInterface


CUSTOMER_PREFIX = "CUST-"
EMPLOYEE_PREFIX = "BE-"
ADMIN_PREFIX = "ADM-"
ACCOUNT_PREFIX = "ACC"


def _max_sequence(ids: Iterable[str], prefix: str) -> int:
    """Highest numeric suffix among ids carrying the given prefix"""
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    highest = 0
    for value in ids:
        match = pattern.match(value or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


class IDGenerator:
    """Thread-safe issuer of prefixed, zero-padded sequential ids"""

    def __init__(self, storage: Optional[StorageInterface] = None):
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {
            CUSTOMER_PREFIX: 0,
            EMPLOYEE_PREFIX: 0,
            ADMIN_PREFIX: 0,
        }
        self._last_account_millis = 0
        self._record_sequence = 0
        if storage is not None:
            self._seed(storage)

    def _seed(self, storage: StorageInterface) -> None:
        """Continue numbering after ids already persisted"""
        user_ids = [data.get('user_id', '') for data in storage.load_all("users")]
        customer_ids = [data.get('customer_id', '') for data in storage.load_all("customers")]
        account_numbers = [data.get('account_number', '') for data in storage.load_all("accounts")]

        self._counters[CUSTOMER_PREFIX] = _max_sequence(user_ids + customer_ids, CUSTOMER_PREFIX)
        self._counters[EMPLOYEE_PREFIX] = _max_sequence(user_ids, EMPLOYEE_PREFIX)
        self._counters[ADMIN_PREFIX] = _max_sequence(user_ids, ADMIN_PREFIX)
        self._last_account_millis = _max_sequence(account_numbers, ACCOUNT_PREFIX)

    def _next(self, prefix: str) -> str:
        with self._lock:
            self._counters[prefix] += 1
            return f"{prefix}{self._counters[prefix]:03d}"

    def generate_customer_id(self) -> str:
        """CUST-001, CUST-002, ..."""
        return self._next(CUSTOMER_PREFIX)

    def generate_employee_id(self) -> str:
        """BE-001, BE-002, ..."""
        return self._next(EMPLOYEE_PREFIX)

    def generate_admin_id(self) -> str:
        """ADM-001, ADM-002, ..."""
        return self._next(ADMIN_PREFIX)

    def generate_account_number(self) -> str:
        """ACC followed by epoch milliseconds, strictly increasing"""
        with self._lock:
            millis = int(time.time() * 1000)
            if millis <= self._last_account_millis:
                millis = self._last_account_millis + 1
            self._last_account_millis = millis
            return f"{ACCOUNT_PREFIX}{millis}"

    def generate_transaction_id(self) -> str:
        return self._record_id("TXN")

    def generate_audit_id(self) -> str:
        return self._record_id("AUDIT")

    def _record_id(self, prefix: str) -> str:
        with self._lock:
            self._record_sequence += 1
            return f"{prefix}_{int(time.time() * 1000)}_{self._record_sequence}"
