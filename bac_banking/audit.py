"""
Audit Ledger Module

Append-only log of who did what. Entries are only ever added, or removed in
bulk by the age-based retention sweep; there is no update path. An entry
whose actor does not resolve to a registered user is dropped with a warning
rather than raised, so auditing never breaks the operation being audited.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .errors import InvalidArgumentError
from .identity import IdentityStore
from .ids import IDGenerator
from .logging_config import get_logger, log_action
from .storage import StorageInterface


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit record"""
    audit_id: str
    action: str
    timestamp: datetime
    user_id: str
    details: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'audit_id': self.audit_id,
            'action': self.action,
            'timestamp': self.timestamp.isoformat(),
            'user_id': self.user_id,
            'details': self.details
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEntry':
        return cls(
            audit_id=data['audit_id'],
            action=data['action'],
            timestamp=datetime.fromisoformat(data['timestamp']),
            user_id=data['user_id'],
            details=data.get('details', '')
        )


def _as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class AuditLedger:
    """
    Persistent audit log validated against the identity store
    """

    def __init__(
        self,
        storage: StorageInterface,
        identity_store: IdentityStore,
        id_generator: IDGenerator,
        table_name: str = "audit_trail"
    ):
        self.storage = storage
        self.identity_store = identity_store
        self.id_generator = id_generator
        self.table_name = table_name
        self.logger = get_logger("bac.audit")
        # Serializes retention sweeps
        self._sweep_lock = threading.Lock()

    def record_audit(self, actor_id: Optional[str], action: str, details: str) -> Optional[AuditEntry]:
        """
        Append an audit entry

        Args:
            actor_id: Registered user performing the action
            action: Action code such as DEPOSIT_SUCCESS
            details: Human-readable description

        Returns:
            The stored AuditEntry, or None when the actor is unknown and
            the entry was dropped
        """
        if not self.identity_store.exists(actor_id):
            log_action(
                self.logger, "warning",
                f"Audit entry dropped, user not found: {actor_id}",
                user_id=actor_id, action=action
            )
            return None

        entry = AuditEntry(
            audit_id=self.id_generator.generate_audit_id(),
            action=action,
            timestamp=datetime.now(timezone.utc),
            user_id=actor_id,
            details=details or ""
        )
        self.storage.save(self.table_name, entry.audit_id, entry.to_dict())

        log_action(self.logger, "debug", details or action, user_id=actor_id, action=action)
        return entry

    def delete_older_than(self, days: int, now: Optional[datetime] = None) -> int:
        """
        Retention sweep: remove entries older than the given number of days

        Returns:
            Number of entries deleted
        """
        if days < 0:
            raise InvalidArgumentError("Retention days cannot be negative")

        cutoff = _as_utc(now or datetime.now(timezone.utc)) - timedelta(days=days)
        deleted = 0

        with self._sweep_lock:
            with self.storage.atomic():
                for entry in self._load_entries():
                    if entry.timestamp < cutoff:
                        if self.storage.delete(self.table_name, entry.audit_id):
                            deleted += 1

        self.logger.info(f"Deleted {deleted} audit entries older than {days} days")
        return deleted

    def get_entry(self, audit_id: str) -> Optional[AuditEntry]:
        """Get a specific audit entry by ID"""
        data = self.storage.load(self.table_name, audit_id)
        if data:
            return AuditEntry.from_dict(data)
        return None

    def get_all_entries(
        self,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[AuditEntry]:
        """
        Get audit entries within a time range

        Args:
            start_time: Start of time range (inclusive), naive means UTC
            end_time: End of time range (inclusive)
            limit: Maximum number of entries to return, most recent kept;
                zero returns nothing

        Returns:
            List of AuditEntry objects sorted by timestamp
        """
        entries = self._load_entries()

        if start_time:
            entries = [e for e in entries if e.timestamp >= _as_utc(start_time)]
        if end_time:
            entries = [e for e in entries if e.timestamp <= _as_utc(end_time)]

        if limit is not None:
            entries = entries[-limit:] if limit > 0 else []

        return entries

    def get_entries_for_user(self, user_id: str) -> List[AuditEntry]:
        entries = [AuditEntry.from_dict(data) for data in self.storage.find(self.table_name, {'user_id': user_id})]
        entries.sort(key=lambda e: e.timestamp)
        return entries

    def get_entries_by_action(self, action: str) -> List[AuditEntry]:
        entries = [AuditEntry.from_dict(data) for data in self.storage.find(self.table_name, {'action': action})]
        entries.sort(key=lambda e: e.timestamp)
        return entries

    def count_entries(self) -> int:
        """Get total number of audit entries"""
        return self.storage.count(self.table_name)

    def _load_entries(self) -> List[AuditEntry]:
        entries = [AuditEntry.from_dict(data) for data in self.storage.load_all(self.table_name)]
        entries.sort(key=lambda e: e.timestamp)
        return entries
