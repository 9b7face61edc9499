"""
Administration Module

Operations reserved for administrators: changing a user's role, resetting
a password, locking a customer out by suspending their accounts, and
reading the audit trail. Every call names the acting administrator, whose
role is checked before anything changes.
"""

from datetime import datetime
from typing import List, Optional

from .accounts import AccountManager
from .audit import AuditEntry, AuditLedger
from .customers import CustomerManager
from .errors import NotFoundError, PermissionDeniedError
from .identity import IdentityStore, User, UserRole
from .logging_config import get_logger, log_action


class AdministrationService:
    """
    Administrator actions with audit trail
    """

    def __init__(
        self,
        identity_store: IdentityStore,
        customer_manager: CustomerManager,
        account_manager: AccountManager,
        audit_ledger: AuditLedger
    ):
        self.identity_store = identity_store
        self.customer_manager = customer_manager
        self.account_manager = account_manager
        self.audit_ledger = audit_ledger
        self.logger = get_logger("bac.admin")

    def _require_admin(self, admin_id: str) -> User:
        admin = self.identity_store.get_user(admin_id)
        if admin is None or admin.role != UserRole.ADMINISTRATOR:
            log_action(
                self.logger, "warning", f"Administrative action refused for {admin_id}",
                user_id=admin_id, action="PERMISSION_DENIED"
            )
            raise PermissionDeniedError(f"User {admin_id} is not an administrator")
        return admin

    def change_user_role(self, user_id: str, new_role: UserRole, admin_id: str) -> User:
        """
        Give a user a different role

        Raises:
            PermissionDeniedError: admin_id is not an administrator
            NotFoundError: User does not exist
            InvalidArgumentError: Role is missing
        """
        self._require_admin(admin_id)
        user = self.identity_store.get_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        old_role = user.role
        user = self.identity_store.change_role(user_id, new_role)

        self.audit_ledger.record_audit(
            admin_id, "USER_ROLE_CHANGED",
            f"User {user_id} role changed from {old_role.value} to {new_role.value} by admin {admin_id}"
        )
        log_action(
            self.logger, "info", f"Changed role of {user_id}",
            user_id=admin_id, action="USER_ROLE_CHANGED", resource=user_id
        )
        return user

    def reset_user_password(self, user_id: str, admin_id: str) -> str:
        """Reset a user's password and return the temporary one"""
        self._require_admin(admin_id)
        temporary = self.identity_store.reset_password(user_id)

        self.audit_ledger.record_audit(
            admin_id, "PASSWORD_RESET",
            f"Password reset for user {user_id} by admin {admin_id}"
        )
        log_action(
            self.logger, "info", f"Reset password of {user_id}",
            user_id=admin_id, action="PASSWORD_RESET", resource=user_id
        )
        return temporary

    def lock_customer_accounts(self, customer_id: str, admin_id: str) -> List[str]:
        """
        Suspend every open account of a customer

        Returns:
            Numbers of the accounts that were suspended
        """
        self._require_admin(admin_id)
        suspended = self.account_manager.suspend_customer_accounts(customer_id)

        self.audit_ledger.record_audit(
            admin_id, "STATUS_CHANGED",
            f"User {customer_id} account locked by admin {admin_id}"
        )
        log_action(
            self.logger, "info", f"Locked accounts of {customer_id}",
            user_id=admin_id, action="STATUS_CHANGED", resource=customer_id,
            extra={'accounts': suspended}
        )
        return suspended

    def view_audit_trail(
        self,
        admin_id: str,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[AuditEntry]:
        self._require_admin(admin_id)
        return self.audit_ledger.get_all_entries(start_time, end_time, limit)

    def view_user_audit_trail(self, customer_id: str, admin_id: str) -> List[AuditEntry]:
        """A customer's own trail, as reloaded from the ledger"""
        self._require_admin(admin_id)
        return self.customer_manager.require_customer(customer_id).audit_trail
