"""
Identity Module

Users, password hashing and login/logout. The banking core consumes only a
boolean authentication result and a resolved identity/role; the audit ledger
uses exists() to decide whether an actor id may be recorded.
"""

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, TYPE_CHECKING

from .errors import InvalidArgumentError, NotFoundError
from .ids import IDGenerator
from .logging_config import get_logger
from .storage import StorageInterface

if TYPE_CHECKING:
    from .audit import AuditLedger


# Actor recorded for failed logins; never registered, so those audits drop
UNKNOWN_ACTOR = "UNKNOWN"


class UserRole(Enum):
    """Roles a user can hold"""
    CUSTOMER = "customer"
    BANK_EMPLOYEE = "bank_employee"
    ADMINISTRATOR = "administrator"


@dataclass
class User:
    """System user with authentication info"""
    user_id: str
    username: str
    role: UserRole
    password_hash: str
    password_salt: str
    created_at: datetime
    last_login: Optional[datetime] = None


def is_strong_password(password: Optional[str], min_length: int = 8) -> bool:
    """Upper, lower, digit and special character, at least min_length long"""
    if password is None or len(password) < min_length:
        return False

    has_upper = any(c.isupper() for c in password)
    has_lower = any(c.islower() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_special = any(not c.isalnum() for c in password)
    return has_upper and has_lower and has_digit and has_special


_PASSWORD_ALPHABETS = (
    string.ascii_uppercase,
    string.ascii_lowercase,
    string.digits,
    "!@#$%^&*-_",
)


def generate_password(length: int = 12) -> str:
    """Random password that passes is_strong_password"""
    if length < len(_PASSWORD_ALPHABETS):
        raise InvalidArgumentError(f"Password length must be at least {len(_PASSWORD_ALPHABETS)}")

    alphabet = "".join(_PASSWORD_ALPHABETS)
    chars = [secrets.choice(group) for group in _PASSWORD_ALPHABETS]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


class IdentityStore:
    """
    Registers users and verifies credentials
    """

    def __init__(
        self,
        storage: StorageInterface,
        id_generator: IDGenerator,
        password_min_length: int = 8
    ):
        self.storage = storage
        self.id_generator = id_generator
        self.password_min_length = password_min_length
        self.table_name = "users"
        self.logger = get_logger("bac.identity")

    def register_user(
        self,
        username: str,
        password: str,
        role: UserRole,
        user_id: Optional[str] = None
    ) -> User:
        """
        Register a new user

        Args:
            username: Unique login name
            password: Plain-text password, hashed before storage
            role: Role of the user
            user_id: Specific id (generated from the role if not provided)

        Returns:
            Created User

        Raises:
            InvalidArgumentError: Empty or duplicate username, weak password
        """
        if not username or not username.strip():
            raise InvalidArgumentError("Username cannot be null or empty")

        if self.get_user_by_username(username):
            raise InvalidArgumentError(f"Username already taken: {username}")

        if not is_strong_password(password, self.password_min_length):
            raise InvalidArgumentError(
                f"Password must be at least {self.password_min_length} characters and contain "
                "upper case, lower case, digit and special characters"
            )

        if not user_id:
            user_id = self._generate_user_id(role)

        if self.storage.exists(self.table_name, user_id):
            raise InvalidArgumentError(f"User id already registered: {user_id}")

        salt = secrets.token_hex(16)
        user = User(
            user_id=user_id,
            username=username,
            role=role,
            password_hash=self._hash_password(password, salt),
            password_salt=salt,
            created_at=datetime.now(timezone.utc)
        )
        self._save_user(user)

        self.logger.info(f"Registered {role.value} user {user_id}")
        return user

    def authenticate(self, username: str, password: str) -> bool:
        """Check a username/password pair"""
        user = self.get_user_by_username(username)
        if not user or password is None:
            return False
        return self._verify_password(user, password)

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        if not user_id:
            return None
        data = self.storage.load(self.table_name, user_id)
        if data:
            return self._user_from_dict(data)
        return None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Get user by username"""
        users = self.storage.find(self.table_name, {"username": username})
        if users:
            return self._user_from_dict(users[0])
        return None

    def get_all_users(self) -> List[User]:
        return [self._user_from_dict(data) for data in self.storage.load_all(self.table_name)]

    def exists(self, user_id: Optional[str]) -> bool:
        """Check whether an id resolves to a registered user"""
        if not user_id:
            return False
        return self.storage.exists(self.table_name, user_id)

    def change_password(self, user_id: str, old_password: str, new_password: str) -> bool:
        """Replace the password when the old one verifies and the new one is strong"""
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError("User", user_id)

        if not self._verify_password(user, old_password):
            return False
        if not is_strong_password(new_password, self.password_min_length):
            return False

        user.password_salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(new_password, user.password_salt)
        self._save_user(user)
        return True

    def change_role(self, user_id: str, new_role: UserRole) -> User:
        """
        Assign a new role to an existing user

        Raises:
            NotFoundError: User does not exist
            InvalidArgumentError: Role is missing
        """
        if new_role is None:
            raise InvalidArgumentError("Role cannot be null")

        user = self.get_user(user_id)
        if not user:
            raise NotFoundError("User", user_id)

        user.role = new_role
        self._save_user(user)
        self.logger.info(f"Role of {user_id} set to {new_role.value}")
        return user

    def reset_password(self, user_id: str) -> str:
        """
        Replace a user's password with a generated one

        Returns:
            The temporary password, to be handed to the user out of band
        """
        user = self.get_user(user_id)
        if not user:
            raise NotFoundError("User", user_id)

        temporary = generate_password(max(12, self.password_min_length))
        user.password_salt = secrets.token_hex(16)
        user.password_hash = self._hash_password(temporary, user.password_salt)
        self._save_user(user)
        self.logger.info(f"Password reset for {user_id}")
        return temporary

    def record_login(self, user: User) -> None:
        user.last_login = datetime.now(timezone.utc)
        self._save_user(user)

    def _generate_user_id(self, role: UserRole) -> str:
        if role == UserRole.CUSTOMER:
            return self.id_generator.generate_customer_id()
        if role == UserRole.BANK_EMPLOYEE:
            return self.id_generator.generate_employee_id()
        return self.id_generator.generate_admin_id()

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _verify_password(self, user: User, password: str) -> bool:
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)

    def _save_user(self, user: User) -> None:
        self.storage.save(self.table_name, user.user_id, self._user_to_dict(user))

    def _user_to_dict(self, user: User) -> Dict:
        return {
            'user_id': user.user_id,
            'username': user.username,
            'role': user.role.value,
            'password_hash': user.password_hash,
            'password_salt': user.password_salt,
            'created_at': user.created_at.isoformat(),
            'last_login': user.last_login.isoformat() if user.last_login else None
        }

    def _user_from_dict(self, data: Dict) -> User:
        last_login = None
        if data.get('last_login'):
            last_login = datetime.fromisoformat(data['last_login'])

        return User(
            user_id=data['user_id'],
            username=data['username'],
            role=UserRole(data['role']),
            password_hash=data['password_hash'],
            password_salt=data['password_salt'],
            created_at=datetime.fromisoformat(data['created_at']),
            last_login=last_login
        )


@dataclass
class LoginResult:
    """Outcome of a login attempt"""
    success: bool
    message: str
    role: Optional[UserRole] = None
    user: Optional[User] = None


class AuthenticationService:
    """
    Login/logout for a single user session at a time
    """

    def __init__(self, identity_store: IdentityStore, audit_ledger: 'AuditLedger'):
        self.identity_store = identity_store
        self.audit_ledger = audit_ledger
        self.logger = get_logger("bac.identity")
        self._current_user: Optional[User] = None

    def login(self, username: str, password: str) -> LoginResult:
        """Authenticate and remember the user as the current session"""
        if self.identity_store.authenticate(username, password):
            user = self.identity_store.get_user_by_username(username)
            if user:
                self.identity_store.record_login(user)
                self._current_user = user
                self.audit_ledger.record_audit(
                    user.user_id, "LOGIN_SUCCESS",
                    f"User logged in successfully with role: {user.role.value}"
                )
                self.logger.info(f"Login success for {username}")
                return LoginResult(True, "Login successful", role=user.role, user=user)

        # No identity to attribute this to, so the ledger drops it
        self.audit_ledger.record_audit(
            UNKNOWN_ACTOR, "LOGIN_FAILED",
            f"Failed login attempt for username: {username}"
        )
        self.logger.info(f"Login failed for {username}")
        return LoginResult(False, "Invalid username or password")

    def logout(self) -> None:
        if self._current_user is None:
            return
        self.audit_ledger.record_audit(
            self._current_user.user_id, "LOGOUT", "User logged out successfully"
        )
        self.logger.info(f"User {self._current_user.username} logged out")
        self._current_user = None

    @property
    def current_user(self) -> Optional[User]:
        return self._current_user

    @property
    def is_authenticated(self) -> bool:
        return self._current_user is not None
