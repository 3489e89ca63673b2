import logging
import uuid
from typing import List, Optional

from auth import hash_password
from database import Database
from model import User, UserRole
from schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """Raised when an admin change would break directory integrity."""


class UserDirectory:
    """Employee, manager, HR and COO records plus reporting lines."""

    def __init__(self, db: Database, default_password: str = "password123"):
        self.db = db
        self.default_password = default_password

    # Lookups never raise; unknown ids give None or an empty list.

    def get_user_by_id(self, user_id: Optional[str]) -> Optional[User]:
        if not user_id:
            return None
        return next((u for u in self.db.users if u.id == user_id), None)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.db.users if u.username == username), None)

    def list_users(self) -> List[User]:
        return list(self.db.users)

    def list_by_role(self, role: UserRole) -> List[User]:
        return [u for u in self.db.users if u.role == role]

    def list_reports(self, manager_id: str) -> List[User]:
        return [u for u in self.db.users if u.manager_id == manager_id]

    # Mutations

    def _check_manager(self, manager_id: Optional[str]):
        if manager_id is None:
            return
        manager = self.get_user_by_id(manager_id)
        if not manager or manager.role != UserRole.manager:
            raise DirectoryError(f"Manager {manager_id} not found")

    def add_user(self, user: UserCreate) -> User:
        if self.get_user_by_username(user.username):
            raise DirectoryError("Username already exists")
        self._check_manager(user.manager_id)

        db_user = User(
            id=f"user_{uuid.uuid4().hex[:12]}",
            username=user.username,
            name=user.name,
            email=user.email,
            role=user.role,
            department=user.department,
            manager_id=user.manager_id,
            password_hash=hash_password(user.password or self.default_password),
        )
        self.db.replace_users([*self.db.users, db_user])
        logger.info("Added user %s (%s)", db_user.username, db_user.role.value)
        return db_user

    def update_user(self, user_id: str, updates: UserUpdate) -> Optional[User]:
        db_user = self.get_user_by_id(user_id)
        if not db_user:
            return None

        update_data = {
            k: v for k, v in updates.model_dump(exclude_unset=True).items()
            if v is not None or k == "manager_id"
        }
        password = update_data.pop("password", None)
        if password:
            update_data["password_hash"] = hash_password(password)

        if "username" in update_data:
            existing = self.get_user_by_username(update_data["username"])
            if existing and existing.id != user_id:
                raise DirectoryError("Username already exists")
        if "manager_id" in update_data:
            if update_data["manager_id"] == user_id:
                raise DirectoryError("A user cannot manage themselves")
            self._check_manager(update_data["manager_id"])
        if (
            db_user.role == UserRole.manager
            and update_data.get("role", UserRole.manager) != UserRole.manager
            and self.list_reports(user_id)
        ):
            raise DirectoryError("Reassign this manager's reports before changing their role")

        updated = db_user.model_copy(update=update_data)
        self.db.replace_users(updated if u.id == user_id else u for u in self.db.users)
        logger.info("Updated user %s", updated.username)
        return updated

    def delete_user(self, user_id: str) -> bool:
        if not self.get_user_by_id(user_id):
            return False
        # Reports of a removed manager are left without a manager
        self.db.replace_users(
            u.model_copy(update={"manager_id": None}) if u.manager_id == user_id else u
            for u in self.db.users
            if u.id != user_id
        )
        logger.info("Deleted user %s", user_id)
        return True
