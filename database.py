import logging
from functools import lru_cache
from typing import Iterable, List, Tuple

from fastapi import Request

from auth import hash_password
from config import DEFAULT_HOLIDAYS, Holiday, LeaveQuotas
from model import LeaveRequest, User, UserRole

logger = logging.getLogger(__name__)


class Database:
    """In-memory store owning the user and leave-request collections.

    Every write replaces the whole collection, so a reader holding a
    reference to the previous tuple never sees a half-applied update.
    """

    def __init__(self):
        self.users: Tuple[User, ...] = ()
        self.leave_requests: Tuple[LeaveRequest, ...] = ()
        self.leave_quotas = LeaveQuotas()
        self.holidays: Tuple[Holiday, ...] = tuple(DEFAULT_HOLIDAYS)

    def replace_users(self, users: Iterable[User]) -> None:
        self.users = tuple(users)

    def replace_leave_requests(self, requests: Iterable[LeaveRequest]) -> None:
        self.leave_requests = tuple(requests)

    def replace_holidays(self, holidays: Iterable[Holiday]) -> None:
        self.holidays = tuple(holidays)


DEMO_USERS: List[dict] = [
    {"id": "1", "username": "john.doe", "name": "John Doe", "email": "john.doe@atcl.sa",
     "role": UserRole.employee, "department": "Software Development", "manager_id": "2"},
    {"id": "2", "username": "sarah.manager", "name": "Sarah Al-Rashid", "email": "sarah.manager@atcl.sa",
     "role": UserRole.manager, "department": "Software Development"},
    {"id": "3", "username": "hr.admin", "name": "Ahmed Al-Mahmoud", "email": "hr.admin@atcl.sa",
     "role": UserRole.hr, "department": "Human Resources"},
    {"id": "4", "username": "coo.executive", "name": "Fatima Al-Zahra", "email": "coo@atcl.sa",
     "role": UserRole.coo, "department": "Executive"},
    {"id": "5", "username": "ali.sales", "name": "Ali Al-Saleh", "email": "ali.sales@atcl.sa",
     "role": UserRole.employee, "department": "Sales", "manager_id": "6"},
    {"id": "6", "username": "omar.salesmgr", "name": "Omar Al-Farsi", "email": "omar.salesmgr@atcl.sa",
     "role": UserRole.manager, "department": "Sales"},
    {"id": "7", "username": "nora.finance", "name": "Nora Al-Ghamdi", "email": "nora.finance@atcl.sa",
     "role": UserRole.employee, "department": "Finance", "manager_id": "8"},
    {"id": "8", "username": "fahad.finmgr", "name": "Fahad Al-Qahtani", "email": "fahad.finmgr@atcl.sa",
     "role": UserRole.manager, "department": "Finance"},
]


@lru_cache
def _demo_password_hash(password: str) -> str:
    # bcrypt is slow; every demo account shares one salted hash
    return hash_password(password)


def seed_demo_data(db: Database, password: str) -> None:
    """Load the demo organisation into an empty store."""
    password_hash = _demo_password_hash(password)
    db.replace_users(User(password_hash=password_hash, **data) for data in DEMO_USERS)
    logger.info("Seeded %d demo users", len(db.users))


def get_db(request: Request) -> Database:
    """Database dependency"""
    return request.app.state.db
