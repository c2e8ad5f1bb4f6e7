from abc import ABC, abstractmethod
from typing import Dict, Iterable, Mapping, Optional
from decimal import Decimal
from functools import lru_cache
import asyncio
from collections import defaultdict

from config import get_settings
from models import Account, User
from security import hash_password
from storage import SEED_ACCOUNTS, SEED_USERS


class CredentialRepository(ABC):
    @abstractmethod
    async def get_user(self, username: str) -> Optional[User]:
        """Get user by username. Returns None if the user doesn't exist."""
        pass

    @abstractmethod
    async def get_users_count(self) -> int:
        """Get total number of users."""
        pass


class AccountRepository(ABC):
    @abstractmethod
    async def get_balance(self, account_id: str) -> Optional[Decimal]:
        """Get account balance. Returns None if account doesn't exist."""
        pass

    @abstractmethod
    async def update_balance(self, account_id: str, new_balance: Decimal) -> None:
        """Update account balance."""
        pass

    @abstractmethod
    async def account_exists(self, account_id: str) -> bool:
        """Check if account exists."""
        pass

    @abstractmethod
    async def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass

    @abstractmethod
    def get_lock(self, account_id: str) -> asyncio.Lock:
        """Get the lock serializing balance updates of one account."""
        pass


@lru_cache(maxsize=None)
def _seed_password_hash(password: str, rounds: int) -> str:
    # Seed hashes are computed once per process, repositories are rebuilt often in tests
    return hash_password(password, rounds=rounds)


class InMemoryCredentialRepository(CredentialRepository):
    def __init__(self, seed_users: Iterable[Mapping[str, str]] = SEED_USERS, bcrypt_rounds: Optional[int] = None):
        rounds = bcrypt_rounds if bcrypt_rounds is not None else get_settings().bcrypt_rounds
        self.users: Dict[str, User] = {
            seed["username"]: User(
                username=seed["username"],
                password_hash=_seed_password_hash(seed["password"], rounds),
                account_id=seed["account_id"],
            )
            for seed in seed_users
        }

    async def get_user(self, username: str) -> Optional[User]:
        return self.users.get(username)

    async def get_users_count(self) -> int:
        return len(self.users)


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, seed_accounts: Iterable[Mapping[str, object]] = SEED_ACCOUNTS):
        self.accounts: Dict[str, Account] = {
            seed["account_id"]: Account(
                account_id=seed["account_id"],
                balance=Decimal(str(seed["balance"])),
                owner=seed["owner"],
            )
            for seed in seed_accounts
        }
        self.locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def get_balance(self, account_id: str) -> Optional[Decimal]:
        account = self.accounts.get(account_id)
        return account.balance if account is not None else None

    async def update_balance(self, account_id: str, new_balance: Decimal) -> None:
        if account_id not in self.accounts:
            raise ValueError(f"Account {account_id} does not exist")
        if new_balance < 0:
            raise ValueError(f"Account {account_id} balance cannot become negative")
        self.accounts[account_id].balance = new_balance

    async def account_exists(self, account_id: str) -> bool:
        return account_id in self.accounts

    async def get_accounts_count(self) -> int:
        return len(self.accounts)

    def get_lock(self, account_id: str) -> asyncio.Lock:
        return self.locks[account_id]


# Process-wide instances handed out through FastAPI dependencies
_credential_repo: Optional[InMemoryCredentialRepository] = None
_account_repo: Optional[InMemoryAccountRepository] = None


def get_credential_repository() -> CredentialRepository:
    global _credential_repo
    if _credential_repo is None:
        _credential_repo = InMemoryCredentialRepository()
    return _credential_repo


def get_account_repository() -> AccountRepository:
    global _account_repo
    if _account_repo is None:
        _account_repo = InMemoryAccountRepository()
    return _account_repo


def reset_repositories():
    """Reset all repositories to initial state (for testing only)."""
    global _credential_repo, _account_repo
    _credential_repo = InMemoryCredentialRepository()
    _account_repo = InMemoryAccountRepository()
