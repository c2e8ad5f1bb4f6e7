import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog

from errors import AccountNotFound, InsufficientBalance, InvalidAmount, InvalidCredentials, MissingCredentials
from repositories import AccountRepository, CredentialRepository
from security import TokenService, verify_password

logger = structlog.get_logger()


def parse_amount(raw: Any) -> Decimal:
    """
    Convert a JSON amount into a Decimal.

    Only real numbers are accepted: booleans and numeric strings are rejected
    along with missing, non-finite, zero and negative values.
    """
    if raw is None or isinstance(raw, bool) or not isinstance(raw, (int, float, Decimal)):
        raise InvalidAmount()
    if isinstance(raw, float) and not math.isfinite(raw):
        raise InvalidAmount()

    try:
        amount = Decimal(str(raw))
    except InvalidOperation:
        raise InvalidAmount()

    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount()
    return amount


def format_amount(amount: Decimal) -> str:
    if amount == amount.to_integral_value():
        return str(int(amount))
    return str(amount)


class AuthService:
    def __init__(self, credential_repo: CredentialRepository, token_service: TokenService):
        self.credential_repo = credential_repo
        self.token_service = token_service

    async def login(self, username: Optional[str], password: Optional[str]) -> str:
        """Check credentials and return a signed access token."""
        if not username or not password:
            logger.warning("Login rejected, missing credentials")
            raise MissingCredentials()

        user = await self.credential_repo.get_user(username)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("Login rejected, invalid credentials", username=username)
            raise InvalidCredentials()

        token = self.token_service.issue(user.username, user.account_id)
        logger.info("Login succeeded", username=user.username, account_id=user.account_id)
        return token


class AccountService:
    def __init__(self, account_repo: AccountRepository):
        self.account_repo = account_repo

    async def get_balance(self, account_id: str) -> Decimal:
        balance = await self.account_repo.get_balance(account_id)
        if balance is None:
            logger.warning("Account not found", account_id=account_id)
            raise AccountNotFound()
        return balance

    async def deposit(self, account_id: str, raw_amount: Any) -> Decimal:
        """Add a positive amount to the account and return the new balance."""
        amount = parse_amount(raw_amount)
        await self._ensure_exists(account_id)

        async with self.account_repo.get_lock(account_id):
            current_balance = await self.account_repo.get_balance(account_id)
            new_balance = current_balance + amount
            await self.account_repo.update_balance(account_id, new_balance)

        logger.info(
            "Deposit processed",
            account_id=account_id,
            amount=str(amount),
            old_balance=str(current_balance),
            new_balance=str(new_balance),
        )
        return new_balance

    async def withdraw(self, account_id: str, raw_amount: Any) -> Decimal:
        """
        Take a positive amount out of the account and return the new balance.

        The sufficiency check and the write happen under the account lock, so
        concurrent withdrawals cannot overdraw the account.
        """
        amount = parse_amount(raw_amount)
        await self._ensure_exists(account_id)

        async with self.account_repo.get_lock(account_id):
            current_balance = await self.account_repo.get_balance(account_id)

            if current_balance < amount:
                logger.warning(
                    "Insufficient balance for withdrawal",
                    account_id=account_id,
                    current_balance=str(current_balance),
                    requested_amount=str(amount),
                )
                raise InsufficientBalance()

            new_balance = current_balance - amount
            await self.account_repo.update_balance(account_id, new_balance)

        logger.info(
            "Withdrawal processed",
            account_id=account_id,
            amount=str(amount),
            old_balance=str(current_balance),
            new_balance=str(new_balance),
        )
        return new_balance

    async def _ensure_exists(self, account_id: str) -> None:
        if not await self.account_repo.account_exists(account_id):
            logger.warning("Account not found", account_id=account_id)
            raise AccountNotFound()


# Factory functions for dependency injection
def get_auth_service(credential_repo: CredentialRepository, token_service: TokenService) -> AuthService:
    return AuthService(credential_repo, token_service)


def get_account_service(account_repo: AccountRepository) -> AccountService:
    return AccountService(account_repo)
