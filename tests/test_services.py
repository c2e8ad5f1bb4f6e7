import pytest
import asyncio
from decimal import Decimal

from errors import AccountNotFound, InsufficientBalance, InvalidAmount, InvalidCredentials, MissingCredentials
from repositories import InMemoryAccountRepository, InMemoryCredentialRepository
from security import TokenService
from services import AccountService, AuthService, format_amount, parse_amount


@pytest.fixture()
def account_repo():
    return InMemoryAccountRepository(seed_accounts=[
        {"account_id": "ACC001", "balance": Decimal("1000.00"), "owner": "user1"},
        {"account_id": "ACC002", "balance": Decimal("0.00"), "owner": "user2"},
    ])


@pytest.fixture()
def service(account_repo):
    return AccountService(account_repo)


class TestParseAmount:
    """Test the amount rules shared by deposit and withdraw."""

    @pytest.mark.parametrize("raw,expected", [
        (100, Decimal("100")),
        (100.5, Decimal("100.5")),
        (0.01, Decimal("0.01")),
        (Decimal("2.50"), Decimal("2.50")),
    ])
    def test_valid(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize("raw", [
        None, 0, 0.0, -5, -0.01, True, False, "100", "", [], {},
        float("nan"), float("inf"), float("-inf"), Decimal("NaN"),
    ])
    def test_invalid(self, raw):
        with pytest.raises(InvalidAmount):
            parse_amount(raw)

    @pytest.mark.parametrize("amount,expected", [
        (Decimal("100"), "100"),
        (Decimal("100.0"), "100"),
        (Decimal("99.99"), "99.99"),
    ])
    def test_format_amount(self, amount, expected):
        assert format_amount(amount) == expected


class TestAccountService:
    """Test account operations against the in-memory store."""

    @pytest.mark.asyncio
    async def test_get_balance(self, service):
        assert await service.get_balance("ACC001") == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_get_balance_unknown_account(self, service):
        with pytest.raises(AccountNotFound):
            await service.get_balance("ACC999")

    @pytest.mark.asyncio
    async def test_deposit(self, service, account_repo):
        assert await service.deposit("ACC001", 100) == Decimal("1100.00")
        assert await account_repo.get_balance("ACC001") == Decimal("1100.00")

    @pytest.mark.asyncio
    async def test_withdraw(self, service, account_repo):
        assert await service.withdraw("ACC001", 400) == Decimal("600.00")
        assert await account_repo.get_balance("ACC001") == Decimal("600.00")

    @pytest.mark.asyncio
    async def test_withdraw_insufficient_leaves_balance(self, service, account_repo):
        with pytest.raises(InsufficientBalance):
            await service.withdraw("ACC001", 1500)

        assert await account_repo.get_balance("ACC001") == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_withdraw_from_empty_account(self, service):
        with pytest.raises(InsufficientBalance):
            await service.withdraw("ACC002", Decimal("0.01"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["deposit", "withdraw"])
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_amount_checked_before_existence(self, service, operation, amount):
        with pytest.raises(InvalidAmount):
            await getattr(service, operation)("ACC999", amount)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("operation", ["deposit", "withdraw"])
    async def test_unknown_account(self, service, operation):
        with pytest.raises(AccountNotFound):
            await getattr(service, operation)("ACC999", 10)

    @pytest.mark.asyncio
    async def test_existence_checked_before_sufficiency(self, service):
        with pytest.raises(AccountNotFound):
            await service.withdraw("ACC999", 10 ** 9)

    @pytest.mark.asyncio
    async def test_balance_never_negative(self, service, account_repo):
        """Test a long mixed sequence keeps every balance non-negative."""
        operations = [("withdraw", 300), ("deposit", 50), ("withdraw", 800), ("withdraw", 750),
                      ("deposit", 0.5), ("withdraw", 0.51), ("withdraw", 0.5), ("withdraw", 1)]

        for operation, amount in operations:
            try:
                await getattr(service, operation)("ACC001", amount)
            except InsufficientBalance:
                pass
            assert await account_repo.get_balance("ACC001") >= 0

        assert await account_repo.get_balance("ACC001") == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_concurrent_withdrawals(self, service, account_repo):
        results = await asyncio.gather(
            *[service.withdraw("ACC001", 250) for _ in range(6)],
            return_exceptions=True,
        )

        assert sum(1 for r in results if isinstance(r, InsufficientBalance)) == 2
        assert await account_repo.get_balance("ACC001") == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_store_refuses_negative_balance(self, account_repo):
        with pytest.raises(ValueError):
            await account_repo.update_balance("ACC001", Decimal("-1"))

        assert await account_repo.get_balance("ACC001") == Decimal("1000.00")


class TestAuthService:
    """Test login against the in-memory credential store."""

    @pytest.fixture()
    def auth_service(self):
        credential_repo = InMemoryCredentialRepository(
            seed_users=[{"username": "alice", "password": "s3cret", "account_id": "ACC010"}],
            bcrypt_rounds=4,
        )
        return AuthService(credential_repo, TokenService("service-test-secret-key-long-enough"))

    @pytest.mark.asyncio
    async def test_login_issues_token_for_account(self, auth_service):
        token = await auth_service.login("alice", "s3cret")

        claims = auth_service.token_service.verify(token)
        assert (claims.username, claims.account_id) == ("alice", "ACC010")

    @pytest.mark.asyncio
    async def test_credentials_stored_hashed(self, auth_service):
        user = await auth_service.credential_repo.get_user("alice")

        assert user.password_hash != "s3cret"
        assert user.password_hash.startswith("$2")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [("alice", "wrong"), ("bob", "s3cret")])
    async def test_invalid_credentials(self, auth_service, username, password):
        with pytest.raises(InvalidCredentials):
            await auth_service.login(username, password)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("username,password", [(None, "s3cret"), ("alice", None), ("", ""), (None, None)])
    async def test_missing_credentials(self, auth_service, username, password):
        with pytest.raises(MissingCredentials):
            await auth_service.login(username, password)
