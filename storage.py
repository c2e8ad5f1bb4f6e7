from decimal import Decimal
from typing import Dict, List

# Demo data the in-memory stores start from. Passwords are hashed when the
# credential repository is built and never kept in plaintext at runtime.
SEED_USERS: List[Dict[str, str]] = [
    {"username": "user1", "password": "password123", "account_id": "ACC001"},
]

SEED_ACCOUNTS: List[Dict[str, object]] = [
    {"account_id": "ACC001", "balance": Decimal("1000.00"), "owner": "user1"},
]

TEST_CREDENTIALS: Dict[str, str] = {
    "username": SEED_USERS[0]["username"],
    "password": SEED_USERS[0]["password"],
}
