from pydantic import BaseModel, Field, PlainSerializer
from dataclasses import dataclass
from typing import Annotated, Any, Dict, Optional, Union
from datetime import datetime
from decimal import Decimal


def _money_to_number(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# Decimal internally, plain JSON number on the wire
Money = Annotated[
    Decimal,
    PlainSerializer(_money_to_number, return_type=Union[int, float], when_used="json"),
]


@dataclass(frozen=True)
class User:
    username: str
    password_hash: str
    account_id: str


@dataclass
class Account:
    account_id: str
    balance: Decimal
    owner: str


@dataclass(frozen=True)
class TokenClaims:
    username: str
    account_id: str
    issued_at: datetime
    expires_at: datetime


class LoginRequest(BaseModel):
    # Optional so that missing fields reach the service and become a 400
    username: Optional[str] = Field(None, description="Account holder username")
    password: Optional[str] = Field(None, description="Account holder password")


class TokenResponse(BaseModel):
    token: str = Field(..., description="Signed access token, valid for one hour")


class AmountRequest(BaseModel):
    # Kept raw: the amount rules live in services.parse_amount
    amount: Any = Field(None, description="Positive amount to deposit or withdraw")


class BalanceResponse(BaseModel):
    balance: Money = Field(..., description="Current account balance")


class TransactionResponse(BaseModel):
    message: str = Field(..., description="Human readable summary")
    newBalance: Money = Field(..., description="Account balance after the operation")


class ErrorResponse(BaseModel):
    message: str = Field(..., description="Error description")
    error_code: str = Field(..., description="Machine-readable error code")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    accounts_count: int = Field(..., description="Number of accounts in system")
    users_count: int = Field(..., description="Number of users able to log in")


class ApiDocsResponse(BaseModel):
    message: str
    endpoints: Dict[str, str]
    testCredentials: Dict[str, str]
