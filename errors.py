"""
Domain exceptions for the banking API.

Every error carries the HTTP status and message it is answered with, so the
exception handler in ``main`` can turn any of them into a response without
knowing the concrete type.
"""


class BankingError(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(BankingError):
    """Missing or malformed client input."""
    status_code = 400
    error_code = "VALIDATION_ERROR"
    message = "Invalid request"


class InvalidAmount(ValidationError):
    """Amount is missing, not a number, or not strictly positive."""
    error_code = "INVALID_AMOUNT"
    message = "Invalid amount"


class MissingCredentials(ValidationError):
    error_code = "MISSING_CREDENTIALS"
    message = "Username and password required"


class AuthError(BankingError):
    """
    Any failure of the bearer token check.

    All subclasses share one message so a client cannot tell a missing header
    from a bad signature or an expired token.
    """
    status_code = 403
    error_code = "INVALID_TOKEN"
    message = "Invalid or expired token"


class MissingOrMalformedAuth(AuthError):
    pass


class InvalidToken(AuthError):
    pass


class ExpiredToken(InvalidToken):
    pass


class CredentialError(BankingError):
    status_code = 401
    error_code = "INVALID_CREDENTIALS"
    message = "Invalid credentials"


class InvalidCredentials(CredentialError):
    pass


class NotFoundError(BankingError):
    status_code = 404
    error_code = "NOT_FOUND"
    message = "Not found"


class AccountNotFound(NotFoundError):
    error_code = "ACCOUNT_NOT_FOUND"
    message = "Account not found"


class BusinessRuleError(BankingError):
    status_code = 400
    error_code = "BUSINESS_RULE_VIOLATION"
    message = "Operation not allowed"


class InsufficientBalance(BusinessRuleError):
    error_code = "INSUFFICIENT_BALANCE"
    message = "Insufficient balance"
