from fastapi import FastAPI, Request, Depends, Body
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Optional
import logging
import structlog
import time
from contextlib import asynccontextmanager

from auth import get_current_claims
from config import Settings, get_settings
from errors import BankingError
from models import (
    AmountRequest,
    ApiDocsResponse,
    BalanceResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    TokenClaims,
    TokenResponse,
    TransactionResponse,
)
from repositories import get_account_repository, get_credential_repository
from security import get_token_service
from services import AccountService, AuthService, format_amount, get_account_service, get_auth_service, parse_amount
from storage import TEST_CREDENTIALS


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format == "text"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger()


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(
        "Starting Banking API",
        url=f"http://{settings.host}:{settings.port}",
        usage="POST /login for a token, then send 'Authorization: Bearer <token>' to /balance, /deposit, /withdraw",
    )
    yield
    # Shutdown
    logger.info("Shutting down Banking API")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Banking API with JWT authentication: log in, then check the balance, deposit and withdraw",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=settings.allowed_methods,
    allow_headers=settings.allowed_headers,
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        client_ip=request.client.host if request.client else None
    )

    response = await call_next(request)

    process_time = time.time() - start_time
    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time=round(process_time, 4)
    )

    return response


# Dependency injection
def get_auth(
    credential_repo=Depends(get_credential_repository),
    token_service=Depends(get_token_service)
) -> AuthService:
    return get_auth_service(credential_repo, token_service)


def get_accounts(account_repo=Depends(get_account_repository)) -> AccountService:
    return get_account_service(account_repo)


def error_response(status_code: int, message: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, error_code=error_code).model_dump(mode="json")
    )


@app.post(
    "/login",
    response_model=TokenResponse,
    summary="Login",
    description="Exchange username and password for an access token valid for one hour",
    responses={
        400: {"model": ErrorResponse, "description": "Username or password missing"},
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
    }
)
async def login(
    credentials: Optional[LoginRequest] = Body(None),
    service: AuthService = Depends(get_auth)
):
    credentials = credentials or LoginRequest()
    token = await service.login(credentials.username, credentials.password)
    return TokenResponse(token=token)


@app.get(
    "/balance",
    response_model=BalanceResponse,
    summary="Account Balance",
    responses={
        403: {"model": ErrorResponse, "description": "Missing, invalid or expired token"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    }
)
async def get_balance(
    claims: TokenClaims = Depends(get_current_claims),
    service: AccountService = Depends(get_accounts)
):
    balance = await service.get_balance(claims.account_id)
    return BalanceResponse(balance=balance)


@app.post(
    "/deposit",
    response_model=TransactionResponse,
    summary="Deposit Money",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid amount"},
        403: {"model": ErrorResponse, "description": "Missing, invalid or expired token"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    }
)
async def deposit(
    payload: Optional[AmountRequest] = Body(None),
    claims: TokenClaims = Depends(get_current_claims),
    service: AccountService = Depends(get_accounts)
):
    amount = parse_amount(payload.amount if payload else None)
    new_balance = await service.deposit(claims.account_id, amount)
    return TransactionResponse(message=f"Deposited ${format_amount(amount)}", newBalance=new_balance)


@app.post(
    "/withdraw",
    response_model=TransactionResponse,
    summary="Withdraw Money",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid amount or insufficient balance"},
        403: {"model": ErrorResponse, "description": "Missing, invalid or expired token"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    }
)
async def withdraw(
    payload: Optional[AmountRequest] = Body(None),
    claims: TokenClaims = Depends(get_current_claims),
    service: AccountService = Depends(get_accounts)
):
    amount = parse_amount(payload.amount if payload else None)
    new_balance = await service.withdraw(claims.account_id, amount)
    return TransactionResponse(message=f"Withdrew ${format_amount(amount)}", newBalance=new_balance)


# Health check endpoint
@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Check API health and get system statistics"
)
async def health_check(
    account_repo=Depends(get_account_repository),
    credential_repo=Depends(get_credential_repository)
):
    return HealthResponse(
        status="healthy",
        accounts_count=await account_repo.get_accounts_count(),
        users_count=await credential_repo.get_users_count()
    )


# Root endpoint
@app.get("/", response_model=ApiDocsResponse, summary="API Documentation")
async def root():
    return ApiDocsResponse(
        message="Banking API with JWT Authentication",
        endpoints={
            "login": (
                f"POST /login - Get JWT token (username: {TEST_CREDENTIALS['username']}, "
                f"password: {TEST_CREDENTIALS['password']})"
            ),
            "balance": "GET /balance - View account balance (requires auth)",
            "deposit": "POST /deposit - Deposit money (requires auth)",
            "withdraw": "POST /withdraw - Withdraw money (requires auth)",
        },
        testCredentials=TEST_CREDENTIALS,
    )


# Exception handlers
@app.exception_handler(BankingError)
async def banking_exception_handler(request: Request, exc: BankingError):
    logger.warning(
        "Request rejected",
        method=request.method,
        url=str(request.url),
        status_code=exc.status_code,
        error_code=exc.error_code
    )
    return error_response(exc.status_code, exc.message, exc.error_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(
        "Request body rejected",
        method=request.method,
        url=str(request.url),
        errors=[error.get("msg") for error in exc.errors()]
    )
    return error_response(400, "Invalid request body", "VALIDATION_ERROR")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        error=str(exc),
        url=str(request.url),
        method=request.method,
        exc_info=True
    )
    return error_response(500, "Internal server error", "INTERNAL_ERROR")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
