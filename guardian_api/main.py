import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database.engine import create_all_tables
from guardian_api.deps import get_guardian
from guardian_api.routers import accounts, agent, challenge_setup, symbols, trades
from trade_risk_guardian import __version__
from trade_risk_guardian.types import (
    AccessDeniedError,
    AccountNotFoundError,
    AuthenticationError,
    GuardianError,
    InvalidEnumError,
    OrderNotFoundError,
    OrderStateError,
    SetupAlreadyExistsError,
    SetupLockedError,
    SetupNotFoundError,
    SetupValidationError,
    SymbolNotFoundError,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_all_tables()
    logger.info("Guardian API started")
    yield


app = FastAPI(
    title="Trade Risk Guardian API",
    description="Pre-trade risk validation and order authorization for prop-firm challenges.",
    version=__version__,
    lifespan=lifespan,
)

# CORS (Allow local frontend development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(accounts.router)
app.include_router(challenge_setup.router)
app.include_router(trades.router)
app.include_router(symbols.router)
app.include_router(agent.router)


# =============================================================
# Exception handlers
# =============================================================

def _error(status_code: int, detail: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "detail": detail, **extra},
    )


@app.exception_handler(SetupValidationError)
def setup_validation_handler(request: Request, exc: SetupValidationError):
    return _error(422, "Challenge setup is invalid", errors=exc.errors, warnings=exc.warnings)


@app.exception_handler(SymbolNotFoundError)
def symbol_not_found_handler(request: Request, exc: SymbolNotFoundError):
    return _error(404, str(exc), symbol=exc.standard_symbol, hint=exc.hint)


@app.exception_handler(AuthenticationError)
def authentication_handler(request: Request, exc: AuthenticationError):
    return _error(401, str(exc))


@app.exception_handler(AccessDeniedError)
def access_denied_handler(request: Request, exc: AccessDeniedError):
    return _error(403, str(exc))


@app.exception_handler(AccountNotFoundError)
@app.exception_handler(OrderNotFoundError)
@app.exception_handler(SetupNotFoundError)
def not_found_handler(request: Request, exc: GuardianError):
    return _error(404, str(exc))


@app.exception_handler(SetupAlreadyExistsError)
@app.exception_handler(SetupLockedError)
@app.exception_handler(OrderStateError)
def conflict_handler(request: Request, exc: GuardianError):
    return _error(409, str(exc))


@app.exception_handler(InvalidEnumError)
def invalid_enum_handler(request: Request, exc: InvalidEnumError):
    return _error(400, str(exc), field=exc.field_name, allowed=exc.allowed)


@app.exception_handler(GuardianError)
def guardian_error_handler(request: Request, exc: GuardianError):
    logger.warning(f"Unhandled Guardian error on {request.url.path}: {exc}")
    return _error(400, str(exc))


@app.get("/")
def root():
    return {"status": "ok", "message": "Trade Risk Guardian API is running"}


@app.get("/health")
def health():
    return get_guardian().health_check()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
