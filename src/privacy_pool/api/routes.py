"""REST API endpoints for a privacy pool."""

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from privacy_pool.core.pool import PrivacyPool
from privacy_pool.exceptions import PrivacyPoolError
from privacy_pool.models.schemas import (
    DepositManyRequest,
    DepositRequest,
    DepositResponse,
    ErrorResponse,
    HealthResponse,
    NullifierResponse,
    PathResponse,
    PoolStateResponse,
    RootResponse,
    VerifyResponse,
    WithdrawalProofModel,
    WithdrawalRequest,
    WithdrawalResponse,
)
from privacy_pool.storage import DatabaseManager
from privacy_pool.utils.encoding import field_to_hex, hex_to_field

logger = logging.getLogger(__name__)

POOL_ERRORS = {400: {"model": ErrorResponse, "description": "Rejected by the pool"}}


def _parse_field_param(value: str) -> int:
    try:
        return hex_to_field(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid field element: {value}")


def create_app(pool: PrivacyPool, db: Optional[DatabaseManager] = None) -> FastAPI:
    """
    Build the HTTP service for one pool.

    Args:
        pool: Pool served by the app
        db: If given, every committed pool event is recorded there

    Returns:
        FastAPI: The application
    """
    app = FastAPI(
        title="Privacy Pool REST API",
        description="Fixed-denomination privacy pool with compliance subsets",
        version="0.1.0",
    )
    app.state.pool = pool
    app.state.db = db
    if db is not None:
        db.attach(pool)

    # Custom exception handler for validation errors - convert 422 to 400
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Convert Pydantic validation errors (422) to 400 Bad Request."""
        error_messages = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            error_messages.append(f"{field}: {error['msg']}")
        return JSONResponse(status_code=400, content={"detail": "; ".join(error_messages)})

    @app.exception_handler(PrivacyPoolError)
    async def pool_exception_handler(request: Request, exc: PrivacyPoolError):
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.code)
        body = ErrorResponse(error=str(exc), code=exc.code)
        return JSONResponse(status_code=400, content=body.model_dump())

    # ========================================================================
    # System Endpoints
    # ========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Check service health and status."""
        return HealthResponse(status="operational")

    @app.get("/state", response_model=PoolStateResponse, tags=["System"])
    async def get_state():
        """Get current pool state."""
        return PoolStateResponse(**pool.get_state())

    @app.get("/roots/{root}", response_model=RootResponse, tags=["System"])
    async def get_root(root: str):
        """Check whether a root was ever produced by the deposit tree."""
        value = _parse_field_param(root)
        return RootResponse(root=field_to_hex(value), known=pool.is_known_root(value))

    @app.get("/path/{index}", response_model=PathResponse, responses=POOL_ERRORS, tags=["System"])
    async def get_path(index: int):
        """Get the inclusion path of a deposit against the current root."""
        path = pool.path_of(index)
        return PathResponse(
            index=path.index,
            leaf=field_to_hex(path.leaf),
            siblings=[field_to_hex(s) for s in path.siblings],
            path_indices=list(path.path_indices),
            root=field_to_hex(path.root),
        )

    @app.get("/nullifiers/{nullifier}", response_model=NullifierResponse, tags=["System"])
    async def get_nullifier(nullifier: str):
        """Check whether a nullifier has been spent."""
        value = _parse_field_param(nullifier)
        record = pool.state.nullifiers.get_record(value)
        return NullifierResponse(
            nullifier=field_to_hex(value),
            spent=record is not None,
            spent_at=record.spent_at if record else None,
        )

    # ========================================================================
    # Deposit Endpoints
    # ========================================================================

    @app.post("/deposit", response_model=DepositResponse, responses=POOL_ERRORS, tags=["Deposit"])
    async def deposit(request: DepositRequest):
        """
        Deposit one denomination.

        - **sender**: Depositor address
        - **raw_commitment**: H(secret)
        - **value**: Native value attached
        """
        event = pool.deposit(request.sender, request.raw_commitment, request.value)
        return DepositResponse(root=field_to_hex(pool.latest_root()), **event.to_dict())

    @app.post("/deposit/many", response_model=List[DepositResponse], responses=POOL_ERRORS, tags=["Deposit"])
    async def deposit_many(request: DepositManyRequest):
        """Deposit several notes under one payment."""
        events = pool.deposit_many(request.sender, request.raw_commitments, request.value)
        roots = pool.tree.roots
        return [
            DepositResponse(root=field_to_hex(roots[event.index + 1]), **event.to_dict())
            for event in events
        ]

    # ========================================================================
    # Withdrawal Endpoints
    # ========================================================================

    @app.post("/withdraw", response_model=WithdrawalResponse, responses=POOL_ERRORS, tags=["Withdrawal"])
    async def withdraw(request: WithdrawalRequest):
        """
        Withdraw one denomination with a zero-knowledge proof.

        - **caller**: Submitting address (the relayer bound into the proof)
        - **proof**: Public withdrawal fields plus the flat proof
        - **fee_receiver**: Who collects the fee, zero address waives it
        - **value**: Native value attached
        """
        event = pool.withdraw(request.caller, request.to_request(), request.value)
        return WithdrawalResponse(**event.to_dict())

    @app.post("/withdraw/verify", response_model=VerifyResponse, tags=["Withdrawal"])
    async def verify_withdrawal(proof: WithdrawalProofModel):
        """Check a proof without submitting it."""
        return VerifyResponse(valid=pool.verify_withdrawal(proof.to_proof()))

    return app


def run(pool: PrivacyPool, db: Optional[DatabaseManager] = None, host: str = "0.0.0.0", port: int = 8000):
    """Serve a pool with uvicorn."""
    import uvicorn

    uvicorn.run(create_app(pool, db), host=host, port=port)
