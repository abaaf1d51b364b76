"""Health check endpoints for the gateway API."""

import logging
import time

import psutil
from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from diagnosis_gateway.api.dependencies import (
    ConnectionManagerDep,
    RequestLogDep,
    RouterDep,
    SettingsDep,
)
from diagnosis_gateway.domain.diagnosis_form import utc_timestamp
from diagnosis_gateway.domain.errors import IdentityError, IdentityNotFoundError
from diagnosis_gateway.domain.transaction_router import Operation, TransactionRouter
from diagnosis_gateway.infrastructure.connection_manager import ConnectionManager
from diagnosis_gateway.models.health import (
    BlockchainHealth,
    BlockchainHealthResponse,
    DetailedHealthResponse,
    HealthComponents,
    HealthResponse,
    MemoryUsage,
    SystemHealth,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])

NO_STORE = {"Cache-Control": "no-store"}

_process = psutil.Process()


def _uptime() -> float:
    return round(time.time() - _process.create_time(), 3)


def _memory() -> MemoryUsage:
    info = _process.memory_info()
    return MemoryUsage(
        rss_mb=round(info.rss / 1024 / 1024, 2),
        vms_mb=round(info.vms / 1024 / 1024, 2),
    )


async def check_blockchain_health(
    manager: ConnectionManager,
    tx_router: TransactionRouter,
    log,
    missing_identity_status: str = "unhealthy",
) -> BlockchainHealth:
    """Probe the ledger with a trivial read.

    Opens a session, evaluates ListDiagnosisForms and releases the session.

    Parameters:
        manager: Connection manager
        tx_router: Transaction router
        log: Request-scoped logger
        missing_identity_status: Status reported when the wallet identity is
            missing or cannot be loaded

    Returns:
        BlockchainHealth: Ledger health status

    Security Impact:
        - Only checks connectivity, no ledger records are returned
    """
    start_time = time.perf_counter()
    try:
        async with manager.session(log=log) as handle:
            await tx_router.execute(handle, Operation.LIST_FORMS)
    except IdentityError as e:
        log.warning(f"Blockchain health check: {e}")
        return BlockchainHealth(
            status=missing_identity_status,
            message=(
                "Blockchain identity not found" if isinstance(e, IdentityNotFoundError)
                else "Blockchain identity could not be loaded"
            ),
            error=str(e),
        )
    except Exception as e:
        log.warning(f"Blockchain health check failed: {str(e)}")
        return BlockchainHealth(
            status="unhealthy",
            message="Blockchain connection failed",
            error=str(e),
        )

    return BlockchainHealth(
        status="healthy",
        message="Connected",
        channel=handle.channel_name,
        contract=handle.contract_id,
        response_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
    )


@router.get("", response_model=HealthResponse)
async def health_check(response: Response, settings: SettingsDep) -> HealthResponse:
    """Liveness endpoint.

    Never touches the ledger; used by load balancers and process monitors.
    """
    response.headers.update(NO_STORE)
    return HealthResponse(
        timestamp=utc_timestamp(),
        uptime=_uptime(),
        version=settings.version,
        environment=settings.environment,
        memory=_memory(),
    )


@router.get("/blockchain", response_model=BlockchainHealthResponse)
async def blockchain_health(
    manager: ConnectionManagerDep, tx_router: RouterDep, log: RequestLogDep
):
    """Ledger readiness endpoint: 200 when a trivial read succeeds, 503 otherwise."""
    blockchain = await check_blockchain_health(manager, tx_router, log)
    body = BlockchainHealthResponse(
        status="healthy" if blockchain.status == "healthy" else "unhealthy",
        timestamp=utc_timestamp(),
        blockchain=blockchain,
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if body.status == "healthy" else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=NO_STORE,
    )


@router.get("/detailed", response_model=DetailedHealthResponse)
async def detailed_health(
    response: Response,
    settings: SettingsDep,
    manager: ConnectionManagerDep,
    tx_router: RouterDep,
    log: RequestLogDep,
) -> DetailedHealthResponse:
    """System and ledger health.

    A missing identity is reported as a warning rather than a failure; any
    non-healthy component makes the overall status "degraded".
    """
    response.headers.update(NO_STORE)
    blockchain = await check_blockchain_health(
        manager, tx_router, log, missing_identity_status="warning"
    )
    system = SystemHealth(
        uptime=_uptime(),
        memory=_memory(),
        cpu_percent=_process.cpu_percent(interval=None),
    )
    return DetailedHealthResponse(
        status="healthy" if blockchain.status == "healthy" else "degraded",
        timestamp=utc_timestamp(),
        version=settings.version,
        environment=settings.environment,
        components=HealthComponents(system=system, blockchain=blockchain),
    )
