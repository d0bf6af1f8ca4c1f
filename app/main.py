from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api.v1 import agent as agent_router
from app.api.v1 import auth as auth_router
from app.api.v1 import manager as manager_router
from app.api.v1 import notifications as notifications_router
from app.api.v1 import organizations as organizations_router
from app.api.v1 import public as public_router
from app.api.v1 import tenants as tenants_router
from app.api.v1 import tickets as tickets_router
from app.config.db import check_db_connection
from app.config.redis import check_redis_connection, close_redis
from app.exceptions import (
    AuthenticationError,
    AuthFailure,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TicketNumberExhaustedError,
    ValidationError,
)
from app.utils.logging_config import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle application startup and shutdown events.
    """
    await check_db_connection()
    await check_redis_connection()

    yield

    await close_redis()


app = FastAPI(
    lifespan=lifespan,
    title="ITSM Helpdesk",
    description="Multi-tenant helpdesk API: tickets, routing, tenant scoping and audit",
)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    code = (
        status.HTTP_401_UNAUTHORIZED
        if exc.kind == AuthFailure.UNAUTHORIZED
        else status.HTTP_403_FORBIDDEN
    )
    return JSONResponse(status_code=code, content={"detail": exc.message})


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": exc.message}
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": exc.message})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": exc.message})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": exc.message})


@app.exception_handler(TicketNumberExhaustedError)
async def ticket_number_handler(request: Request, exc: TicketNumberExhaustedError) -> JSONResponse:
    logger.error(f"Ticket creation failed: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Unable to allocate a ticket number, please retry"},
    )


# Include routers
app.include_router(auth_router.router, prefix="/api/v1/auth", tags=["Auth"])
app.include_router(public_router.router, prefix="/api/v1/public", tags=["Public"])
app.include_router(tickets_router.router, prefix="/api/v1/tickets", tags=["Tickets"])
app.include_router(tenants_router.router, prefix="/api/v1/tenants", tags=["Tenants"])
app.include_router(manager_router.router, prefix="/api/v1/manager", tags=["Manager"])
app.include_router(agent_router.router, prefix="/api/v1/agent", tags=["Agent"])
app.include_router(
    organizations_router.router, prefix="/api/v1/organizations", tags=["Organizations"]
)
app.include_router(
    notifications_router.router, prefix="/api/v1/notifications", tags=["Notifications"]
)


@app.get("/")
def read_root() -> dict[str, str]:
    return {"message": "Hello from ITSM Helpdesk API!"}
