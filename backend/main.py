import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
import uvicorn
from fastapi.middleware.cors import CORSMiddleware

from core.auth import fastapi_users, auth_backend
from core.config import settings
from core.exception_handlers import register_exception_handlers
from core.logging import add_context, clear_context, configure_logging
from db.database import async_session_maker, create_db_and_tables
from routers.orders import router as orders_router
from routers.records import router as records_router
from schemas.users import UserRead, UserCreate, UserUpdate
from services.container import Services, build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if getattr(app.state, "services", None) is None:
        await create_db_and_tables()
        app.state.services = build_services(settings, async_session_maker)
    yield
    await app.state.services.close()


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="Record Store API",
        description="Catalog of records and orders with consistent stock handling",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        clear_context()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        add_context(request_id=request_id, method=request.method, path=request.url.path)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    # Authentication routes (fastapi-users)
    app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"])
    app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
    app.include_router(fastapi_users.get_reset_password_router(), prefix="/auth", tags=["auth"])
    app.include_router(fastapi_users.get_verify_router(UserRead), prefix="/auth", tags=["auth"])
    app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

    app.include_router(records_router, prefix="/records", tags=["records"])
    app.include_router(orders_router, prefix="/orders", tags=["orders"])

    @app.get("/health", tags=["health"])
    async def health():
        return {"message": "Record store API is running"}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
