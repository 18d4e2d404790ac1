# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import config
from .clock import Clock, SystemClock
from .ledger import VoteLedger
from .lockout import LockoutGuard
from .routes.admin_routes import router as admin_router
from .routes.auth_routes import face_router
from .routes.auth_routes import router as auth_router
from .routes.election_routes import router as election_router
from .routes.vote_routes import vote_router
from .security import TokenService
from .storage import create_storage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(storage=None, clock: Clock = None) -> FastAPI:
    """
    Build the API around one store and one clock. Both default to the
    configured backend and the system clock; tests inject their own.
    """
    clock = clock or SystemClock()
    storage = storage if storage is not None else create_storage()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        storage.ensure_indexes()
        yield
        storage.close()

    app = FastAPI(title="FaceVote - Biometric Login and Single-Ballot API", lifespan=lifespan)
    app.state.storage = storage
    app.state.clock = clock
    app.state.tokens = TokenService(clock=clock)
    app.state.guard = LockoutGuard(clock=clock)
    app.state.ledger = VoteLedger(storage, clock=clock)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        # Malformed input is rejected before any state change
        return JSONResponse(
            status_code=400,
            content={"detail": {"message": "Invalid request", "code": "ValidationError",
                                "errors": jsonable_errors(exc)}},
        )

    app.include_router(auth_router)
    app.include_router(face_router)
    app.include_router(vote_router)
    app.include_router(election_router)
    app.include_router(admin_router)

    @app.get("/health", tags=["Root"])
    async def health_check():
        return {"status": "healthy", "database": type(storage).__name__}

    @app.get("/", tags=["Root"])
    def read_root():
        return {"message": "Welcome to the FaceVote API"}

    @app.get("/favicon.ico", include_in_schema=False)
    async def favicon():
        return Response(status_code=204)

    return app


def jsonable_errors(exc: RequestValidationError):
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(config.PORT))
