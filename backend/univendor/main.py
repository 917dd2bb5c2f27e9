import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from dotenv import load_dotenv

# backend/univendor/main.py -> project root .env
env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqladmin import Admin

from univendor.admin_auth import authentication_backend
from univendor.admin_panel import ADMIN_VIEWS
from univendor.api.v1.routers import api_router
from univendor.api.v1.uploads import UPLOAD_DIR, UPLOAD_URL_PREFIX
from univendor.core.security import get_client_ip
from univendor.db.database import engine, init_db, load_models
from univendor.realtime.broker import create_broker
from univendor.services.security_log_service import log_security_event
from univendor.sockets.realtime_socket import router as realtime_socket_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

load_models()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create missing tables and open the relay broker.
    Shutdown: close the broker (and its Redis pool).
    """
    await init_db()
    app.state.broker = create_broker()
    logger.info(f"[Startup] Relay broker: {app.state.broker.name}")

    yield

    await app.state.broker.close()
    logger.info("[Shutdown] Relay broker closed")


app = FastAPI(title="UniVendor API", lifespan=lifespan)

origins_env = os.getenv("ALLOWED_ORIGINS", "*")
origins = [origin.strip() for origin in origins_env.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Anything that is not an HTTPException ends up here as a plain 500."""
    logger.exception(f"[API] Unhandled error on {request.method} {request.url.path}")
    await log_security_event(
        "api_error",
        ip_address=get_client_ip(request.headers, request.client),
        user_agent=request.headers.get("user-agent", ""),
        details={"path": request.url.path, "error": type(exc).__name__},
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# REST API and the live socket
app.include_router(api_router)
app.include_router(realtime_socket_router)

# Uploaded attachments / images
os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=UPLOAD_DIR), name="uploads")

# Admin panel (/admin)
admin = Admin(app, engine, authentication_backend=authentication_backend, title="UniVendor Admin")
for view in ADMIN_VIEWS:
    admin.add_view(view)


@app.get("/")
async def root():
    return {"message": "Welcome to UniVendor API"}


@app.get("/health")
async def health():
    return {"status": "ok", "broker": getattr(getattr(app.state, "broker", None), "name", None)}
