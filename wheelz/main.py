# wheelz/main.py

# 1) Load .env before any module reads its settings
from dotenv import load_dotenv
load_dotenv()

# 2) General settings
import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("wheelz")

from .database import init_models
from .errors import ValidationError, WheelzError
from .realtime import RealtimeHub

# 3) Routers
from .admin import router as admin_router
from .notifications import router as notifications_router
from .ratings import router as ratings_router
from .routes_bookings import router as bookings_router
from .routes_chat import router as chat_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_models()
    logger.info("WheelZOnRent API ready")
    yield


# -----------------------------------------------------------------------------
# Create the app
# -----------------------------------------------------------------------------
app = FastAPI(title="WheelZOnRent", lifespan=lifespan)
app.state.hub = RealtimeHub()

# -----------------------------------------------------------------------------
# Sessions (the login service writes session["user"])
# -----------------------------------------------------------------------------
SITE_URL = os.environ.get("SITE_URL", "")
HTTPS_ONLY_COOKIES = bool(int(os.environ.get("HTTPS_ONLY_COOKIES", "1" if SITE_URL.startswith("https") else "0")))

app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SECRET_KEY", "dev-secret"),
    session_cookie="wz_session",
    same_site="lax",
    https_only=HTTPS_ONLY_COOKIES,
    max_age=60 * 60 * 24 * 30,
)


# -----------------------------------------------------------------------------
# Errors -> JSON
# -----------------------------------------------------------------------------
@app.exception_handler(WheelzError)
async def wheelz_error_handler(request: Request, exc: WheelzError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        where = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        problems.append(f"{where}: {err.get('msg', 'invalid')}" if where else err.get("msg", "invalid"))
    body = ValidationError("; ".join(problems) or "invalid request").to_dict()
    # schema errors stay 422
    return JSONResponse(body, status_code=422)


app.include_router(chat_router)
app.include_router(bookings_router)
app.include_router(ratings_router)
app.include_router(notifications_router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"ok": True, "connections": app.state.hub.connection_count}


@app.get("/")
def homepage():
    return {"ok": True, "service": "WheelZOnRent"}
