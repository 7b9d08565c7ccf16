# backend/prodex/main.py
import logging

from fastapi import FastAPI, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings
from .core.errors import QuotingError
from .api.deps import get_current_user, CurrentUser

# ---- Routers ----
from .api import products, quote_groups, quotes, supplies

logger = logging.getLogger("prodex")


def configure_logging(level: str = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("prodex").setLevel((level or settings.LOG_LEVEL).upper())


configure_logging()

app = FastAPI(title="PRODEX API")

# ---------------------------
# CORS (frontend dev servers)
# ---------------------------
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


def _resolve_allowed_origins() -> list[str]:
    # settings.CORS_ALLOW_ORIGINS may be a comma separated string or a list
    raw = getattr(settings, "CORS_ALLOW_ORIGINS", None)
    if not raw:
        return DEFAULT_CORS_ORIGINS
    if isinstance(raw, (list, tuple)):
        vals = [str(x).strip().rstrip("/") for x in raw if str(x).strip()]
    else:
        vals = [s.strip().rstrip("/") for s in str(raw).split(",") if s.strip()]
    # a bare "*" cannot be combined with credentials
    if len(vals) == 1 and vals[0] == "*":
        return DEFAULT_CORS_ORIGINS
    return vals or DEFAULT_CORS_ORIGINS


ALLOW_ORIGINS = _resolve_allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------
# Domain errors -> JSON
# ---------------------------
@app.exception_handler(QuotingError)
async def quoting_error_handler(request: Request, exc: QuotingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


# ---------------------------
# Health & Current User
# ---------------------------
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


@app.get("/me", tags=["auth"])
def me(current: CurrentUser = Depends(get_current_user)):
    return {
        "id": current.id,
        "email": current.email,
        "role": current.role_name,
    }


# ---------------------------
# Routers
# ---------------------------
app.include_router(quotes.router)          # PREVIEW, QUOTES, CONVERSION
app.include_router(quote_groups.router)    # MULTI-PRODUCT QUOTES
app.include_router(products.router)        # PRODUCTS & TEMPLATE VERSIONS
app.include_router(supplies.router)        # PURCHASES
