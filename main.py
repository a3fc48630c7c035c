import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import database
from responses import error_body, timestamp
from routers import (addresses, admin, auth, cart, categories, contact, coupons, customer_reviews, newsletter,
                     orders, payments, products, reviews, upload, wishlist)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()
    if database.db is not None:
        try:
            database.ensure_indexes(database.db)
        except PyMongoError:
            logger.exception("Could not ensure MongoDB indexes")
    else:
        logger.warning("DATABASE_URL not set; endpoints that need the database will fail")
    yield
    if database.client is not None:
        database.client.close()


app = FastAPI(title="Samjubaa Creation API", version="1.0.0", lifespan=lifespan)

limiter = Limiter(key_func=get_remote_address, default_limits=[config.RATE_LIMIT], enabled=config.RATE_LIMIT_ENABLED)
app.state.limiter = limiter

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------- Error envelope ----------------------

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.method} {request.url.path} not found"
    errors = getattr(exc, "errors", None)
    data = getattr(exc, "data", None)
    return JSONResponse(status_code=exc.status_code, content=error_body(str(message), errors, data),
                        headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = [{
        "field": ".".join(str(p) for p in err.get("loc", ())[1:]) or str(err.get("loc", ("",))[0]),
        "message": err.get("msg"),
    } for err in exc.errors()]
    return JSONResponse(status_code=400, content=error_body("Validation failed", errors))


@app.exception_handler(RateLimitExceeded)
async def rate_limited(request: Request, exc: RateLimitExceeded):
    logger.warning("Rate limit exceeded for %s on %s", get_remote_address(request), request.url.path)
    return JSONResponse(status_code=429, content=error_body("Too many requests, please try again later."))


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = "Internal server error" if config.IS_PRODUCTION else str(exc) or "Internal server error"
    return JSONResponse(status_code=500, content=error_body(message))


# ---------------------- Routers ----------------------

for module in (auth, addresses, categories, products, cart, wishlist, orders, payments, coupons, reviews,
               customer_reviews, newsletter, contact, upload, admin):
    app.include_router(module.router)
app.include_router(products.shop_router)

# ---------------------- Root & Health ----------------------

@app.get("/")
def read_root():
    return {"message": "Samjubaa Creation API running"}


@app.get("/health")
def health():
    status = "not configured"
    if database.db is not None:
        try:
            database.db.command("ping")
            status = "connected"
        except PyMongoError as e:
            status = f"error: {str(e)[:80]}"
    return {"ok": True, "service": "samjubaa-api", "time": timestamp(), "database": status}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
