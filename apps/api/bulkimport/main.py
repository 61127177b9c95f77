from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from bulkimport.api.v1.router import router as v1_router
from bulkimport.core.config import settings
from bulkimport.core.logging import configure_logging
from bulkimport.middleware.rate_limit import RateLimitMiddleware
from bulkimport.middleware.request_id import RequestIdMiddleware
from bulkimport.services.admission import get_tiers

configure_logging()

# A malformed RATE_LIMIT_* value stops startup instead of failing each request
if settings.rate_limit_enabled:
    get_tiers()

app = FastAPI(title="Bulk Import API")

# Starlette runs the LAST added middleware FIRST (outermost).
# RequestId wraps everything so rate-limit responses are logged and tagged too.
app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/")
def root():
    return {"name": "Bulk Import API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(v1_router, prefix="/v1")
