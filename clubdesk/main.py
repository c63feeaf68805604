import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import enrollments, fees, memberships
from .config import Base, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id

configure_logging(settings.log_level.upper(), json_output=settings.log_json)  # type: ignore[arg-type]

logger = logging.getLogger(__name__)

app = FastAPI(title="Clubdesk - Billing & Access Core")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = assign_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.on_event("startup")
def startup() -> None:
    # In dev we make sure tables exist; production schemas are managed by the hosted store.
    Base.metadata.create_all(bind=engine)
    logger.info("Clubdesk API started")


app.include_router(fees.router, prefix="/fees", tags=["fees"])
app.include_router(enrollments.router, prefix="/enrollments", tags=["enrollments"])
app.include_router(memberships.router, prefix="/memberships", tags=["memberships"])


@app.get("/health", tags=["system"])
def health() -> dict:
    return {"status": "ok"}
