# server.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kafka_canary import __version__
from kafka_canary.api import status as status_router
from kafka_canary.core.config import settings
from kafka_canary.core.errors import install_exception_handlers
from kafka_canary.core.log import setup_logging
from kafka_canary.domain.services.metric_service import CanaryMetrics
from kafka_canary.domain.services.status_service import StatusService
from kafka_canary.domain.services.topic_service import TopicService
from kafka_canary.infra.kafka.admin import KafkaAdminFacade
from kafka_canary.services.canary_runner import CanaryRunner
from kafka_canary.services.consumer_service import CanaryConsumer
from kafka_canary.services.producer_service import CanaryProducer
from kafka_canary.services.sample_ring import SampleRing

setup_logging(settings.log_level)
logger = logging.getLogger("kafka_canary")


# Lifespan handler replaces @app.on_event("startup"/"shutdown")
@asynccontextmanager
async def lifespan(app: FastAPI):
    canary = settings.canary_config()
    metrics = CanaryMetrics()

    # One ring per direction; each is written by a single sampling task.
    produced = SampleRing(canary.ring_capacity)
    consumed = SampleRing(canary.ring_capacity)

    topic_service = TopicService(canary, lambda: KafkaAdminFacade.connect(settings), metrics)
    producer = CanaryProducer(canary, produced, metrics)
    consumer = CanaryConsumer(
        canary, consumed, metrics, poll_timeout_ms=settings.consumer_poll_timeout_ms
    )
    runner = CanaryRunner(
        topic_service,
        producer,
        consumer,
        reconcile_interval=settings.reconcile_interval_sec,
        reconcile_timeout=settings.reconcile_timeout_sec,
        produce_interval=settings.producer_interval_sec,
        status_check_interval=settings.status_check_interval_sec,
    )

    app.state.canary_metrics = metrics
    app.state.topic_service = topic_service
    app.state.status_service = StatusService(canary, produced, consumed)
    app.state.canary_runner = runner

    logger.info("Starting canary: bootstrap=%s topic=%s window=%s (%d samples)",
                settings.kafka_bootstrap, canary.topic, canary.status_time_window,
                canary.ring_capacity)
    runner.start()
    try:
        yield
    finally:
        await runner.stop()


app = FastAPI(
    title="Kafka Canary",
    version=__version__,
    lifespan=lifespan,
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
)

allow_origins = settings.cors_allow_origins or [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

install_exception_handlers(app)

app.include_router(status_router.router, prefix="/api/v1")

if settings.metrics_enabled:
    from kafka_canary.api import metrics as metrics_router
    # metrics lives at /metrics (Prometheus convention)
    app.include_router(metrics_router.router, prefix="")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000)
