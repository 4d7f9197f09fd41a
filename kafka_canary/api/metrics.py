from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

from kafka_canary.domain.services.metric_service import CanaryMetrics

router = APIRouter()


@router.get("/metrics")
def metrics(request: Request):
    sink: CanaryMetrics = getattr(request.app.state, "canary_metrics", None)
    if sink is None:
        return Response(content=b"", media_type=CONTENT_TYPE_LATEST)
    return Response(sink.render(), media_type=CONTENT_TYPE_LATEST)
