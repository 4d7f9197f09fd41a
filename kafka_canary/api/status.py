# kafka_canary/api/status.py
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from kafka_canary.domain.models.canary import Status
from kafka_canary.domain.services.status_service import StatusService
from kafka_canary.domain.services.topic_service import TopicService

router = APIRouter(tags=["canary"])


class CanaryTopicInfo(BaseModel):
    topic: str
    state: str
    initialized: bool
    connected: bool
    assignments: List[int]
    leaders: Optional[dict[int, int]] = None


@router.get("/status", response_model=Status)
def get_status(request: Request) -> Status:
    """
    Delivery completeness over the trailing window:
      { consuming: { timeWindow, percentage } }
    `percentage` is -1 until enough samples exist.
    """
    svc: StatusService = request.app.state.status_service
    return svc.build_status()


@router.get("/canary", response_model=CanaryTopicInfo)
def get_canary(request: Request) -> CanaryTopicInfo:
    topics: TopicService = request.app.state.topic_service
    runner = getattr(request.app.state, "canary_runner", None)
    last = runner.last_result if runner is not None else None
    return CanaryTopicInfo(
        topic=topics.topic,
        state=topics.state.value,
        initialized=topics.initialized,
        connected=topics.connected,
        assignments=topics.assignments,
        leaders=last.leaders if last else None,
    )
