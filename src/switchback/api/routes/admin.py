from fastapi import APIRouter, Depends

from ...broker import Broker
from ...core.dependencies import get_broker
from ...models import TopicsResponse

router = APIRouter(tags=["Admin"])


@router.get("/topics", response_model=TopicsResponse)
async def list_topics(broker: Broker = Depends(get_broker)) -> TopicsResponse:
    """
    List every topic with its groups and their consumer counts.

    Note: This endpoint should be protected in production.
    """
    topics = broker.topics()
    return TopicsResponse(count=len(topics), topics=topics)
