import time
from datetime import timedelta

from fastapi import APIRouter, Depends, Request

from ... import __version__
from ...core.config import Settings
from ...core.dependencies import get_settings
from ...models import ServiceState

router = APIRouter(tags=["Status"])


@router.get("/status", response_model=ServiceState)
async def status(request: Request, settings: Settings = Depends(get_settings)) -> ServiceState:
    """
    Report service status, uptime and version.

    This is the only call answered while the server is in maintenance mode.
    """
    uptime = timedelta(seconds=time.monotonic() - request.app.state.started)
    return ServiceState(
        status="maintenance" if settings.maintenance else "ok",
        uptime=str(uptime),
        version=__version__,
    )
