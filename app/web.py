from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.api import get_fleet
from services.fleet import FleetService


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    fleet: FleetService = Depends(get_fleet),
) -> HTMLResponse:
    devices = fleet.describe_all()
    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "devices": devices,
            "online_count": sum(1 for device in devices if device.online),
            "decay_interval": fleet.decay.interval,
        },
    )
