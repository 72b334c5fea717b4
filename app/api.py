"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.schemas import DeviceView, PowerResponse, TransferRequest, TransferResponse
from services.errors import (
    DeviceNotFoundError,
    ForbiddenError,
    InsufficientFundsError,
    MalformedRequestError,
    UnauthorizedError,
)
from services.fleet import FleetService, build_default_fleet
from services.identity import OwnerIdentity
from services.ledger import PowerResult

router = APIRouter()


def get_fleet() -> FleetService:
    return build_default_fleet()


def require_device(
    x_device_id: Optional[str] = Header(default=None),
    x_device_key: Optional[str] = Header(default=None),
    fleet: FleetService = Depends(get_fleet),
) -> str:
    try:
        return fleet.credentials.require(x_device_id, x_device_key)
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
        ) from exc


def require_owner(
    authorization: Optional[str] = Header(default=None),
    fleet: FleetService = Depends(get_fleet),
) -> OwnerIdentity:
    try:
        return fleet.tokens.verify_header(authorization)
    except UnauthorizedError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
        ) from exc


def _power_response(result: PowerResult) -> PowerResponse:
    return PowerResponse(
        ok=result.ok,
        device_id=result.device_id,
        is_on=result.is_on,
        message=result.message,
    )


@router.post(
    "/api/device/on",
    response_model=PowerResponse,
    response_model_exclude_none=True,
    summary="Switch the calling device on if it has energy.",
)
async def device_on(
    device_id: str = Depends(require_device),
    fleet: FleetService = Depends(get_fleet),
) -> PowerResponse:
    result = await fleet.ledger.power_on(device_id)
    return _power_response(result)


@router.post(
    "/api/device/off",
    response_model=PowerResponse,
    response_model_exclude_none=True,
    summary="Switch the calling device off.",
)
async def device_off(
    device_id: str = Depends(require_device),
    fleet: FleetService = Depends(get_fleet),
) -> PowerResponse:
    result = await fleet.ledger.power_off(device_id)
    return _power_response(result)


@router.post(
    "/api/share",
    response_model=TransferResponse,
    summary="Transfer energy from the caller's bulb to another bulb.",
)
async def share_energy(
    request: TransferRequest,
    owner: OwnerIdentity = Depends(require_owner),
    fleet: FleetService = Depends(get_fleet),
) -> TransferResponse:
    try:
        result = await fleet.ledger.transfer(
            owner.bulb_id, request.from_id, request.to_id, request.amount
        )
    except MalformedRequestError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    except DeviceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=exc.message) from exc
    except InsufficientFundsError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc

    return TransferResponse(
        from_id=result.from_id,
        to_id=result.to_id,
        energy_remaining=result.energy_remaining,
        energy_received=result.energy_received,
    )


@router.get(
    "/api/devices",
    response_model=list[DeviceView],
    summary="List every device with its power, energy and presence.",
)
async def list_devices(fleet: FleetService = Depends(get_fleet)) -> list[DeviceView]:
    return fleet.describe_all()


@router.get(
    "/api/devices/{device_id}",
    response_model=DeviceView,
    summary="Fetch one device's power, energy and presence.",
)
async def get_device(
    device_id: str,
    fleet: FleetService = Depends(get_fleet),
) -> DeviceView:
    try:
        return fleet.describe(device_id)
    except DeviceNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.message,
        ) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(fleet: FleetService = Depends(get_fleet)) -> dict[str, str]:
    return {"status": "ok", "decay": "running" if fleet.decay.running else "stopped"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
