from __future__ import annotations

"""
File: shuttle_dispatch/main.py
Purpose: FastAPI entrypoint for the shuttle dispatch core.
Key responsibilities:
- Wire the entity-store client, event transport and simulation orchestrator.
- Expose the read model and the ride/alert/rating operations over HTTP.
- Stream the read model to dashboard clients over WebSocket after each sync.
Key entrypoints:
- create_app(), build_runtime()
- /api/* endpoints, /ws
Config/env vars:
- STORE_URL, STORE_TOKEN, STORE_TIMEOUT_S
- EVENT_TRANSPORT, WEBHOOK_URL, WEBHOOK_INTERNAL_KEY, RABBITMQ_*
- SIM_* and the *_INTERVAL_S cadences
"""

from dataclasses import dataclass
import logging
import random
from typing import Any, Callable

from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import JSONResponse

from shuttle_dispatch import events
from shuttle_dispatch.errors import (
    AccessExpired,
    DispatchError,
    InvalidTransition,
    NetworkError,
    NoVehicleAvailable,
    NoVehiclesError,
    RecordNotFound,
    RideNotFound,
    StoreError,
    ValidationError,
)
from shuttle_dispatch.scheduler import AsyncioScheduler, SystemClock
from shuttle_dispatch.schemas import (
    AcknowledgeRequest,
    AlertCreateRequest,
    AssignRideRequest,
    PublicRideResponse,
    RatingRequest,
    RideCreateRequest,
    SimulationViewResponse,
    TransitionResponse,
    VehicleStatusRequest,
)
from shuttle_dispatch.settings import rabbit_url, settings
from shuttle_dispatch.sim.alerts import AlertDesk
from shuttle_dispatch.sim.entities import Actor, EmergencyAlert, Rating, Ride, SimulationView, Vehicle
from shuttle_dispatch.sim.fleet import FleetDesk
from shuttle_dispatch.sim.orchestrator import SimulationConfig, SimulationOrchestrator
from shuttle_dispatch.sim.tracking import GuestFeedback
from shuttle_dispatch.store_client import StoreClient
from shuttle_dispatch.ws import WSManager

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s shuttle-dispatch %(message)s")
logger = logging.getLogger("shuttle-api")

ERROR_STATUS: list[tuple[type[DispatchError], int]] = [
    (ValidationError, 422),
    (InvalidTransition, 409),
    (RecordNotFound, 404),
    (AccessExpired, 410),
    (NoVehiclesError, 409),
    (NoVehicleAvailable, 409),
    (NetworkError, 503),
    (StoreError, 503),
]


def status_for(exc: DispatchError) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


@dataclass
class Runtime:
    """Collaborators shared by the HTTP handlers."""
    store: Any
    orchestrator: SimulationOrchestrator
    feedback: GuestFeedback
    alerts: AlertDesk
    fleet: FleetDesk
    transport: Any = None

    @property
    def lifecycle(self):
        return self.orchestrator.lifecycle


def build_transport():
    """Select the event transport from EVENT_TRANSPORT."""
    if settings.event_transport == "amqp":
        return events.AmqpEventTransport(rabbit_url(), settings.exchange_name)
    if settings.event_transport == "http":
        return events.HttpWebhookTransport(settings.webhook_url, settings.webhook_internal_key)
    return None


def build_runtime() -> Runtime:
    store = StoreClient(settings.store_url, token=settings.store_token, timeout=settings.store_timeout_s)
    transport = build_transport()
    notifier = events.EventNotifier(transport)
    clock = SystemClock()
    actor = Actor(uid="shuttle-dispatch-service")

    def actor_provider() -> Actor | None:
        # Without credentials the store rejects every read.
        return actor if settings.store_token else None

    orchestrator = SimulationOrchestrator(
        store,
        AsyncioScheduler(),
        clock,
        actor_provider,
        notifier=notifier,
        rng=random.Random(settings.sim_seed),
        config=SimulationConfig.from_settings(settings),
    )
    return Runtime(
        store=store,
        orchestrator=orchestrator,
        feedback=GuestFeedback(store, notifier, clock),
        alerts=AlertDesk(store, notifier, clock),
        fleet=FleetDesk(store, notifier, clock),
        transport=transport,
    )


async def _resync(runtime: Runtime) -> None:
    # The write already succeeded; a failed refresh only delays the read model.
    try:
        await runtime.orchestrator.refresh_data()
    except NetworkError as exc:
        logger.warning("post-write refresh failed err=%s", exc)


async def _load_ride(runtime: Runtime, ride_id: str) -> Ride:
    record = await runtime.store.rides.get(ride_id)
    if not record:
        raise RideNotFound(f"ride {ride_id} not found")
    return Ride.model_validate(record)


async def _load_vehicle(runtime: Runtime, vehicle_id: str) -> Vehicle:
    record = await runtime.store.vehicles.get(vehicle_id)
    if not record:
        raise RecordNotFound(f"vehicle {vehicle_id} not found")
    return Vehicle.model_validate(record)


def create_app(runtime_factory: Callable[[], Runtime] = build_runtime) -> FastAPI:
    """Build the FastAPI app around one runtime instance."""
    app = FastAPI(title="shuttle-dispatch", version="1.0.0")
    ws_manager = WSManager()
    runtime = runtime_factory()
    app.state.runtime = runtime
    app.state.ws_manager = ws_manager

    async def broadcast_view(view: SimulationView) -> None:
        await ws_manager.broadcast("simulation.updated", SimulationViewResponse.from_view(view).model_dump(mode="json"))

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.warning("request failed path=%s err=%s", request.url.path, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc), "error": type(exc).__name__})

    @app.on_event("startup")
    async def startup_event() -> None:
        """Start the event transport and the idle background sync."""
        if runtime.transport is not None:
            try:
                await runtime.transport.start()
            except Exception as exc:  # noqa: BLE001
                logger.exception("event transport unavailable err=%s", exc)
        runtime.orchestrator.add_listener(broadcast_view)
        await runtime.orchestrator.open()
        logger.info("shuttle-dispatch started")

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await runtime.orchestrator.close()
        if runtime.transport is not None:
            await runtime.transport.close()
        if hasattr(runtime.store, "aclose"):
            await runtime.store.aclose()

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness/readiness endpoint."""
        return {"status": "ok"}

    @app.get("/api/simulation", response_model=SimulationViewResponse)
    async def simulation_view() -> SimulationViewResponse:
        return SimulationViewResponse.from_view(runtime.orchestrator.view())

    @app.post("/api/simulation/start", response_model=SimulationViewResponse)
    async def start_simulation() -> SimulationViewResponse:
        await runtime.orchestrator.start()
        return SimulationViewResponse.from_view(runtime.orchestrator.view())

    @app.post("/api/simulation/stop", response_model=SimulationViewResponse)
    async def stop_simulation() -> SimulationViewResponse:
        runtime.orchestrator.stop()
        return SimulationViewResponse.from_view(runtime.orchestrator.view())

    @app.post("/api/simulation/refresh", response_model=SimulationViewResponse)
    async def refresh_simulation() -> SimulationViewResponse:
        await runtime.orchestrator.refresh_data()
        return SimulationViewResponse.from_view(runtime.orchestrator.view())

    @app.post("/api/rides", response_model=Ride, status_code=201)
    async def create_ride(req: RideCreateRequest) -> Ride:
        ride = await runtime.lifecycle.create(req.model_dump())
        await _resync(runtime)
        return ride

    @app.post("/api/rides/{ride_id}/assign", response_model=TransitionResponse)
    async def assign_ride(ride_id: str, req: AssignRideRequest) -> TransitionResponse:
        ride = await _load_ride(runtime, ride_id)
        vehicle = await _load_vehicle(runtime, req.vehicle_id)
        result = await runtime.lifecycle.assign(ride, vehicle, driver_name=req.driver_name)
        await _resync(runtime)
        return TransitionResponse(ride=result.ride, vehicle=result.vehicle)

    @app.post("/api/rides/{ride_id}/start", response_model=TransitionResponse)
    async def start_ride(ride_id: str) -> TransitionResponse:
        ride = await _load_ride(runtime, ride_id)
        result = await runtime.lifecycle.start(ride)
        await _resync(runtime)
        return TransitionResponse(ride=result.ride)

    @app.post("/api/rides/{ride_id}/complete", response_model=TransitionResponse)
    async def complete_ride(ride_id: str) -> TransitionResponse:
        ride = await _load_ride(runtime, ride_id)
        result = await runtime.lifecycle.complete(ride)
        await _resync(runtime)
        return TransitionResponse(ride=result.ride, vehicle=result.vehicle)

    @app.post("/api/rides/{ride_id}/cancel", response_model=TransitionResponse)
    async def cancel_ride(ride_id: str) -> TransitionResponse:
        ride = await _load_ride(runtime, ride_id)
        result = await runtime.lifecycle.cancel(ride)
        await _resync(runtime)
        return TransitionResponse(ride=result.ride, vehicle=result.vehicle)

    @app.post("/api/rides/{ride_id}/rating", response_model=Rating, status_code=201)
    async def rate_ride(ride_id: str, req: RatingRequest) -> Rating:
        ride = await _load_ride(runtime, ride_id)
        rating = await runtime.feedback.submit_rating(ride, req.model_dump(exclude_none=True))
        await _resync(runtime)
        return rating

    @app.get("/api/public/rides/{token}", response_model=PublicRideResponse)
    async def public_ride(token: str) -> PublicRideResponse:
        ride = await runtime.feedback.find_public_ride(token)
        return PublicRideResponse.from_ride(ride)

    @app.post("/api/public/rides/{token}/rating", response_model=Rating, status_code=201)
    async def public_rate_ride(token: str, req: RatingRequest) -> Rating:
        ride = await runtime.feedback.find_public_ride(token)
        rating = await runtime.feedback.submit_rating(ride, req.model_dump(exclude_none=True))
        await _resync(runtime)
        return rating

    @app.post("/api/alerts", response_model=EmergencyAlert, status_code=201)
    async def create_alert(req: AlertCreateRequest) -> EmergencyAlert:
        alert = await runtime.alerts.raise_alert(req.alert_type, req.message, priority=req.priority)
        await _resync(runtime)
        return alert

    @app.post("/api/alerts/{alert_id}/resolve", response_model=EmergencyAlert)
    async def resolve_alert(alert_id: str) -> EmergencyAlert:
        record = await runtime.store.alerts.get(alert_id)
        if not record:
            raise RecordNotFound(f"alert {alert_id} not found")
        resolved = await runtime.alerts.resolve_alert(EmergencyAlert.model_validate(record))
        await _resync(runtime)
        return resolved

    @app.post("/api/vehicles/{vehicle_id}/status", response_model=Vehicle)
    async def set_vehicle_status(vehicle_id: str, req: VehicleStatusRequest) -> Vehicle:
        vehicle = await _load_vehicle(runtime, vehicle_id)
        updated = await runtime.fleet.set_status(vehicle, req.status)
        await _resync(runtime)
        return updated

    @app.post("/api/vehicles/{vehicle_id}/unassign-driver", response_model=Vehicle)
    async def unassign_driver(vehicle_id: str) -> Vehicle:
        vehicle = await _load_vehicle(runtime, vehicle_id)
        updated = await runtime.fleet.unassign_driver(vehicle)
        await _resync(runtime)
        return updated

    @app.post("/api/ratings/{rating_id}/acknowledge", response_model=Rating)
    async def acknowledge_rating(rating_id: str, req: AcknowledgeRequest | None = None) -> Rating:
        reviewer = req.reviewer if req is not None else "dispatcher"
        return await runtime.feedback.acknowledge_rating(rating_id, reviewer=reviewer)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """WebSocket endpoint streaming simulation.updated events."""
        await ws_manager.connect(websocket)
        try:
            await websocket.send_json(
                {"event_type": "simulation.updated", "data": SimulationViewResponse.from_view(runtime.orchestrator.view()).model_dump(mode="json")}
            )
            while True:
                await websocket.receive_text()
        except Exception:  # noqa: BLE001
            await ws_manager.disconnect(websocket)

    return app


app = create_app()
