import logging
import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from levelsync.application.config import AppConfig, resolve_config
from levelsync.application.factory import build_tracker
from levelsync.application.tracker import LevelTracker
from levelsync.consts import VERSION
from levelsync.domain.errors import InvalidInput, PersistenceFailure
from levelsync.domain.models import DateState

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("levelsync.server")


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class ToggleState(BaseModel):
    index: int
    level: int
    label: str


class DateStateResponse(BaseModel):
    date: str
    toggles: list[ToggleState]
    updated_at: int
    stored: bool


class LevelRequest(BaseModel):
    level: int


class QueueResponse(BaseModel):
    length: int
    status: str
    online: bool
    head_id: str | None = None
    head_attempts: int | None = None


class ConnectivityRequest(BaseModel):
    online: bool


def get_tracker(request: Request) -> LevelTracker:
    return request.app.state.tracker


def _state_response(tracker: LevelTracker, date_key: str, state: DateState) -> DateStateResponse:
    return DateStateResponse(
        date=date_key,
        toggles=[
            ToggleState(index=i, level=lvl, label=tracker.label(lvl))
            for i, lvl in enumerate(state.levels)
        ],
        updated_at=state.updated_at,
        stored=tracker.table.has_state(date_key),
    )


def _queue_response(tracker: LevelTracker) -> QueueResponse:
    snap = tracker.snapshot()
    return QueueResponse(
        length=snap.length,
        status=snap.status.value,
        online=snap.online,
        head_id=snap.head.id if snap.head else None,
        head_attempts=snap.head.attempts if snap.head else None,
    )


def create_app(config: AppConfig | None = None) -> FastAPI:
    start_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"levelsync server v{VERSION} starting up...")
        tracker = build_tracker(config or resolve_config())
        tracker.start()
        app.state.tracker = tracker
        tracker.queue.trigger_drain()
        yield
        # Shutdown
        logger.info("levelsync server shutting down...")
        await tracker.stop()

    app = FastAPI(
        title="levelsync",
        description="Per-date level tracker with offline-tolerant sync.",
        version=VERSION,
        lifespan=lifespan,
    )

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Simple health check to verify server is reachable.
        """
        return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)

    @app.get("/version")
    async def get_version():
        return {"version": VERSION}

    @app.get("/dates/{date_key}", response_model=DateStateResponse)
    async def read_date(date_key: str, tracker: LevelTracker = Depends(get_tracker)):
        try:
            state = tracker.get_state(date_key)
        except InvalidInput as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        return _state_response(tracker, date_key, state)

    @app.post("/dates/{date_key}/toggles/{index}", response_model=DateStateResponse)
    async def toggle(date_key: str, index: int, tracker: LevelTracker = Depends(get_tracker)):
        """Cycle a toggle to its next level."""
        try:
            state = tracker.toggle(date_key, index)
        except InvalidInput as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        except PersistenceFailure as e:
            logger.error(f"Toggle failed: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        return _state_response(tracker, date_key, state)

    @app.put("/dates/{date_key}/toggles/{index}", response_model=DateStateResponse)
    async def set_level(
        date_key: str,
        index: int,
        req: LevelRequest,
        tracker: LevelTracker = Depends(get_tracker),
    ):
        try:
            state = tracker.set_level(date_key, index, req.level)
        except InvalidInput as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        except PersistenceFailure as e:
            logger.error(f"Set level failed: {e}")
            raise HTTPException(status_code=503, detail=str(e)) from e
        return _state_response(tracker, date_key, state)

    @app.get("/queue", response_model=QueueResponse)
    async def read_queue(tracker: LevelTracker = Depends(get_tracker)):
        return _queue_response(tracker)

    @app.post("/queue/flush", response_model=QueueResponse)
    async def flush(tracker: LevelTracker = Depends(get_tracker)):
        """Manual flush. Waits for any in-flight drain, then drains if online."""
        await tracker.queue.wait_for_drain()
        await tracker.flush()
        return _queue_response(tracker)

    @app.post("/connectivity", response_model=QueueResponse)
    async def connectivity(req: ConnectivityRequest, tracker: LevelTracker = Depends(get_tracker)):
        tracker.set_online(req.online)
        await tracker.queue.wait_for_drain()
        return _queue_response(tracker)

    return app


app = create_app()
