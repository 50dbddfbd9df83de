# main.py
from dotenv import load_dotenv
load_dotenv()

import logging
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from arrivals.errors import FlightNotFound
from arrivals.models import Flight, PassResult, ScheduleStatus, StatusReport
from arrivals.timeutils import format_time_of_day, to_z
from arrivals.tracker import FlightTracker

log = logging.getLogger(__name__)

# -------------------- App --------------------
app = FastAPI(
    title="TLV Arrivals Tracker API",
    version="1.0.0",
    description="Ben-Gurion arrivals reconciliation: status, schedule control and flight subscriptions",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_tracker() -> FlightTracker:
    return FlightTracker.from_settings()


# -------------------- Schemas --------------------
class TrackRequest(BaseModel):
    flight_numbers: List[str] = Field(..., min_length=1, description="e.g. ['LY086', 'BA 456']")


class TrackResponse(BaseModel):
    tracked: List[str]
    already_tracked: List[str]
    not_found: List[str]


# -------------------- Helpers --------------------
def format_flight(f: Flight, tracker: FlightTracker) -> Dict[str, Any]:
    tz = tracker.clock.tz
    return {
        "id": f.id,
        "flight_number": f.flight_number,
        "status": f.status,
        "sta": f.sta,
        "eta": f.eta,
        "sta_local": format_time_of_day(f.sta, tz),
        "eta_local": format_time_of_day(f.eta, tz),
        "eta_utc": to_z(f.eta),
        "city": f.city,
        "airline": f.airline,
    }


# -------------------- Routes --------------------
@app.get("/")
def root():
    return {"message": "✅ Arrivals tracker API is running.", "version": "1.0.0"}


@app.get("/status", response_model=StatusReport)
def get_status(tracker: FlightTracker = Depends(get_tracker)):
    return tracker.status_report()


@app.get("/schedule", response_model=ScheduleStatus)
def get_schedule(tracker: FlightTracker = Depends(get_tracker)):
    return tracker.schedule_status()


@app.post("/schedule/reset", response_model=ScheduleStatus)
def reset_schedule(tracker: FlightTracker = Depends(get_tracker)):
    return tracker.reset_schedule()


@app.post("/refresh", response_model=PassResult)
def refresh(tracker: FlightTracker = Depends(get_tracker)):
    try:
        return tracker.trigger_pass()
    except SQLAlchemyError as e:
        log.exception("Manual refresh failed")
        raise HTTPException(status_code=500, detail=f"Refresh failed: {e.__class__.__name__}")


@app.post("/admin/rebuild-schema", response_model=ScheduleStatus)
def rebuild_schema(
    confirm: bool = Query(False, description="Must be true: drops every table"),
    tracker: FlightTracker = Depends(get_tracker),
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Pass confirm=true to drop and recreate all tables")
    return tracker.rebuild_schema()


@app.get("/flights", response_model=List[dict])
def list_flights(
    status: Optional[str] = Query(None, description="Exact status, e.g. LANDED"),
    number: Optional[str] = Query(None, description="Flight number, e.g. LY086"),
    tracker: FlightTracker = Depends(get_tracker),
):
    tracker.flights.invalidate()
    flights = tracker.flights.get_all()
    if status:
        flights = [f for f in flights if f.status.upper() == status.strip().upper()]
    if number:
        wanted = number.replace(" ", "").upper()
        flights = [f for f in flights if f.flight_number == wanted]
    return [format_flight(f, tracker) for f in flights]


@app.get("/subscriptions/{subscriber}", response_model=List[dict])
def list_tracked(subscriber: str, tracker: FlightTracker = Depends(get_tracker)):
    return [format_flight(f, tracker) for f in tracker.tracked_flights(subscriber)]


@app.post("/subscriptions/{subscriber}", response_model=TrackResponse)
def track(subscriber: str, body: TrackRequest, tracker: FlightTracker = Depends(get_tracker)):
    outcome = tracker.track_many(subscriber, body.flight_numbers)
    return TrackResponse(
        tracked=[f.id for f in outcome.tracked],
        already_tracked=[f.id for f in outcome.already_tracked],
        not_found=outcome.not_found,
    )


@app.put("/subscriptions/{subscriber}/{flight_id}")
def subscribe(subscriber: str, flight_id: str, tracker: FlightTracker = Depends(get_tracker)):
    created = tracker.subscribe(subscriber, flight_id)
    return {"flight_id": flight_id, "created": created}


@app.delete("/subscriptions/{subscriber}")
def clear_tracked(subscriber: str, tracker: FlightTracker = Depends(get_tracker)):
    return {"cleared": tracker.clear_tracked(subscriber)}


@app.delete("/subscriptions/{subscriber}/{flight_id}")
def untrack(subscriber: str, flight_id: str, tracker: FlightTracker = Depends(get_tracker)):
    if not tracker.untrack(subscriber, flight_id):
        raise HTTPException(status_code=404, detail=f"{subscriber} is not tracking {flight_id}")
    return {"untracked": flight_id}


@app.get("/subscriptions/{subscriber}/suggestions")
def suggestions(
    subscriber: str,
    page: int = Query(0, ge=0),
    tracker: FlightTracker = Depends(get_tracker),
):
    result = tracker.suggestions(subscriber, page)
    return {
        "page": result.page,
        "total": result.total,
        "has_previous": result.has_previous,
        "has_next": result.has_next,
        "flights": [format_flight(f, tracker) for f in result.flights],
    }


# -------------------- Error Handlers --------------------
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
            "timestamp": datetime.now().isoformat(),
        },
    )


@app.exception_handler(FlightNotFound)
async def flight_not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"error": str(exc), "status_code": 404, "timestamp": datetime.now().isoformat()},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8080)
