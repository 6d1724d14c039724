from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

from dive_booking.exceptions import InvalidConfigurationError, PricingError, SubmissionError
from dive_booking.persistence.store import BookingStore, InMemoryBookingStore
from dive_booking.state.booking_state import BookingDraft, CombinationOrder, TripType
from dive_booking.state.catalog_state import Catalog, get_default_catalog
from dive_booking.tools.submission import submit_draft
from dive_booking.utils.costs import compute_price_quote
from dive_booking.utils.steps import step_label, steps_for


def _field_errors_response(exc: InvalidConfigurationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": str(exc), "errors": [e.model_dump() for e in exc.errors]},
    )


def create_app(catalog: Optional[Catalog] = None, store: Optional[BookingStore] = None) -> FastAPI:
    """
    Build the booking HTTP API around a catalog and a booking store.
    """
    app = FastAPI(title="Dive Booking")
    app.state.catalog = catalog or get_default_catalog()
    app.state.store = store or InMemoryBookingStore()

    @app.get("/api/steps")
    async def list_steps(trip_type: Optional[TripType] = None, combination_order: Optional[CombinationOrder] = None):
        steps = steps_for(trip_type, combination_order)
        return {"steps": [{"id": s, "label": step_label(s)} for s in steps]}

    @app.post("/api/quote")
    async def quote(draft: BookingDraft):
        try:
            configuration = draft.to_configuration()
        except InvalidConfigurationError as exc:
            return _field_errors_response(exc)
        try:
            result = compute_price_quote(configuration, app.state.catalog)
        except PricingError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        return {"quote": result.model_dump(mode="json"), "total_price": result.total_minor_units}

    @app.post("/api/bookings", status_code=201)
    async def create_booking(draft: BookingDraft):
        try:
            record, _ = submit_draft(draft, app.state.catalog, app.state.store)
        except InvalidConfigurationError as exc:
            return _field_errors_response(exc)
        except PricingError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        except SubmissionError:
            return JSONResponse(status_code=500, content={"error": "Failed to create booking"})
        return {"booking": record.model_dump(mode="json")}

    @app.get("/api/bookings")
    async def list_bookings():
        records = app.state.store.list_all()
        return {"bookings": [r.model_dump(mode="json") for r in records]}

    @app.get("/api/bookings/{booking_id}")
    async def get_booking(booking_id: int):
        record = app.state.store.get_by_id(booking_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Booking not found")
        return {"booking": record.model_dump(mode="json")}

    return app
