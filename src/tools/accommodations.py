import logging
import uuid
from datetime import date, timedelta
from typing import List, Optional

from models.schemas import (
    Accommodation,
    AccommodationSearchRequest,
    AccommodationsRequest,
    AddAccommodationRequest,
    RemoveAccommodationRequest,
    UpdateAccommodationRequest,
)
from tools import google_places
from tools.context import ToolContext
from tools.itinerary import save_or_error
from tools.places import SEARCH_UNAVAILABLE, format_search_result

logger = logging.getLogger(__name__)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _invalid_range(check_in: str, check_out: str) -> Optional[str]:
    start, end = _parse_date(check_in), _parse_date(check_out)
    if not start or not end:
        return "Error: Dates must use the YYYY-MM-DD format."
    if end <= start:
        return "Error: Check-out must be after check-in."
    return None


def _find(ctx: ToolContext, identifier: str) -> Optional[Accommodation]:
    needle = identifier.strip().lower()
    for acc in ctx.plan.accommodations:
        if acc.id == identifier or acc.google_place_id == identifier:
            return acc
    for acc in ctx.plan.accommodations:
        if needle and needle in acc.name.lower():
            return acc
    return None


def uncovered_nights(accommodations: List[Accommodation], start: Optional[str], end: Optional[str]) -> List[date]:
    """Nights between trip start and end (exclusive) with no accommodation booked."""
    first, last = _parse_date(start), _parse_date(end)
    if not first or not last or last <= first:
        return []
    covered = set()
    for acc in accommodations:
        check_in, check_out = _parse_date(acc.check_in), _parse_date(acc.check_out)
        if not check_in or not check_out:
            continue
        night = check_in
        while night < check_out:
            covered.add(night)
            night += timedelta(days=1)
    gaps = []
    night = first
    while night < last:
        if night not in covered:
            gaps.append(night)
        night += timedelta(days=1)
    return gaps


async def search_accommodations(req: AccommodationSearchRequest, ctx: ToolContext) -> str:
    area = req.location or ctx.trip.destination
    query = req.query if not area or area.lower() in req.query.lower() else f"{req.query} in {area}"
    places = await google_places.search_text(
        query, ctx.google_api_key, included_type="lodging", category="lodging"
    )
    if places is None:
        return SEARCH_UNAVAILABLE
    if not places:
        return f'No accommodations found for "{req.query}".'
    return format_search_result(f'"{req.query}"', places)


async def add_accommodation(req: AddAccommodationRequest, ctx: ToolContext) -> str:
    invalid = _invalid_range(req.check_in, req.check_out)
    if invalid:
        return invalid
    acc = Accommodation(
        id=f"acc-{uuid.uuid4().hex[:12]}",
        name=req.name,
        type=req.type or "hotel",
        area=req.area,
        check_in=req.check_in,
        check_out=req.check_out,
        status=req.status or "planned",
        price_per_night=req.price_per_night,
        notes=req.notes,
        google_place_id=req.google_place_id,
    )
    ctx.plan.accommodations.append(acc)
    ctx.plan.accommodations.sort(key=lambda a: a.check_in)
    error = await save_or_error(ctx, "add the accommodation")
    if error:
        return error
    return f'Successfully added accommodation "{acc.name}" from {acc.check_in} to {acc.check_out}.'


async def update_accommodation(req: UpdateAccommodationRequest, ctx: ToolContext) -> str:
    acc = _find(ctx, req.accommodation_identifier)
    if not acc:
        names = ", ".join(a.name for a in ctx.plan.accommodations) or "none"
        return f'Error: No accommodation matching "{req.accommodation_identifier}". Current accommodations: {names}'

    check_in = req.check_in or acc.check_in
    check_out = req.check_out or acc.check_out
    invalid = _invalid_range(check_in, check_out)
    if invalid:
        return invalid
    acc.check_in, acc.check_out = check_in, check_out
    if req.status:
        acc.status = req.status
    if req.price_per_night is not None:
        acc.price_per_night = req.price_per_night
    if req.notes is not None:
        acc.notes = req.notes
    ctx.plan.accommodations.sort(key=lambda a: a.check_in)

    error = await save_or_error(ctx, "update the accommodation")
    if error:
        return error
    return f'Successfully updated "{acc.name}" ({acc.check_in} to {acc.check_out}, {acc.status}).'


async def remove_accommodation(req: RemoveAccommodationRequest, ctx: ToolContext) -> str:
    acc = _find(ctx, req.accommodation_identifier)
    if not acc:
        return f'Error: No accommodation matching "{req.accommodation_identifier}".'
    if req.require_confirmation:
        return (
            f'CONFIRMATION_REQUIRED: Are you sure you want to remove "{acc.name}" '
            f"({acc.check_in} to {acc.check_out})? Ask the user to confirm before calling "
            "remove_accommodation again with requireConfirmation=false."
        )
    ctx.plan.accommodations = [a for a in ctx.plan.accommodations if a.id != acc.id]
    error = await save_or_error(ctx, "remove the accommodation")
    if error:
        return error
    return f'Successfully removed accommodation "{acc.name}".'


async def get_accommodations(req: AccommodationsRequest, ctx: ToolContext) -> str:
    accommodations = ctx.plan.accommodations
    lines = []
    if not accommodations:
        lines.append("No accommodations have been added yet.")
    else:
        lines.append(f"Accommodations ({len(accommodations)}):")
        for acc in accommodations:
            price = f", {acc.price_per_night:g}/night" if acc.price_per_night is not None else ""
            area = f" in {acc.area}" if acc.area else ""
            lines.append(
                f"- {acc.name} ({acc.type}{area}) {acc.check_in} to {acc.check_out}, {acc.status}{price} [id: {acc.id}]"
            )

    gaps = uncovered_nights(accommodations, ctx.trip.start_date, ctx.trip.end_date)
    if gaps:
        lines.append("")
        lines.append("Nights without accommodation: " + ", ".join(night.isoformat() for night in gaps))
    elif ctx.trip.start_date and ctx.trip.end_date and accommodations:
        lines.append("")
        lines.append("Every night of the trip is covered.")
    return "\n".join(lines)
