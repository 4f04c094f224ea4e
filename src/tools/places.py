import logging
import math
import re
from typing import List, Optional, Tuple

from agent.places import format_places_block
from models.schemas import (
    PlaceDetailsRequest,
    PlaceRecord,
    SearchPlaceByNameRequest,
    SearchPlacesNearbyRequest,
    TravelTimeRequest,
)
from tools import google_places
from tools.context import ToolContext

logger = logging.getLogger(__name__)

SEARCH_UNAVAILABLE = (
    "Error: Place search is currently unavailable. Tell the user you could not verify places right now "
    "and do not recommend specific places by name."
)

# Average speeds (km/h) for straight-line estimates, with a detour factor for real roads.
_ESTIMATE_SPEEDS = {"driving": 50.0, "walking": 5.0, "bicycling": 15.0, "transit": 30.0}
_DETOUR_FACTOR = 1.3
_COORD_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")


def _haversine_km(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    lat1, lon1 = p1
    lat2, lon2 = p2
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 6371.0 * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _parse_coords(value: str) -> Optional[Tuple[float, float]]:
    match = _COORD_RE.match(value or "")
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def _price_label(level: Optional[int]) -> str:
    return "$" * level if level else ""


def describe_place(place: PlaceRecord) -> str:
    parts = [place.name]
    if place.rating is not None:
        reviews = f" ({place.review_count} reviews)" if place.review_count else ""
        parts.append(f"rating {place.rating}{reviews}")
    if place.price_level:
        parts.append(_price_label(place.price_level))
    if place.address:
        parts.append(place.address)
    return " | ".join(parts)


def format_search_result(label: str, places: List[PlaceRecord]) -> str:
    lines = [f"Found {len(places)} places for {label}:"]
    for idx, place in enumerate(places, start=1):
        lines.append(f"{idx}. {describe_place(place)} (id: {place.id})")
    lines.append("")
    lines.append(format_places_block(places))
    return "\n".join(lines)


def _day_anchor(ctx: ToolContext, day_number: Optional[int]) -> Optional[str]:
    if day_number is None:
        return None
    day = ctx.find_day(day_number)
    if not day:
        return None
    for entry in day.timeline:
        if entry.location:
            return entry.location
    return None


async def search_place_by_name(req: SearchPlaceByNameRequest, ctx: ToolContext) -> str:
    area = req.location or ctx.trip.destination
    query = f"{req.query} {area}" if area and area.lower() not in req.query.lower() else req.query
    places = await google_places.search_text(query, ctx.google_api_key, max_results=5)
    if places is None:
        return SEARCH_UNAVAILABLE
    if not places:
        return f'No places found matching "{req.query}". Ask the user for a more specific name.'
    return format_search_result(f'"{req.query}"', places)


async def search_places_nearby(req: SearchPlacesNearbyRequest, ctx: ToolContext) -> str:
    area = req.location or _day_anchor(ctx, req.day_number) or ctx.trip.destination
    query = f"{req.category} near {area}"
    places = await google_places.search_text(
        query,
        ctx.google_api_key,
        max_results=req.max_results or 5,
        category=req.category,
    )
    if places is None:
        return SEARCH_UNAVAILABLE
    if not places:
        return f"No {req.category} found near {area}. Try a different category or area."
    return format_search_result(f"{req.category} near {area}", places)


async def get_place_details(req: PlaceDetailsRequest, ctx: ToolContext) -> str:
    details = await google_places.get_place(req.place_id, ctx.google_api_key)
    if details is None:
        return f"Error: Could not load details for place {req.place_id}."
    place = details["place"]
    lines = [describe_place(place)]
    if place.description:
        lines.append(place.description)
    if details.get("opening_hours"):
        lines.append("Opening hours:")
        lines.extend(f"  {row}" for row in details["opening_hours"])
    if details.get("website"):
        lines.append(f"Website: {details['website']}")
    if details.get("phone"):
        lines.append(f"Phone: {details['phone']}")
    lines.append("")
    lines.append(format_places_block([place]))
    return "\n".join(lines)


def _estimate(origin: Tuple[float, float], destination: Tuple[float, float], mode: str) -> str:
    km = _haversine_km(origin, destination) * _DETOUR_FACTOR
    minutes = max(1, round(km / _ESTIMATE_SPEEDS.get(mode, 50.0) * 60))
    return (
        f"Estimated {mode} travel: about {minutes} min for roughly {km:.1f} km "
        "(straight-line estimate; live routing was unavailable)."
    )


async def calculate_travel_time(req: TravelTimeRequest, ctx: ToolContext) -> str:
    result = await google_places.distance_matrix(req.origin, req.destination, req.mode, ctx.google_api_key)
    if result:
        return (
            f"Travel from {req.origin} to {req.destination} by {req.mode}: "
            f"{result['duration_text']} ({result['distance_text']})."
        )
    origin = _parse_coords(req.origin)
    destination = _parse_coords(req.destination)
    if origin and destination:
        return _estimate(origin, destination, req.mode)
    return f"Error: Could not calculate travel time between {req.origin} and {req.destination}."
