import logging
from typing import Any, Dict, List, Optional, TypedDict

import httpx

from models.schemas import PlaceLocation, PlaceRecord

logger = logging.getLogger(__name__)

PLACES_BASE_URL = "https://places.googleapis.com/v1"
DISTANCE_MATRIX_URL = "https://maps.googleapis.com/maps/api/distancematrix/json"

_PLACE_FIELDS = [
    "id",
    "displayName",
    "formattedAddress",
    "location",
    "rating",
    "userRatingCount",
    "priceLevel",
    "primaryType",
    "primaryTypeDisplayName",
    "photos",
    "editorialSummary",
]
_DETAIL_FIELDS = _PLACE_FIELDS + [
    "regularOpeningHours",
    "websiteUri",
    "nationalPhoneNumber",
]

PRICE_LEVELS = {
    "PRICE_LEVEL_INEXPENSIVE": 1,
    "PRICE_LEVEL_MODERATE": 2,
    "PRICE_LEVEL_EXPENSIVE": 3,
    "PRICE_LEVEL_VERY_EXPENSIVE": 4,
}


class PlaceDetails(TypedDict, total=False):
    place: PlaceRecord
    opening_hours: List[str]
    website: Optional[str]
    phone: Optional[str]


class TravelTime(TypedDict):
    duration_seconds: int
    distance_meters: int
    duration_text: str
    distance_text: str


def _headers(api_key: str, fields: List[str], prefix: str = "") -> Dict[str, str]:
    return {
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": ",".join(f"{prefix}{f}" for f in fields),
    }


def _photo_url(photo_name: str, api_key: str) -> str:
    return f"{PLACES_BASE_URL}/{photo_name}/media?maxWidthPx=400&key={api_key}"


def to_place_record(raw: Dict[str, Any], api_key: str, category: Optional[str] = None) -> Optional[PlaceRecord]:
    place_id = raw.get("id")
    name = (raw.get("displayName") or {}).get("text")
    if not place_id or not name:
        return None
    loc = raw.get("location") or {}
    location = None
    if "latitude" in loc and "longitude" in loc:
        location = PlaceLocation(lat=float(loc["latitude"]), lng=float(loc["longitude"]))
    photos = raw.get("photos") or []
    image_url = _photo_url(photos[0]["name"], api_key) if photos and photos[0].get("name") else None
    return PlaceRecord(
        id=place_id,
        name=name,
        category=category or (raw.get("primaryTypeDisplayName") or {}).get("text") or raw.get("primaryType"),
        rating=raw.get("rating"),
        review_count=raw.get("userRatingCount"),
        price_level=PRICE_LEVELS.get(raw.get("priceLevel") or ""),
        address=raw.get("formattedAddress"),
        description=(raw.get("editorialSummary") or {}).get("text"),
        image_url=image_url,
        location=location,
    )


async def search_text(
    query: str,
    api_key: Optional[str],
    *,
    included_type: Optional[str] = None,
    max_results: int = 5,
    category: Optional[str] = None,
) -> Optional[List[PlaceRecord]]:
    """
    Text search against the Google Places API. Returns None when the API is
    not configured or the call fails, and an empty list when nothing matched.
    """
    if not query or not api_key:
        return None
    body: Dict[str, Any] = {"textQuery": query, "maxResultCount": max(1, min(max_results, 10))}
    if included_type:
        body["includedType"] = included_type
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.post(
                f"{PLACES_BASE_URL}/places:searchText",
                json=body,
                headers=_headers(api_key, _PLACE_FIELDS, prefix="places."),
            )
            resp.raise_for_status()
        data = resp.json()
    except Exception as exc:
        logger.warning("Place search failed for %s: %s", query, exc)
        return None
    places = []
    for raw in data.get("places") or []:
        record = to_place_record(raw, api_key, category=category)
        if record:
            places.append(record)
    return places


async def get_place(place_id: str, api_key: Optional[str]) -> Optional[PlaceDetails]:
    if not place_id or not api_key:
        return None
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(
                f"{PLACES_BASE_URL}/places/{place_id}",
                headers=_headers(api_key, _DETAIL_FIELDS),
            )
            resp.raise_for_status()
        data = resp.json()
    except Exception as exc:
        logger.warning("Place details lookup failed for %s: %s", place_id, exc)
        return None
    record = to_place_record(data, api_key)
    if not record:
        return None
    hours = (data.get("regularOpeningHours") or {}).get("weekdayDescriptions") or []
    return {
        "place": record,
        "opening_hours": list(hours),
        "website": data.get("websiteUri"),
        "phone": data.get("nationalPhoneNumber"),
    }


async def distance_matrix(
    origin: str, destination: str, mode: str, api_key: Optional[str]
) -> Optional[TravelTime]:
    if not api_key:
        return None
    params = {
        "origins": origin,
        "destinations": destination,
        "mode": mode,
        "key": api_key,
    }
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(DISTANCE_MATRIX_URL, params=params)
            resp.raise_for_status()
        data = resp.json()
        element = data["rows"][0]["elements"][0]
        if element.get("status") != "OK":
            return None
        return {
            "duration_seconds": int(element["duration"]["value"]),
            "distance_meters": int(element["distance"]["value"]),
            "duration_text": element["duration"]["text"],
            "distance_text": element["distance"]["text"],
        }
    except Exception as exc:
        logger.warning("Travel time lookup failed for %s -> %s: %s", origin, destination, exc)
        return None
