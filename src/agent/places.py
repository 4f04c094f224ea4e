from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from models.schemas import Message, PlaceRecord

logger = logging.getLogger(__name__)

PLACES_FENCE = "places"
PLACES_BLOCK_RE = re.compile(r"```places[ \t]*\n(?P<body>.*?)\n?```", re.DOTALL)
PLACE_GUIDANCE_HEADER = (
    "PLACE REFERENCES: when you mention one of these places, write its exact markup "
    "inline (double brackets, including the place: prefix)."
)


class PlaceDirectory:
    """Ordered map of place id -> display data, built up while a turn runs."""

    def __init__(self, places: Optional[Iterable[PlaceRecord]] = None):
        self._places: Dict[str, PlaceRecord] = {}
        for place in places or []:
            self.register(place)

    def register(self, place: PlaceRecord) -> bool:
        """Add or refresh a place; returns True when the id was not known yet."""
        is_new = place.id not in self._places
        self._places[place.id] = place
        return is_new

    def merge(self, other: "PlaceDirectory") -> None:
        for place in other:
            self.register(place)

    def ids(self) -> List[str]:
        return list(self._places)

    def __contains__(self, place_id: object) -> bool:
        return place_id in self._places

    def __iter__(self) -> Iterator[PlaceRecord]:
        return iter(list(self._places.values()))

    def __len__(self) -> int:
        return len(self._places)

    def to_payload(self) -> Dict[str, Dict[str, Any]]:
        return {
            place_id: place.model_dump(by_alias=True, exclude_none=True)
            for place_id, place in self._places.items()
        }

    def snapshot(self) -> Dict[str, PlaceRecord]:
        return dict(self._places)

    @classmethod
    def from_messages(cls, messages: Iterable[Message]) -> "PlaceDirectory":
        directory = cls()
        for message in messages:
            for place in (message.places_context or {}).values():
                directory.register(place)
        return directory


def canonical_markup(place_id: str) -> str:
    return f"[[place:{place_id}]]"


def format_places_block(places: Iterable[PlaceRecord]) -> str:
    """Render place results as the fenced block that ``extract_places`` reads back."""
    payload = [place.model_dump(by_alias=True, exclude_none=True) for place in places]
    return f"```{PLACES_FENCE}\n{json.dumps(payload, ensure_ascii=False)}\n```"


def parse_places_blocks(text: str) -> List[PlaceRecord]:
    places: List[PlaceRecord] = []
    for match in PLACES_BLOCK_RE.finditer(text or ""):
        try:
            items = json.loads(match.group("body"))
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unparseable places block: %s", exc)
            continue
        if isinstance(items, dict):
            items = [items]
        if not isinstance(items, list):
            continue
        for item in items:
            try:
                places.append(PlaceRecord.model_validate(item))
            except ValidationError as exc:
                logger.warning("Ignoring malformed place entry: %s", exc)
    return places


def extract_places(tool_result: str, directory: PlaceDirectory) -> Tuple[str, List[str]]:
    """
    Register every place found in the result's fenced ``places`` blocks and
    append markup guidance so the model's next text uses ``[[place:ID]]``.

    Returns the augmented result and the ids that were new to the directory.
    """
    places = parse_places_blocks(tool_result)
    if not places:
        return tool_result, []

    new_ids: List[str] = []
    hints: List[str] = []
    seen: set[str] = set()
    for place in places:
        if directory.register(place):
            new_ids.append(place.id)
        if place.id in seen:
            continue
        seen.add(place.id)
        hints.append(f"- {place.name}: {canonical_markup(place.id)}")

    guidance = "\n".join([PLACE_GUIDANCE_HEADER, *hints])
    return f"{tool_result}\n\n{guidance}", new_ids


def _variant_pattern(place_id: str) -> re.Pattern[str]:
    # One or two opening brackets, optional "place:" tag, the id, one or two
    # closing brackets. The canonical form matches too and maps onto itself.
    return re.compile(
        r"(?<!\[)\[{1,2}\s*(?:[Pp]lace\s*:\s*)?" + re.escape(place_id) + r"\s*\]{1,2}(?!\])"
    )


def normalize_place_references(text: str, directory: PlaceDirectory) -> str:
    """Rewrite near-miss place markup for known ids to ``[[place:ID]]``."""
    if not text or not len(directory):
        return text
    for place_id in directory.ids():
        text = _variant_pattern(place_id).sub(canonical_markup(place_id), text)
    return text
