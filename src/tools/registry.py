from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from models.schemas import (
    AccommodationSearchRequest,
    AccommodationsRequest,
    AddAccommodationRequest,
    AddActivityRequest,
    AddSavedIdeaRequest,
    ClarificationRequest,
    DayDetailsRequest,
    MoveActivityRequest,
    PlaceDetailsRequest,
    RemoveAccommodationRequest,
    RemoveActivityRequest,
    RemoveSavedIdeaRequest,
    SavedIdeasRequest,
    SearchPlaceByNameRequest,
    SearchPlacesNearbyRequest,
    ToolInput,
    TravelTimeRequest,
    UpdateAccommodationRequest,
    UpdateActivityRequest,
)
from tools import accommodations, clarification, ideas, itinerary, places
from tools.context import ToolContext

ToolHandler = Callable[[Any, ToolContext], Awaitable[str]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: Type[ToolInput]
    handler: ToolHandler
    returns_places: bool = False

    def input_schema(self) -> Dict[str, Any]:
        schema = self.input_model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        schema.setdefault("properties", {})
        return schema

    @property
    def required_fields(self) -> List[str]:
        return list(self.input_schema().get("required", []))

    def missing_fields(self, payload: Optional[Dict[str, Any]]) -> List[str]:
        payload = payload or {}
        return [name for name in self.required_fields if name not in payload or payload[name] is None]

    def to_anthropic(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }


TOOL_SPECS: List[ToolSpec] = [
    ToolSpec(
        name="add_activity_to_day",
        description="Adds a NEW activity to a specific day of the itinerary (restaurant, attraction, tour, ...). Use get_day_details first to avoid time conflicts. Never use it to change an existing activity (use update_activity) or to record lodging (use add_accommodation). Include placeId when the activity comes from a search result.",
        input_model=AddActivityRequest,
        handler=itinerary.add_activity_to_day,
    ),
    ToolSpec(
        name="update_activity",
        description="Updates an EXISTING activity's time, name, notes or duration without creating a duplicate. Identify the activity by name or description on the given day.",
        input_model=UpdateActivityRequest,
        handler=itinerary.update_activity,
    ),
    ToolSpec(
        name="move_activity",
        description="Moves an existing activity to a different day and/or time. Reports a conflict instead of moving when the target slot is taken.",
        input_model=MoveActivityRequest,
        handler=itinerary.move_activity,
    ),
    ToolSpec(
        name="remove_activity",
        description='Removes an activity from a day, or every activity when activityIdentifier is "all". IMPORTANT: for destructive actions (clearing a day, several activities, anything important) set requireConfirmation=true first; nothing is removed and a confirmation question comes back. Only call again with requireConfirmation=false after the user explicitly confirms.',
        input_model=RemoveActivityRequest,
        handler=itinerary.remove_activity,
    ),
    ToolSpec(
        name="get_day_details",
        description="Returns the current schedule of a day, including times, locations and busy range. Use this BEFORE changing a day to understand its current state.",
        input_model=DayDetailsRequest,
        handler=itinerary.get_day_details,
    ),
    ToolSpec(
        name="search_place_by_name",
        description="Looks up a specific named place (e.g. a restaurant or park) to verify it exists and get its place id, rating, price level and address. Results include place ids for inline references.",
        input_model=SearchPlaceByNameRequest,
        handler=places.search_place_by_name,
        returns_places=True,
    ),
    ToolSpec(
        name="search_places_nearby",
        description="Finds places of a category (restaurants, cafes, museums, beaches, ...) near a location. When no location is given it uses the day's activities or the trip destination. Only recommend places returned by this or other search tools.",
        input_model=SearchPlacesNearbyRequest,
        handler=places.search_places_nearby,
        returns_places=True,
    ),
    ToolSpec(
        name="get_place_details",
        description="Fetches detailed information (opening hours, website, phone, summary) for a place id returned by a search tool.",
        input_model=PlaceDetailsRequest,
        handler=places.get_place_details,
        returns_places=True,
    ),
    ToolSpec(
        name="calculate_travel_time",
        description='Calculates travel time and distance between two places or "lat,lng" coordinates for a travel mode (driving, walking, bicycling, transit).',
        input_model=TravelTimeRequest,
        handler=places.calculate_travel_time,
    ),
    ToolSpec(
        name="ask_for_clarification",
        description="Asks the user a clarifying question when the request is ambiguous or missing information. Use this instead of guessing.",
        input_model=ClarificationRequest,
        handler=clarification.ask_for_clarification,
    ),
    ToolSpec(
        name="get_saved_ideas",
        description="Lists the user's saved ideas: places saved for later that are not in the itinerary yet.",
        input_model=SavedIdeasRequest,
        handler=ideas.get_saved_ideas,
    ),
    ToolSpec(
        name="add_saved_idea_to_day",
        description="Schedules a saved idea on a day at a given time, keeping its place data, and removes it from the saved list.",
        input_model=AddSavedIdeaRequest,
        handler=ideas.add_saved_idea_to_day,
    ),
    ToolSpec(
        name="remove_saved_idea",
        description="Removes an idea from the saved ideas list without scheduling it.",
        input_model=RemoveSavedIdeaRequest,
        handler=ideas.remove_saved_idea,
    ),
    ToolSpec(
        name="search_accommodations",
        description="Searches hotels, hostels and other lodging. Use this (never search_places_nearby) for anything about where to sleep.",
        input_model=AccommodationSearchRequest,
        handler=accommodations.search_accommodations,
        returns_places=True,
    ),
    ToolSpec(
        name="add_accommodation",
        description="Adds lodging to the trip with check-in/check-out dates. Lodging is NOT an itinerary activity; never create check-in activities.",
        input_model=AddAccommodationRequest,
        handler=accommodations.add_accommodation,
    ),
    ToolSpec(
        name="update_accommodation",
        description="Updates an existing accommodation's dates, status, price or notes.",
        input_model=UpdateAccommodationRequest,
        handler=accommodations.update_accommodation,
    ),
    ToolSpec(
        name="remove_accommodation",
        description="Removes an accommodation. Set requireConfirmation=true until the user explicitly confirms.",
        input_model=RemoveAccommodationRequest,
        handler=accommodations.remove_accommodation,
    ),
    ToolSpec(
        name="get_accommodations",
        description="Lists current accommodations and the nights of the trip that have no lodging yet.",
        input_model=AccommodationsRequest,
        handler=accommodations.get_accommodations,
    ),
]

TOOLS_BY_NAME: Dict[str, ToolSpec] = {spec.name: spec for spec in TOOL_SPECS}
