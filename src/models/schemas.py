from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Itinerary document (owned by the itinerary subsystem)


class TimelineEntry(CamelModel):
    id: str
    time: str
    activity: str
    location: str
    icon: str | None = None
    notes: str | None = None
    duration_minutes: int | None = 90
    place_id: str | None = None


class DayPlan(CamelModel):
    day: int
    title: str = ""
    subtitle: str | None = None
    timeline: list[TimelineEntry] = Field(default_factory=list)


class Accommodation(CamelModel):
    id: str
    name: str
    type: str = "hotel"
    area: str | None = None
    check_in: str
    check_out: str
    status: str = "planned"
    price_per_night: float | None = None
    notes: str | None = None
    google_place_id: str | None = None


class SavedIdea(CamelModel):
    id: str
    name: str
    category: str | None = None
    place_id: str | None = None
    address: str | None = None
    rating: float | None = None


class TripPlan(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    version: int = 1
    itinerary: list[DayPlan] = Field(default_factory=list)
    accommodations: list[Accommodation] = Field(default_factory=list)
    saved_ideas: list[SavedIdea] = Field(default_factory=list)


class Trip(CamelModel):
    id: str
    user_id: str
    destination: str
    origin: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    travelers: int = 1


# Places


class PlaceLocation(BaseModel):
    lat: float
    lng: float


class PlaceRecord(CamelModel):
    id: str
    name: str
    category: str | None = None
    rating: float | None = None
    review_count: int | None = None
    price_level: int | None = Field(default=None, ge=1, le=4)
    address: str | None = None
    description: str | None = None
    image_url: str | None = None
    location: PlaceLocation | None = None


# Transcript


class ToolCallRecord(CamelModel):
    tool_name: str
    tool_input: dict[str, Any] = Field(default_factory=dict)
    result: str
    rejected: bool = False


class Conversation(CamelModel):
    id: str
    user_id: str
    trip_id: str
    title: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Message(CamelModel):
    id: str
    conversation_id: str
    role: Literal["user", "assistant"]
    content: str
    tool_calls: list[ToolCallRecord] | None = None
    places_context: dict[str, PlaceRecord] | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class ChatRequest(CamelModel):
    trip_id: str | None = None
    conversation_id: str | None = None
    message: str | None = None


# Tool inputs. Field names are declared to the provider in camelCase.


class ToolInput(CamelModel):
    pass


class ActivityInput(ToolInput):
    time: str = Field(..., description='Start time in HH:MM (24-hour), e.g. "09:00" or "19:30".')
    activity: str = Field(..., description='Specific activity name, e.g. "Dinner at Casa Luna".')
    location: str = Field(..., description="Location name or address.")
    icon: str = Field(..., description="Emoji representing the activity type.")
    notes: str | None = Field(default=None, description="Optional notes for the activity.")
    duration_minutes: int | None = Field(default=None, description="Optional duration in minutes.")
    place_id: str | None = Field(default=None, description="Place id from a search result, when known.")


class AddActivityRequest(ToolInput):
    day_number: int = Field(..., description="1-based day number to add the activity to.")
    activity: ActivityInput


class UpdateActivityRequest(ToolInput):
    day_number: int = Field(..., description="Day number where the activity currently is.")
    activity_identifier: str = Field(..., description="Activity name or description that matches the timeline entry.")
    new_time: str | None = Field(default=None, description="New start time in HH:MM.")
    new_name: str | None = Field(default=None, description="New activity name.")
    notes: str | None = Field(default=None, description="Replacement notes.")
    duration_minutes: int | None = Field(default=None, description="New duration in minutes.")


class MoveActivityRequest(ToolInput):
    activity_identifier: str = Field(..., description="Activity name or description to move.")
    current_day: int = Field(..., description="Day number where the activity currently is.")
    new_day_number: int = Field(..., description="Destination day number.")
    new_time: str = Field(..., description="New start time in HH:MM.")


class RemoveActivityRequest(ToolInput):
    activity_identifier: str = Field(
        ..., description='Activity name or description to remove, or "all" to clear the whole day.'
    )
    day_number: int = Field(..., description="Day number where the activity is located.")
    require_confirmation: bool = Field(
        ...,
        description="True when the user has not yet explicitly confirmed this removal. MUST be true for clearing days or removing several activities.",
    )


class DayDetailsRequest(ToolInput):
    day_number: int = Field(..., description="1-based day number to inspect.")


class SearchPlaceByNameRequest(ToolInput):
    query: str = Field(..., description='Place name to look up, e.g. "Parque Nacional Manuel Antonio".')
    location: str | None = Field(default=None, description="Optional area to bias the search towards.")


class SearchPlacesNearbyRequest(ToolInput):
    category: str = Field(..., description='Kind of place, e.g. "restaurants", "cafes", "museums".')
    location: str | None = Field(default=None, description="Area or place to search around. Defaults to the trip destination.")
    day_number: int | None = Field(default=None, description="Optional day the results are meant for.")
    max_results: int | None = Field(default=5, description="Maximum number of results (1-10).")


class PlaceDetailsRequest(ToolInput):
    place_id: str = Field(..., description="Place id returned by a search tool.")


class TravelTimeRequest(ToolInput):
    origin: str = Field(..., description='Origin as a place name/address or "lat,lng".')
    destination: str = Field(..., description='Destination as a place name/address or "lat,lng".')
    mode: Literal["driving", "walking", "bicycling", "transit"] = Field(
        default="driving", description="Travel mode."
    )


class ClarificationRequest(ToolInput):
    question: str = Field(..., description="The clarifying question to ask the user.")
    context: str | None = Field(default=None, description="Optional context explaining why the question is needed.")


class SavedIdeasRequest(ToolInput):
    pass


class AddSavedIdeaRequest(ToolInput):
    idea_id: str = Field(..., description="Id of the saved idea.")
    day_number: int = Field(..., description="Day number to schedule the idea on.")
    time: str = Field(..., description="Start time in HH:MM.")


class RemoveSavedIdeaRequest(ToolInput):
    idea_id: str = Field(..., description="Id of the saved idea to remove from the list.")


class AccommodationSearchRequest(ToolInput):
    query: str = Field(..., description='Lodging search, e.g. "boutique hotels in La Fortuna".')
    location: str | None = Field(default=None, description="Optional area to bias the search towards.")


class AddAccommodationRequest(ToolInput):
    name: str = Field(..., description="Accommodation name.")
    check_in: str = Field(..., description="Check-in date YYYY-MM-DD.")
    check_out: str = Field(..., description="Check-out date YYYY-MM-DD.")
    type: str | None = Field(default="hotel", description="hotel, hostel, airbnb, resort, ...")
    area: str | None = Field(default=None, description="Neighbourhood or town.")
    google_place_id: str | None = Field(default=None, description="Place id from search_accommodations.")
    price_per_night: float | None = Field(default=None, description="Nightly price.")
    status: str | None = Field(default="planned", description="planned, booked or suggested.")
    notes: str | None = Field(default=None, description="Optional notes.")


class UpdateAccommodationRequest(ToolInput):
    accommodation_identifier: str = Field(..., description="Accommodation name or id.")
    check_in: str | None = Field(default=None, description="New check-in date YYYY-MM-DD.")
    check_out: str | None = Field(default=None, description="New check-out date YYYY-MM-DD.")
    status: str | None = Field(default=None, description="New status.")
    price_per_night: float | None = Field(default=None, description="New nightly price.")
    notes: str | None = Field(default=None, description="Replacement notes.")


class RemoveAccommodationRequest(ToolInput):
    accommodation_identifier: str = Field(..., description="Accommodation name or id.")
    require_confirmation: bool = Field(
        ..., description="True until the user has explicitly confirmed the removal."
    )


class AccommodationsRequest(ToolInput):
    pass
