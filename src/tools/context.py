from dataclasses import dataclass
from typing import Optional

from agent.memory import TripStore
from models.schemas import DayPlan, Trip, TripPlan


@dataclass
class ToolContext:
    """
    What a tool body sees: the trip, the caller and a plan snapshot read
    right before the tool ran.
    """

    trip: Trip
    user_id: str
    plan: TripPlan
    trips: TripStore
    google_api_key: Optional[str] = None

    def find_day(self, day_number: int) -> Optional[DayPlan]:
        for day in self.plan.itinerary:
            if day.day == day_number:
                return day
        return None

    def missing_day_message(self, day_number: int) -> str:
        return (
            f"Error: Day {day_number} does not exist in the itinerary. "
            f"The trip has {len(self.plan.itinerary)} days."
        )

    async def save_plan(self) -> TripPlan:
        """Write the snapshot back; the store rejects it if another write landed first."""
        self.plan = await self.trips.save_plan(self.trip.id, self.user_id, self.plan)
        return self.plan
