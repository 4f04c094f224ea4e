import unittest

from models.schemas import (
    ActivityInput,
    AddActivityRequest,
    DayDetailsRequest,
    MoveActivityRequest,
    RemoveActivityRequest,
    UpdateActivityRequest,
)
from tests.helpers import sample_trip, seeded_stores
from tools.context import ToolContext
from tools.itinerary import add_activity_to_day, get_day_details, move_activity, remove_activity, update_activity


def _remove(identifier: str) -> RemoveActivityRequest:
    return RemoveActivityRequest(activity_identifier=identifier, day_number=1, require_confirmation=False)


class ItineraryToolTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.trip = sample_trip()
        self.trips, _ = seeded_stores(self.trip)

    async def context(self) -> ToolContext:
        plan = await self.trips.load_plan(self.trip.id)
        return ToolContext(trip=self.trip, user_id="user-1", plan=plan, trips=self.trips)

    async def stored_day(self, day_number: int):
        plan = await self.trips.load_plan(self.trip.id)
        return next(d for d in plan.itinerary if d.day == day_number)

    async def test_add_activity_keeps_timeline_sorted(self):
        req = AddActivityRequest(
            day_number=1,
            activity=ActivityInput(time="11:30", activity="Coffee tour", location="Heredia", icon="☕"),
        )

        result = await add_activity_to_day(req, await self.context())

        self.assertTrue(result.startswith('Successfully added "Coffee tour" at 11:30 on Day 1'))
        day = await self.stored_day(1)
        self.assertEqual([e.time for e in day.timeline], ["09:00", "11:30", "14:00"])
        self.assertEqual(day.timeline[1].duration_minutes, 90)

    async def test_add_activity_to_missing_day(self):
        req = AddActivityRequest(
            day_number=9,
            activity=ActivityInput(time="10:00", activity="Beach", location="Manuel Antonio", icon="🏖️"),
        )

        result = await add_activity_to_day(req, await self.context())

        self.assertEqual(result, "Error: Day 9 does not exist in the itinerary. The trip has 3 days.")

    async def test_update_activity_changes_time_in_place(self):
        req = UpdateActivityRequest(day_number=1, activity_identifier="museo", new_time="08:00")

        result = await update_activity(req, await self.context())

        self.assertIn("time 14:00 -> 08:00", result)
        day = await self.stored_day(1)
        self.assertEqual([e.id for e in day.timeline], ["a2", "a1"])
        self.assertEqual(len(day.timeline), 2)

    async def test_update_unknown_activity_lists_available(self):
        req = UpdateActivityRequest(day_number=1, activity_identifier="zipline", new_time="08:00")

        result = await update_activity(req, await self.context())

        self.assertIn("Available activities: Breakfast at Café Miel, Museo del Jade", result)

    async def test_move_activity_between_days(self):
        req = MoveActivityRequest(activity_identifier="Museo", current_day=1, new_day_number=2, new_time="10:00")

        result = await move_activity(req, await self.context())

        self.assertTrue(result.startswith('Successfully moved "Museo del Jade" from Day 1 to Day 2'))
        self.assertEqual([e.id for e in (await self.stored_day(1)).timeline], ["a1"])
        self.assertEqual([(e.id, e.time) for e in (await self.stored_day(2)).timeline], [("a2", "10:00")])

    async def test_move_activity_reports_conflict(self):
        req = MoveActivityRequest(activity_identifier="Museo", current_day=1, new_day_number=1, new_time="09:00")

        result = await move_activity(req, await self.context())

        self.assertTrue(result.startswith("Warning: There is already an activity at 09:00 on Day 1"))
        self.assertEqual((await self.stored_day(1)).timeline[1].time, "14:00")

    async def test_clearing_a_day_requires_confirmation_first(self):
        ask = RemoveActivityRequest(activity_identifier="all", day_number=1, require_confirmation=True)

        result = await remove_activity(ask, await self.context())

        self.assertTrue(result.startswith("CONFIRMATION_REQUIRED"))
        self.assertIn("Breakfast at Café Miel", result)
        self.assertEqual(len((await self.stored_day(1)).timeline), 2)
        plan = await self.trips.load_plan(self.trip.id)
        self.assertEqual(plan.version, 1)

        confirmed = RemoveActivityRequest(activity_identifier="all", day_number=1, require_confirmation=False)
        result = await remove_activity(confirmed, await self.context())

        self.assertEqual(result, "Successfully removed all 2 activities from Day 1.")
        self.assertEqual((await self.stored_day(1)).timeline, [])

    async def test_remove_single_activity(self):
        req = RemoveActivityRequest(activity_identifier="a1", day_number=1, require_confirmation=False)

        result = await remove_activity(req, await self.context())

        self.assertEqual(result, 'Successfully removed "Breakfast at Café Miel" from Day 1.')
        self.assertEqual([e.id for e in (await self.stored_day(1)).timeline], ["a2"])

    async def test_day_details_lists_schedule_and_busy_range(self):
        result = await get_day_details(DayDetailsRequest(day_number=1), await self.context())

        self.assertTrue(result.startswith("Day 1 (Arrival) - San José"))
        self.assertIn("1. 09:00 (90 min) - ☕ Breakfast at Café Miel @ Barrio Escalante", result)
        self.assertIn("Busy times: 09:00 - 14:00 (2 activities)", result)

    async def test_day_details_for_empty_day(self):
        result = await get_day_details(DayDetailsRequest(day_number=2), await self.context())

        self.assertIn("The schedule is currently empty", result)

    async def test_stale_snapshot_is_rejected(self):
        stale = await self.context()
        fresh = await self.context()
        await remove_activity(_remove("a1"), fresh)

        result = await remove_activity(_remove("a2"), stale)

        self.assertTrue(result.startswith("Error: The itinerary changed"))
        self.assertEqual([e.id for e in (await self.stored_day(1)).timeline], ["a2"])

    async def test_foreign_user_cannot_write(self):
        ctx = await self.context()
        ctx.user_id = "intruder"

        result = await remove_activity(_remove("a1"), ctx)

        self.assertEqual(result, "Error: Not allowed to remove the activity on this trip.")


if __name__ == "__main__":
    unittest.main()
