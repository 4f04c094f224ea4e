import logging
import time
from typing import List, Optional

from agent.errors import PlanOwnershipError, StalePlanError
from models.schemas import (
    AddActivityRequest,
    DayDetailsRequest,
    DayPlan,
    MoveActivityRequest,
    RemoveActivityRequest,
    TimelineEntry,
    UpdateActivityRequest,
)
from tools.context import ToolContext

logger = logging.getLogger(__name__)

UNSCHEDULED = "TBD"
DEFAULT_DURATION_MINUTES = 90


def new_entry_id() -> str:
    return f"activity-{time.time_ns()}"


def _sort_key(entry: TimelineEntry):
    if not entry.time or entry.time == UNSCHEDULED:
        return (1, "")
    return (0, entry.time)


def sort_timeline(day: DayPlan) -> None:
    day.timeline.sort(key=_sort_key)


def find_activity(day: DayPlan, identifier: str) -> Optional[int]:
    needle = identifier.strip().lower()
    if not needle:
        return None
    for idx, entry in enumerate(day.timeline):
        if entry.id == identifier:
            return idx
        if needle in entry.activity.lower() or needle in entry.location.lower():
            return idx
    return None


def _available(day: DayPlan) -> str:
    names = ", ".join(entry.activity for entry in day.timeline)
    return names or "none"


async def save_or_error(ctx: ToolContext, action: str) -> Optional[str]:
    """Persist the snapshot; returns an error result on failure."""
    try:
        await ctx.save_plan()
    except StalePlanError as exc:
        logger.warning("Stale plan while trying to %s: %s", action, exc)
        return f"Error: The itinerary changed while trying to {action}. Check the day again and retry."
    except PlanOwnershipError as exc:
        logger.warning("Ownership check failed while trying to %s: %s", action, exc)
        return f"Error: Not allowed to {action} on this trip."
    return None


async def add_activity_to_day(req: AddActivityRequest, ctx: ToolContext) -> str:
    day = ctx.find_day(req.day_number)
    if not day:
        return ctx.missing_day_message(req.day_number)

    activity = req.activity
    entry = TimelineEntry(
        id=new_entry_id(),
        time=activity.time,
        activity=activity.activity,
        location=activity.location,
        icon=activity.icon,
        notes=activity.notes,
        duration_minutes=activity.duration_minutes or DEFAULT_DURATION_MINUTES,
        place_id=activity.place_id,
    )
    day.timeline.append(entry)
    sort_timeline(day)

    error = await save_or_error(ctx, "add the activity")
    if error:
        return error
    return (
        f'Successfully added "{entry.activity}" at {entry.time} on Day {req.day_number} ({day.title}). '
        "The activity has been added to the itinerary."
    )


async def update_activity(req: UpdateActivityRequest, ctx: ToolContext) -> str:
    day = ctx.find_day(req.day_number)
    if not day:
        return ctx.missing_day_message(req.day_number)
    idx = find_activity(day, req.activity_identifier)
    if idx is None:
        return (
            f'Error: Could not find an activity matching "{req.activity_identifier}" on Day {req.day_number}. '
            f"Available activities: {_available(day)}"
        )

    entry = day.timeline[idx]
    changes: List[str] = []
    if req.new_time and req.new_time != entry.time:
        changes.append(f"time {entry.time} -> {req.new_time}")
        entry.time = req.new_time
    if req.new_name and req.new_name != entry.activity:
        changes.append(f'name "{entry.activity}" -> "{req.new_name}"')
        entry.activity = req.new_name
    if req.notes is not None and req.notes != entry.notes:
        changes.append("notes")
        entry.notes = req.notes
    if req.duration_minutes and req.duration_minutes != entry.duration_minutes:
        changes.append(f"duration {req.duration_minutes} min")
        entry.duration_minutes = req.duration_minutes
    if not changes:
        return f'No changes were needed for "{entry.activity}" on Day {req.day_number}.'
    sort_timeline(day)

    error = await save_or_error(ctx, "update the activity")
    if error:
        return error
    return f'Successfully updated "{entry.activity}" on Day {req.day_number}: {", ".join(changes)}.'


async def move_activity(req: MoveActivityRequest, ctx: ToolContext) -> str:
    source = ctx.find_day(req.current_day)
    if not source:
        return f"Error: Day {req.current_day} does not exist in the itinerary."
    target = ctx.find_day(req.new_day_number)
    if not target:
        return f"Error: Day {req.new_day_number} does not exist in the itinerary."

    idx = find_activity(source, req.activity_identifier)
    if idx is None:
        return (
            f'Error: Could not find an activity matching "{req.activity_identifier}" on Day {req.current_day}. '
            f"Available activities: {_available(source)}"
        )
    entry = source.timeline[idx]

    conflict = next(
        (e for e in target.timeline if e.time == req.new_time and e.time != UNSCHEDULED and e.id != entry.id),
        None,
    )
    if conflict:
        return (
            f"Warning: There is already an activity at {req.new_time} on Day {req.new_day_number} "
            f"({conflict.activity}). Please choose a different time or confirm you want to proceed."
        )

    source.timeline.pop(idx)
    entry.time = req.new_time
    target.timeline.append(entry)
    sort_timeline(source)
    sort_timeline(target)

    error = await save_or_error(ctx, "move the activity")
    if error:
        return error
    return (
        f'Successfully moved "{entry.activity}" from Day {req.current_day} '
        f"to Day {req.new_day_number} at {req.new_time}."
    )


async def remove_activity(req: RemoveActivityRequest, ctx: ToolContext) -> str:
    day = ctx.find_day(req.day_number)
    if not day:
        return f"Error: Day {req.day_number} does not exist in the itinerary."

    clear_all = req.activity_identifier.strip().lower() in {"all", "*", "everything"}
    if clear_all:
        if not day.timeline:
            return f"Day {req.day_number} has no activities to remove."
        targets = list(day.timeline)
    else:
        idx = find_activity(day, req.activity_identifier)
        if idx is None:
            return (
                f'Error: Could not find an activity matching "{req.activity_identifier}" on Day {req.day_number}. '
                f"Available activities: {_available(day)}"
            )
        targets = [day.timeline[idx]]

    if req.require_confirmation:
        listed = ", ".join(f'"{e.activity}" ({e.time})' for e in targets)
        return (
            f"CONFIRMATION_REQUIRED: Are you sure you want to remove {listed} from Day {req.day_number}? "
            "This action cannot be undone. Ask the user to confirm before calling remove_activity again "
            "with requireConfirmation=false."
        )

    remove_ids = {e.id for e in targets}
    day.timeline = [e for e in day.timeline if e.id not in remove_ids]

    error = await save_or_error(ctx, "remove the activity")
    if error:
        return error
    if clear_all:
        return f"Successfully removed all {len(targets)} activities from Day {req.day_number}."
    return f'Successfully removed "{targets[0].activity}" from Day {req.day_number}.'


async def get_day_details(req: DayDetailsRequest, ctx: ToolContext) -> str:
    day = ctx.find_day(req.day_number)
    if not day:
        return ctx.missing_day_message(req.day_number)

    header = f"Day {req.day_number}"
    if day.title:
        header += f" ({day.title})"
    if day.subtitle:
        header += f" - {day.subtitle}"
    if not day.timeline:
        return f"{header}\n\nThe schedule is currently empty. No activities have been added yet."

    lines = []
    for idx, entry in enumerate(day.timeline, start=1):
        time_label = entry.time or UNSCHEDULED
        duration = f" ({entry.duration_minutes} min)" if entry.duration_minutes else ""
        icon = f"{entry.icon} " if entry.icon else ""
        line = f"{idx}. {time_label}{duration} - {icon}{entry.activity} @ {entry.location}"
        if entry.place_id:
            line += f" [place id: {entry.place_id}]"
        if entry.notes:
            line += f"\n   Notes: {entry.notes}"
        lines.append(line)

    busy = sorted(e.time for e in day.timeline if e.time and e.time != UNSCHEDULED)
    busy_info = ""
    if busy:
        busy_info = f"\n\nBusy times: {busy[0]} - {busy[-1]} ({len(busy)} activities)"
    return f"{header}\n\nCurrent Schedule:\n" + "\n".join(lines) + busy_info
