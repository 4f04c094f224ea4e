from typing import Optional

from models.schemas import (
    AddSavedIdeaRequest,
    RemoveSavedIdeaRequest,
    SavedIdea,
    SavedIdeasRequest,
    TimelineEntry,
)
from tools.context import ToolContext
from tools.itinerary import DEFAULT_DURATION_MINUTES, new_entry_id, save_or_error, sort_timeline


def _find_idea(ctx: ToolContext, idea_id: str) -> Optional[SavedIdea]:
    needle = idea_id.strip().lower()
    for idea in ctx.plan.saved_ideas:
        if idea.id == idea_id or idea.place_id == idea_id or idea.name.lower() == needle:
            return idea
    return None


async def get_saved_ideas(req: SavedIdeasRequest, ctx: ToolContext) -> str:
    ideas = ctx.plan.saved_ideas
    if not ideas:
        return "The saved ideas list is empty."
    lines = [f"Saved ideas ({len(ideas)}):"]
    for idea in ideas:
        details = [idea.category or "place"]
        if idea.rating is not None:
            details.append(f"rating {idea.rating}")
        if idea.address:
            details.append(idea.address)
        lines.append(f"- {idea.name} (id: {idea.id}) - {' | '.join(details)}")
    return "\n".join(lines)


async def add_saved_idea_to_day(req: AddSavedIdeaRequest, ctx: ToolContext) -> str:
    idea = _find_idea(ctx, req.idea_id)
    if not idea:
        return f'Error: No saved idea with id "{req.idea_id}". Use get_saved_ideas to list them.'
    day = ctx.find_day(req.day_number)
    if not day:
        return ctx.missing_day_message(req.day_number)

    day.timeline.append(
        TimelineEntry(
            id=new_entry_id(),
            time=req.time,
            activity=idea.name,
            location=idea.address or idea.name,
            notes=idea.category,
            duration_minutes=DEFAULT_DURATION_MINUTES,
            place_id=idea.place_id,
        )
    )
    sort_timeline(day)
    ctx.plan.saved_ideas = [i for i in ctx.plan.saved_ideas if i.id != idea.id]

    error = await save_or_error(ctx, "add the saved idea")
    if error:
        return error
    return f'Successfully added saved idea "{idea.name}" to Day {req.day_number} at {req.time}.'


async def remove_saved_idea(req: RemoveSavedIdeaRequest, ctx: ToolContext) -> str:
    idea = _find_idea(ctx, req.idea_id)
    if not idea:
        return f'Error: No saved idea with id "{req.idea_id}".'
    ctx.plan.saved_ideas = [i for i in ctx.plan.saved_ideas if i.id != idea.id]
    error = await save_or_error(ctx, "remove the saved idea")
    if error:
        return error
    return f'Removed "{idea.name}" from the saved ideas list.'
