from models.schemas import ClarificationRequest
from tools.context import ToolContext


async def ask_for_clarification(req: ClarificationRequest, ctx: ToolContext) -> str:
    """Hands the question back to the model so it ends the turn by asking the user."""
    if req.context:
        return f"{req.question}\n\nContext: {req.context}"
    return req.question
