from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Tuple, Union

from agent.stream import ToolInvocation


@dataclass(frozen=True)
class Requesting:
    """Awaiting the provider's next turn."""

    iteration: int = 1


@dataclass(frozen=True)
class Executing:
    """Running the tool invocations the provider asked for."""

    iteration: int
    invocations: Tuple[ToolInvocation, ...]


@dataclass(frozen=True)
class Done:
    iterations: int
    hit_limit: bool = False


LoopState = Union[Requesting, Executing, Done]


def advance(
    state: LoopState,
    *,
    invocations: Sequence[ToolInvocation] = (),
    max_iterations: int = 12,
) -> LoopState:
    """
    Transition function of the tool dispatch loop.

    ``invocations`` is only consulted when leaving ``Requesting``: it holds the
    tool calls decoded from the provider turn that just finished.
    """
    if isinstance(state, Requesting):
        if not invocations:
            return Done(iterations=state.iteration)
        return Executing(iteration=state.iteration, invocations=tuple(invocations))
    if isinstance(state, Executing):
        if state.iteration >= max_iterations:
            return Done(iterations=state.iteration, hit_limit=True)
        return Requesting(iteration=state.iteration + 1)
    return state
