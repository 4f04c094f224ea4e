class AgentError(Exception):
    """Base class for errors raised by the travel agent core."""


class ProviderStreamError(AgentError):
    """The LLM provider reported an error inside its event stream."""


class StalePlanError(AgentError):
    """A plan save was attempted against an outdated version of the trip plan."""

    def __init__(self, trip_id: str, expected_version: int, current_version: int):
        super().__init__(
            f"Plan for trip {trip_id} changed (expected version {expected_version}, found {current_version})"
        )
        self.trip_id = trip_id
        self.expected_version = expected_version
        self.current_version = current_version


class PlanOwnershipError(AgentError):
    """The caller does not own the trip whose plan is being written."""


class PersistenceError(AgentError):
    """The conversation record could not be created or read."""
