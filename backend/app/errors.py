from typing import Dict, List, Optional


class ScheduleError(Exception):
    """Base class for errors raised by the repositories and the planner."""


class ValidationError(ScheduleError):
    """Bad input shape or ordering, e.g. start after end or an empty name."""


class NotFound(ScheduleError):
    """The project or task id no longer resolves."""


class StoreUnavailable(ScheduleError):
    """Transport or authentication failure talking to the backing store."""


class PartialBatchFailure(ScheduleError):
    """Some items of a bulk operation failed while others succeeded.

    ``failed`` maps each failed item key to its error message, ``succeeded``
    lists the keys that went through. Successful items are not rolled back.
    """

    def __init__(self, action: str, failed: Dict[str, str], succeeded: Optional[List[str]] = None):
        self.action = action
        self.failed = dict(failed)
        self.succeeded = list(succeeded or [])
        super().__init__(
            f"{action}: {len(self.failed)} item(s) failed, {len(self.succeeded)} succeeded "
            f"(failed: {', '.join(sorted(self.failed))})"
        )

    @property
    def failed_ids(self) -> List[str]:
        return list(self.failed)
