"""Domain errors raised by services and translated to HTTP responses by routers."""


class FinwrkError(Exception):
    """Base class for domain errors."""


class InvalidTransitionError(FinwrkError):
    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class InvariantViolationError(FinwrkError):
    """A write would break a data invariant (negative amount, overpayment, duplicate job)."""


class JobsUnavailableError(FinwrkError):
    """Background job store is unreachable; reminder features are disabled."""
