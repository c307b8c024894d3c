
class DashboardError(Exception):
    pass

class NotFound(DashboardError):
    """An operation referenced an entity or aggregate id that does not exist."""

class ValidationError(DashboardError):
    """Malformed input, rejected before any recompute runs."""

class InvariantViolation(DashboardError):
    """A persisted derived field disagrees with its constituents. Always a defect."""
