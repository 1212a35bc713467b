"""Exceptions raised by the dashboard core."""


class DashboardError(Exception):
    """Base class for dashboard failures."""


class InvalidSelection(DashboardError, ValueError):
    """A value was chosen on a disabled selector or outside its options."""


class BoundaryUnavailable(DashboardError):
    """Boundary geometry could not be fetched or was empty/malformed."""


class MetricLoadError(DashboardError):
    """A metric workbook was missing, unreadable or lacked required columns."""
