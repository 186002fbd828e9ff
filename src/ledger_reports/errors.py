"""Exceptions raised by the report pipeline."""


class ReportError(Exception):
    """Base class for report pipeline errors."""

    pass


class BoundaryValidationError(ReportError):
    """Request rejected before any user is processed."""

    pass


class InvalidPeriodKind(BoundaryValidationError):
    """Period kind is not 'weekly' or 'monthly'."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid report type {value!r}. Use 'weekly' or 'monthly'")


class InvalidReferenceDate(BoundaryValidationError):
    """Reference date is not an ISO date string."""

    pass


class UserNotFound(BoundaryValidationError):
    pass


class NoDestinationConfigured(BoundaryValidationError):
    """User has no WhatsApp number on file."""

    pass


class RunInProgressError(BoundaryValidationError):
    """Another batch run of the same kind holds the run lock."""

    pass


class ChannelUnavailableError(ReportError):
    """Outbound channel has no credentials configured."""

    pass
