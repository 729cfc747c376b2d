class WorkdeskError(Exception):
    """Base class for domain errors surfaced to API callers."""

    status_code = 400


class NotFoundError(WorkdeskError):
    status_code = 404


class ValidationError(WorkdeskError):
    status_code = 422


class ConflictError(WorkdeskError):
    status_code = 409


class ConfigurationError(WorkdeskError):
    """A template or rule is configured in a way that cannot be evaluated."""

    status_code = 422
