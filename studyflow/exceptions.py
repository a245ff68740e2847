class StudyflowError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__name__


class ValidationError(StudyflowError):
    """Missing or invalid input (period, date range, timezone, ...)."""

    status_code = 400


class UnauthorizedError(StudyflowError):
    """No identity, or one that cannot be verified. Never defaults to a guest."""

    status_code = 401


class NotFoundError(StudyflowError):
    status_code = 404


class StoreUnavailable(StudyflowError):
    """Transient persistence failure. Callers may retry."""

    status_code = 503
