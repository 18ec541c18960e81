class ValidationError(Exception):
    """Bad input shape."""

    def __init__(self, message="Invalid request data", fields=None):
        super().__init__(message)
        self.fields = fields or []


class MissingFieldsError(ValidationError):
    def __init__(self, fields):
        super().__init__("Missing required fields", fields)


class PolicyViolation(Exception):
    """A business rule refused the operation (deadline, limit, quota, status...)."""


class UnauthorizedError(Exception):
    pass


class NotFoundError(Exception):
    pass
