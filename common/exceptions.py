"""Base exception shared by the service layers of every app."""


class ServiceError(Exception):
    """A service-layer failure that maps onto an HTTP error response.

    Subclasses set ``code`` (a stable machine-readable identifier) and
    ``status_code`` (the HTTP status the API layer should answer with).
    """

    code = "service_error"
    status_code = 500

    def __init__(self, message="", code=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self):
        return self.message or self.code
