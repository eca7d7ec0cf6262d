class ItineraryError(Exception):
    """Base class for failures surfaced to the HTTP layer."""

    status_code = 500
    title = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ItineraryError):
    status_code = 404
    title = "Not Found"


class ValidationError(ItineraryError):
    status_code = 400
    title = "Validation failed"


class RemoteServiceError(ItineraryError):
    status_code = 502
    title = "Remote service failure"


class ConversionTimeoutError(ItineraryError):
    status_code = 504
    title = "Conversion timed out"


class TemplateError(ItineraryError):
    status_code = 500
    title = "Document rendering failed"
