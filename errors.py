"""
Domain errors raised by the planner services.

Every error carries the HTTP status the API layer answers with, so route
handlers never need to translate them one by one.
"""


class TravelPlannerError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(TravelPlannerError):
    status_code = 400


class ProfileIncompleteError(TravelPlannerError):
    status_code = 400


class AuthenticationError(TravelPlannerError):
    status_code = 401


class NotFoundError(TravelPlannerError):
    status_code = 404


class ExportError(TravelPlannerError):
    status_code = 422


class PersistenceError(TravelPlannerError):
    status_code = 500


class LLMError(TravelPlannerError):
    status_code = 502


class SchemaError(LLMError):
    """The LLM answered, but not with the JSON shape we asked for."""


class LLMTimeoutError(LLMError):
    status_code = 504


class ImageSearchError(TravelPlannerError):
    status_code = 502


class WeatherError(TravelPlannerError):
    status_code = 502


class LLMNotConfiguredError(TravelPlannerError):
    status_code = 503
