# teamhub/errors.py
"""
Domain errors raised by services and turned into JSON alerts by the
``errors`` blueprint. ``message`` is the generic text shown to the user;
``detail`` carries the raw reason (backend message, field errors) when known.
"""


class TeamHubError(Exception):
    status_code = 500
    message = "Something went wrong. Please try again."

    def __init__(self, detail=None, *, fields=None):
        super().__init__(detail or self.message)
        self.detail = detail
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "detail": self.detail}
        if self.fields:
            body["fields"] = self.fields
        return body


class AuthorizationDenied(TeamHubError):
    status_code = 403
    message = "You are not allowed to do that."


class RecordNotFound(TeamHubError):
    status_code = 404
    message = "The requested record was not found."


class ValidationFailed(TeamHubError):
    status_code = 422
    message = "Please check the highlighted fields."


class Conflict(TeamHubError):
    status_code = 409
    message = "That action conflicts with the current state."


class TransientFailure(TeamHubError):
    status_code = 503
    message = "Temporary problem talking to the database. Please retry."
