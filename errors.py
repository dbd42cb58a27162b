# errors.py
class PortalError(Exception):
    """Base class for every failure the portal reports to a user."""
    status_code = 400

    def __init__(self, msg, redirect_to=None):
        super().__init__(msg)
        self.msg = msg
        # views redirect instead of answering with an error body when set
        self.redirect_to = redirect_to


class ValidationError(PortalError):
    status_code = 400


class LookupFailure(PortalError):
    status_code = 404


class NotAuthenticated(PortalError):
    status_code = 401


class ExamClosed(PortalError):
    status_code = 409


class ConcurrentUpdateError(PortalError):
    status_code = 409
