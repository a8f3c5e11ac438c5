"""
Exceptions of the renewal service.

Every error that can stop a request derives from RenewalError and carries
the HTTP status of the error page rendered for it (see
renewals.app_setup.exceptions). Validation problems are not exceptions:
they are messages on the form carrier (renewals.membership.forms).
"""


class RenewalError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(RenewalError):
    """Bad or missing startup configuration. The server must not start."""


class NotFound(RenewalError):
    status_code = 404


class MemberNotFound(NotFound):
    pass


class SaleNotFound(NotFound):
    pass


class StoreError(RenewalError):
    """The membership database failed or answered something unexpected."""


class GatewayError(RenewalError):
    """The payment gateway failed or returned an unusable session."""
    status_code = 502


class TemplateError(RenewalError):
    """An HTML template could not be loaded or rendered."""


class RequestDataError(RenewalError):
    """Hidden fields or a client reference that cannot have come from us."""
    status_code = 400
