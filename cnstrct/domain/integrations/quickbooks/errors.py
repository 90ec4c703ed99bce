"""QuickBooks integration errors

Each error carries the HTTP status the API layer answers with.
"""

from typing import Optional


class QBOError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class QBOConfigError(QBOError):
    """Client credentials or proxy URL missing when a call needs them"""

    status_code = 500


class StateValidationError(QBOError):
    status_code = 400


class InvalidStateError(StateValidationError):
    """Unknown state, or state issued to another user (possible CSRF)"""


class ExpiredStateError(StateValidationError):
    """State older than its 10 minute lifetime"""


class TokenExchangeError(QBOError):
    status_code = 400


class ReauthenticationRequired(QBOError):
    """Refresh token expired or revoked; the user has to connect again"""

    status_code = 401


class TokenRefreshError(QBOError):
    status_code = 502


class ConnectionNotFoundError(QBOError):
    status_code = 404


class QBOAPIError(QBOError):
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None, response_data=None):
        super().__init__(message, status_code)
        self.response_data = response_data


class QBONetworkError(QBOError):
    status_code = 504
