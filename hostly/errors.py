"""
Errors raised by hostly components.

Each error carries the HTTP status the API answers with. Project type
detection never raises; everything else propagates to the API boundary.
"""


class HostlyError(Exception):
    """Base class for hostly errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(HostlyError):
    status_code = 404


class AlreadyRunning(HostlyError):
    pass


class NotRunning(HostlyError):
    pass


class UnsupportedType(HostlyError):
    pass


class DependencyInstallFailed(HostlyError):
    pass


class SpawnFailed(HostlyError):
    pass


class PortsExhausted(HostlyError):
    pass


class SourceFetchFailed(HostlyError):
    pass


class DisallowedFileType(HostlyError):
    status_code = 400


class NameCollision(HostlyError):
    status_code = 400


class InvalidSiteName(HostlyError):
    status_code = 400


class MissingField(HostlyError):
    status_code = 400
