from __future__ import annotations


class HistEqError(Exception):
    """Base class for exceptions in this package."""

    pass


class ConfigurationError(HistEqError):
    """Raises when a run is configured with values the pipeline cannot honour.

    Detected before any device work is issued: invalid bin size, an empty
    image, a wrong channel count for the requested mode, or a pixel count
    the device counters cannot hold.
    """

    pass


class DeviceError(HistEqError):
    """Raises when the device layer fails to allocate, build or launch.

    Carries whatever diagnostic context the backend could collect.
    """

    def __init__(self, message: str, *, error_code: int | str | None = None, build_log: str | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.build_log = build_log

    def __str__(self) -> str:
        msg = super().__str__()
        if self.error_code is not None:
            msg = f"{msg} (code: {self.error_code})"
        return msg
