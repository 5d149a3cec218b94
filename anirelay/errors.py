"""Exceptions raised by the relays."""


class RelayError(Exception):
    """A request the relay refuses to forward."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class MissingParameter(RelayError):
    status_code = 400


class InvalidParameter(RelayError):
    status_code = 400


class ConfigError(ValueError):
    """Raised when a configuration value cannot be interpreted."""
