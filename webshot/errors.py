"""Exception hierarchy for capture, authentication and persistence failures."""

from __future__ import annotations


class WebshotError(Exception):
    """Base class for all webshot errors."""


class ConfigurationError(WebshotError):
    """Malformed or incomplete configuration (auth config, file format, label)."""


class NavigationError(WebshotError):
    """The target (or login page) could not be reached."""


class AuthenticationError(WebshotError):
    """Authentication was attempted and failed."""


class ComparisonError(WebshotError):
    """The previous record could not be read or decoded for diffing."""


class PersistenceError(WebshotError):
    """A capture record could not be written."""


class BrowserNotInitializedError(WebshotError):
    """capture() was called before the browser session was started."""
