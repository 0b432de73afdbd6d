from __future__ import annotations

"""Exception taxonomy.

Absence of a match is never an exception: unmatched names and races are
returned as values with diagnostics attached. Exceptions are reserved for
configuration and connectivity failures.
"""


class TurflinkError(Exception):
    """Base class for turflink errors."""

    pass


class ConfigurationError(TurflinkError):
    """Raised when required credentials or the alias table are missing."""

    pass


class UpstreamFetchError(TurflinkError):
    """Raised by a feed adapter when one upstream call fails."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class UnresolvedNameError(TurflinkError):
    """Raised only when a caller asks for an unresolved name to be fatal."""

    def __init__(self, name: str):
        super().__init__(f"No canonical track name found for: {name!r}")
        self.name = name
