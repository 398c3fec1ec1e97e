"""Exception types raised by gpotools."""


class GpoToolsError(Exception):
    """Base class for all gpotools errors."""


class PolFormatError(GpoToolsError):
    """A registry.pol buffer has a bad signature or truncated header."""


class AdmxParseError(GpoToolsError):
    """An .admx file could not be read or parsed as XML."""

    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ReportParseError(GpoToolsError):
    """A GPO XML report could not be parsed."""


class LgpoParseError(GpoToolsError):
    """An LGPO text record does not follow the expected layout."""


class ConfigError(GpoToolsError):
    """A configuration file is unreadable or has invalid content."""
