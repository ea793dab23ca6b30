"""Error taxonomy for a log analysis run."""


class AnalyzerError(Exception):
    """Base class for every error raised by the analyzer."""


class ConfigurationError(AnalyzerError):
    """Missing credentials/URL or an invalid mode, format or identifier set."""


class TransportError(AnalyzerError):
    """The log backend answered with a non-success status or was unreachable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(AnalyzerError):
    """A top-level backend response body could not be decoded."""
