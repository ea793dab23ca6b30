"""Correlate Loki log lines into a ranked failure diagnosis."""

__version__ = "0.1.0"


def __getattr__(name):
    if name == "LogCorrelationAgent":
        from .agents.correlation_agent import LogCorrelationAgent
        return LogCorrelationAgent
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = ['LogCorrelationAgent', '__version__']
