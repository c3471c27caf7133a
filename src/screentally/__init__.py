"""screentally: daily usage, scroll and device summaries from raw interaction events."""

__version__ = "0.1.0"
