"""Errors raised by data sources."""

from __future__ import annotations

from datetime import timedelta


def _fraction(value: int, divisor: int) -> str:
    whole, rest = divmod(value, divisor)
    if not rest:
        return str(whole)
    width = len(str(divisor)) - 1
    return f"{whole}.{str(rest).rjust(width, '0').rstrip('0')}"


def _format_duration(duration: timedelta) -> str:
    """Render a duration compactly, e.g. ``5m0s``, ``1h0m0s``, ``1.5s``, ``250ms``."""
    micros = (duration.days * 86_400 + duration.seconds) * 1_000_000 + duration.microseconds
    nanos = micros * 1_000
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)
    if nanos == 0:
        return "0s"
    if nanos < 1_000:
        return f"{sign}{nanos}ns"
    if nanos < 1_000_000:
        return f"{sign}{_fraction(nanos, 1_000)}µs"
    if nanos < 1_000_000_000:
        return f"{sign}{_fraction(nanos, 1_000_000)}ms"
    hours, rest = divmod(nanos, 3_600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    seconds = _fraction(rest, 1_000_000_000)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


class SourceError(Exception):
    """An error reported by a data source, tagged with the source and a code."""

    def __init__(self, source: str, code: str, message: str) -> None:
        self.source = source
        self.code = code
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"[{self.source}] {self.code}: {self.message}"


class RateLimitError(SourceError):
    """The source refused a request because a rate limit was reached."""

    def __init__(self, source: str, retry_after: timedelta) -> None:
        self.retry_after = retry_after
        super().__init__(
            source,
            "RATE_LIMIT_EXCEEDED",
            f"Rate limit exceeded, retry after {_format_duration(retry_after)}",
        )


class NetworkError(SourceError):
    """A transport-level failure while talking to the source."""

    def __init__(self, source: str, message: str, retryable: bool) -> None:
        self.retryable = retryable
        super().__init__(source, "NETWORK_ERROR", message)


class ParseError(SourceError):
    """The source returned data that could not be decoded."""

    def __init__(self, source: str, message: str, raw_data: str) -> None:
        self.raw_data = raw_data
        super().__init__(source, "PARSE_ERROR", message)