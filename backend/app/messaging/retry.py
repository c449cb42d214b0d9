"""Retry decision for provider HTTP calls."""


def should_retry(status_code: int, attempt: int, max_retries: int = 3) -> bool:
    """Retry only server-side failures (5xx, 429) until attempts run out."""
    if attempt >= max_retries:
        return False
    return status_code >= 500 or status_code == 429


def backoff_seconds(attempt: int, base: float = 1.0, cap: float = 30.0) -> float:
    """Exponential backoff: base, 2*base, 4*base ... capped."""
    return min(cap, base * (2 ** max(0, attempt - 1)))
