"""Retry delay calculation for resilient operations."""


def calculate_retry_delay(attempt: int, base_seconds: float, strategy: str = "linear") -> float:
    """Calculate the pause before the next attempt.

    Args:
        attempt: Attempt number that just failed (1-based)
        base_seconds: Base delay in seconds
        strategy: Backoff strategy (linear, fixed)

    Returns:
        Delay in seconds
    """
    if strategy == "linear":
        delay = base_seconds * attempt
    elif strategy == "fixed":
        delay = base_seconds
    else:
        raise ValueError(f"Unknown backoff strategy: {strategy}")

    return float(max(0.0, delay))
