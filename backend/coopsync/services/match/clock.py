import time


def now() -> float:
    """Wall clock in seconds; used for store expiry."""
    return time.time()


def now_ms() -> int:
    """Wall clock in milliseconds; used for timestamps sent to clients."""
    return int(now() * 1000)
