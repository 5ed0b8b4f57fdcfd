import time
from typing import Callable, Optional, Tuple, TypeVar

from src.shared.logging_utils import warning as log_warning

T = TypeVar("T")


def retry_with_backoff(
    operation: Callable[[], T],
    *,
    attempts: int = 3,
    delay: float = 1.5,
    backoff: float = 1.5,
    exceptions: Tuple[type, ...] = (Exception,),
) -> T:
    """Execute `operation` with simple exponential backoff."""
    last_exc: Optional[Exception] = None
    for attempt in range(attempts):
        try:
            return operation()
        except exceptions as exc:  # type: ignore[misc]
            last_exc = exc
            if attempt == attempts - 1:
                raise
            log_warning(None, "retry:attempt_failed", attempt=attempt + 1, error=str(exc))
            time.sleep(delay)
            delay *= backoff
    assert last_exc is not None
    raise last_exc
