from .rate_limiter import HostThrottle, TokenBucket
from .retry_transport import RetryTransport

__all__ = ["HostThrottle", "RetryTransport", "TokenBucket"]
