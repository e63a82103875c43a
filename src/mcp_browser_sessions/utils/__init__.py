from .retry import RetryResult, retry_async

__all__ = ["RetryResult", "retry_async"]
