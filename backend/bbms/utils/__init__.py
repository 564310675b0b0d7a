from bbms.utils.locks import AsyncKeyedLock, KeyedLock
from bbms.utils.logger import setup_logging
from bbms.utils.retry import RetryPolicy, async_exponential_backoff_retry

__all__ = ["AsyncKeyedLock", "KeyedLock", "RetryPolicy", "async_exponential_backoff_retry", "setup_logging"]
