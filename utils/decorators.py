# utils/decorators.py
"""
Decorators shared by the toolbox: HTTP retries, request error logging,
timing and argument type checks
"""
import functools
import inspect
import time
import logging
from typing import Callable, Iterable, Tuple, Type

import requests

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = (429, 502, 503, 504)


def _status_of(error: Exception):
    response = getattr(error, 'response', None)
    return getattr(response, 'status_code', None)


def retry_on_error(max_retries: int = 3,
                   delay: float = 1.0,
                   backoff_factor: float = 2.0,
                   exceptions: Tuple[Type[Exception], ...] = (requests.ConnectionError, requests.Timeout),
                   retry_statuses: Iterable[int] = TRANSIENT_STATUSES):
    """
    Retry with exponential backoff

    ``exceptions`` are always retried. An ``requests.HTTPError`` is retried
    only when its status is in ``retry_statuses``; any other answer is final.

    Usage:
        @retry_on_error(max_retries=2, delay=1.0)
        def fetch_remote_dataset(url, token):
            pass
    """
    statuses = frozenset(retry_statuses or ())

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay
            for attempt in range(1, max_retries + 2):
                try:
                    return func(*args, **kwargs)
                except requests.HTTPError as e:
                    if _status_of(e) not in statuses or attempt > max_retries:
                        raise
                    reason = f"HTTP {_status_of(e)}"
                except exceptions as e:
                    if attempt > max_retries:
                        logger.error(f"{func.__name__} gave up after {attempt} attempts: {str(e)}")
                        raise
                    reason = str(e) or type(e).__name__

                logger.warning(
                    f"⚠️ {func.__name__} attempt {attempt}/{max_retries + 1} failed ({reason}), "
                    f"retrying in {current_delay:.1f}s"
                )
                time.sleep(current_delay)
                current_delay *= backoff_factor

        return wrapper
    return decorator


def handle_request_errors(func: Callable) -> Callable:
    """
    Log HTTP failures with a hint before re-raising them

    Usage:
        @handle_request_errors
        def fetch_remote_dataset(url, token):
            pass
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except requests.Timeout as e:
            logger.error(f"Timeout in {func.__name__}: {str(e)}")
            raise
        except requests.ConnectionError as e:
            logger.error(f"Connection error in {func.__name__}: {str(e)}")
            logger.info("Check the DATASET_URL host and your network/VPN")
            raise
        except requests.HTTPError as e:
            logger.error(f"HTTP {_status_of(e)} from {func.__name__}: {str(e)}")
            raise

    return wrapper


def log_execution_time(func: Callable) -> Callable:
    """Log how long ``func`` took, also when it fails"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        logger.debug(f"{func.__name__} started")
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__name__} failed after {time.perf_counter() - start:.3f}s: {str(e)}")
            raise
        logger.info(f"⏱️ {func.__name__} took {time.perf_counter() - start:.3f}s")
        return result

    return wrapper


def validate_inputs(**type_checks):
    """
    Check argument types before the call

    A type or a tuple of types per argument name; a mismatch raises TypeError.

    Usage:
        @validate_inputs(xml_text=str, schema=dict)
        def map_payload(self, xml_text, schema):
            pass
    """
    def decorator(func: Callable) -> Callable:
        sig = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            bound = sig.bind(*args, **kwargs)
            for name, expected in type_checks.items():
                if name not in bound.arguments or isinstance(bound.arguments[name], expected):
                    continue
                names = ' or '.join(t.__name__ for t in (expected if isinstance(expected, tuple) else (expected,)))
                raise TypeError(
                    f"{func.__name__}() argument '{name}' must be {names}, "
                    f"not {type(bound.arguments[name]).__name__}"
                )
            return func(*args, **kwargs)

        return wrapper
    return decorator
