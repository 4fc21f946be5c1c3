# src/tagsync/util/retry.py: Decorators for retrying operations.
# This module provides a decorator that implements an exponential backoff
# strategy with jitter. It is applied to read-only API requests, which are
# safe to repeat; pushes are never retried.

import time
import random
from functools import wraps
from typing import Tuple, Type


def retry_with_backoff(
    retries=3,
    backoff_in_seconds=1,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
):
    def rwb(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            x = 0
            while True:
                try:
                    return f(*args, **kwargs)
                except retry_on:
                    if x < retries:
                        sleep = (backoff_in_seconds * 2 ** x +
                                 random.uniform(0, 1))
                        time.sleep(sleep)
                        x += 1
                    else:
                        raise
        return wrapper
    return rwb
