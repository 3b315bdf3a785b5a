# services/client.py: outbound HTTP helpers shared by the games read and the Shopify Admin calls
from __future__ import annotations

import os
import time
import logging
from functools import wraps

import requests

log = logging.getLogger(__name__)

try:
    TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30").strip() or 30)
except ValueError:
    TIMEOUT = 30.0

RETRYABLE = (429, 500, 502, 503, 504)


def retry(max_attempts=3, base_delay=0.6, factor=2.0, allowed=RETRYABLE):
    """Retry on HTTPError with a retryable status, or on a connection error / timeout, until max_attempts."""
    def deco(fn):
        @wraps(fn)
        def inner(*a, **kw):
            delay = base_delay
            for i in range(1, max_attempts + 1):
                try:
                    return fn(*a, **kw)
                except requests.HTTPError as e:
                    st = e.response.status_code if e.response is not None else None
                    if i >= max_attempts or st not in allowed:
                        raise
                except (requests.ConnectionError, requests.Timeout):
                    if i >= max_attempts:
                        raise
                log.info("[retry] %s attempt %d failed, sleeping %.1fs", fn.__name__, i, delay)
                time.sleep(delay)
                delay *= factor
        return inner
    return deco


def http(method: str, url: str, **kw) -> requests.Response:
    kw.setdefault("timeout", TIMEOUT)
    r = requests.request(method, url, **kw)
    if r.status_code >= 400:
        log.error("HTTP %s %s -> %s", method, url, r.status_code)
        r.raise_for_status()
    return r
