"""Rate limiting for the leave API using slowapi.

The module-level Limiter is wired into the app in main.py; write endpoints
that mutate balances opt into the tighter ``WRITE_LIMIT``. Limits are counted
per client address and request path.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

WRITE_LIMIT = "20/minute"

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["120/minute"],
)
