"""Rate limiting for the local gateway (slowapi, keyed by client address)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from ridesync.config import settings

limiter = Limiter(key_func=get_remote_address)

INTENT_LIMIT = settings.gateway_rate_limit
