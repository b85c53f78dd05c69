"""Per-IP rate limiting for the expensive discovery endpoints."""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Each discovery request fans out into dozens of upstream queries
limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])
