from __future__ import annotations

import logging

from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

cache = Cache()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["1000 per day", "120 per hour"],
)
