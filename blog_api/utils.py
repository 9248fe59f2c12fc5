import math
import re
from typing import Tuple

from fastapi import Request

WORDS_PER_MINUTE = 200
DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
MAX_PAGE = 1_000_000


def get_client_ip(request: Request) -> str:
    """Best-effort caller address, preferring the reverse proxy headers."""
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def estimate_reading_time(content: str) -> int:
    """Minutes needed to read ``content`` at WORDS_PER_MINUTE, rounded up."""
    words = len(re.findall(r"\S+", content or ""))
    return math.ceil(words / WORDS_PER_MINUTE)


def normalize_pagination(page: int, limit: int) -> Tuple[int, int]:
    """Defaults for missing or non-positive values, caps for oversized ones.

    Capped values keep the resulting offset inside a 64-bit integer, so a
    page far past the end yields an empty page instead of a driver error.
    """
    if page is None or page < 1:
        page = DEFAULT_PAGE
    if limit is None or limit < 1:
        limit = DEFAULT_LIMIT
    return min(page, MAX_PAGE), min(limit, MAX_LIMIT)


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit
