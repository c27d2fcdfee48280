"""Security utilities.

This module provides:
- Input sanitization for chat content
- Image payload validation
- Client IP extraction behind proxies
- Security headers middleware
"""

import logging
import re

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

MAX_INPUT_LENGTH = 10000
MAX_IMAGE_BYTES = 5 * 1024 * 1024
VALID_IMAGE_PREFIXES = (
    "data:image/jpeg",
    "data:image/jpg",
    "data:image/png",
    "data:image/gif",
    "data:image/webp",
)

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_TAG = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_INLINE_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)


# ============================================
# Input Hygiene
# ============================================

def sanitize_input(text: str) -> str:
    """Strip script/iframe blocks and inline handlers, capped at 10k chars."""
    cleaned = (text or "").strip()
    cleaned = _SCRIPT_TAG.sub("", cleaned)
    cleaned = _IFRAME_TAG.sub("", cleaned)
    cleaned = _JS_SCHEME.sub("", cleaned)
    cleaned = _INLINE_HANDLER.sub("", cleaned)
    return cleaned[:MAX_INPUT_LENGTH]


def validate_image_data(data_url: str) -> bool:
    """Check an image data URL for an allowed format and a 5 MB ceiling.

    Size is estimated from the base64 length (len * 3 / 4).
    """
    if not data_url or not data_url.startswith("data:image/"):
        return False
    if len(data_url) * 3 / 4 > MAX_IMAGE_BYTES:
        return False
    return data_url.startswith(VALID_IMAGE_PREFIXES)


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


# ============================================
# Security Headers Middleware
# ============================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    HEADERS = {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        # Voice input needs the microphone
        "Permissions-Policy": "geolocation=(), microphone=(self), camera=()",
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Only add headers if not already set (a reverse proxy might set some)
        for header, value in self.HEADERS.items():
            if header not in response.headers:
                response.headers[header] = value

        return response
