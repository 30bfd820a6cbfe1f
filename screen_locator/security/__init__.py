"""
Input validation and model-call rate limiting.
"""

from screen_locator.security.rate_limiter import RateLimitConfig, RateLimiter, RateLimitExceeded
from screen_locator.security.validation import InputValidator, ValidationConfig, ValidationError

__all__ = [
    "InputValidator",
    "ValidationConfig",
    "ValidationError",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimitExceeded",
]
