from .engine import UsageTracker, parse_rate_limit_headers

__all__ = ["UsageTracker", "parse_rate_limit_headers"]
