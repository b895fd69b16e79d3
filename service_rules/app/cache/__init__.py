"""
Cache package for the Rules Service.

Provides a process-local TTL cache of rule lookup results keyed by the
non-secret credential fields plus the rule name. Entries expire after an
hour and are swept periodically; nothing invalidates them explicitly.
"""

from .ttl_cache import RuleCache, CacheEntry, DEFAULT_TTL_SECONDS, DEFAULT_CHECK_PERIOD_SECONDS

__all__ = ["RuleCache", "CacheEntry", "DEFAULT_TTL_SECONDS", "DEFAULT_CHECK_PERIOD_SECONDS"]
