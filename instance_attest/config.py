"""
Configuration module for instance attestation.

Centralizes configuration with environment variable support and a cached
JSON loader for file-backed inputs.
"""

import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .addresses import parse_prefix

# ============================================================
# Environment Configuration
# ============================================================

# Storage
DB_PATH = os.getenv("ATTEST_DB_PATH", "data/instance_attest.db")

# Instance snapshot served by the JSON snapshot provider
INSTANCES_PATH = os.getenv("INSTANCES_PATH", "data/instances.json")

# X-Forwarded-For hops count as request addresses only when this is on and
# the direct peer is inside one of the trusted proxy prefixes
TRUST_FORWARDED_FOR = os.getenv("TRUST_FORWARDED_FOR", "false").lower() in ("1", "true", "yes")
TRUSTED_PROXY_PREFIXES = [p.strip() for p in os.getenv("TRUSTED_PROXY_PREFIXES", "").split(",") if p.strip()]

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "true").lower() in ("1", "true", "yes")
LOG_FILE = os.getenv("LOG_FILE") or None

# Cache TTL (seconds)
CONFIG_CACHE_TTL = int(os.getenv("CONFIG_CACHE_TTL", "60"))


# ============================================================
# Cached Loaders
# ============================================================

class CachedConfig:
    """
    Thread-safe cached JSON loader.
    Reloads files once their cached copy is older than the TTL.
    """

    def __init__(self, ttl_seconds: int = 60):
        self._cache: Dict[str, Any] = {}
        self._timestamps: Dict[str, float] = {}
        self._lock = threading.RLock()
        self._ttl = ttl_seconds

    def _is_stale(self, key: str) -> bool:
        if key not in self._timestamps:
            return True
        return (time.time() - self._timestamps[key]) > self._ttl

    def get_json(self, path: str, force_reload: bool = False) -> Any:
        """Load a JSON file, serving the cached copy while it is fresh."""
        with self._lock:
            if not force_reload and path in self._cache and not self._is_stale(path):
                return self._cache[path]

            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)

            self._cache[path] = data
            self._timestamps[path] = time.time()
            return data

    def invalidate(self, path: Optional[str] = None) -> None:
        """Invalidate cache for a specific path or all paths."""
        with self._lock:
            if path:
                self._cache.pop(path, None)
                self._timestamps.pop(path, None)
            else:
                self._cache.clear()
                self._timestamps.clear()


# ============================================================
# Validation
# ============================================================

def validate_config(
    db_path: Optional[str] = None,
    instances_path: Optional[str] = None,
    trusted_proxies: Optional[List[str]] = None
) -> Dict[str, bool]:
    """
    Check that configured paths and settings are usable.
    Returns dict of name -> ok.
    """
    db_parent = Path(db_path or DB_PATH).parent
    proxies = TRUSTED_PROXY_PREFIXES if trusted_proxies is None else trusted_proxies
    return {
        "db_dir": db_parent.exists() or not db_parent.parts,
        "instances": Path(instances_path or INSTANCES_PATH).exists(),
        "log_level": LOG_LEVEL.upper() in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
        "trusted_proxies": all(parse_prefix(p) is not None for p in proxies),
    }

