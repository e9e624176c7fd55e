"""
Compute provider boundary.

The attestation engine never talks to the compute API. A provider hands it
a fully resolved Instance; this module turns the provider's server document
into that shape, flattening its loosely typed address bag into plain
{addr, ip_version} entries.
"""

from abc import ABC, abstractmethod
from ipaddress import ip_address
from typing import Any, Dict, Iterable, List, Optional

from .config import CachedConfig
from .errors import InstanceNotFound
from .models import AddressEntry, Instance


def _ip_version(addr: str, reported: Any) -> int:
    try:
        version = int(reported)
        if version in (4, 6):
            return version
    except (TypeError, ValueError):
        pass
    try:
        return ip_address(addr.strip()).version
    except ValueError:
        return 4


def normalize_addresses(raw: Optional[Dict[str, Any]]) -> Dict[str, List[AddressEntry]]:
    """
    Normalize a provider address bag.

    Args:
        raw: Network name -> list of address dicts. Entries carry `addr`,
            usually `version`, and vendor keys that are ignored.

    Returns:
        Network name -> list of AddressEntry, entries without addr dropped
    """
    groups: Dict[str, List[AddressEntry]] = {}
    for network, entries in (raw or {}).items():
        if not isinstance(entries, list):
            continue
        normalized = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            addr = entry.get("addr")
            if not isinstance(addr, str) or not addr:
                continue
            normalized.append(AddressEntry(addr=addr, ip_version=_ip_version(addr, entry.get("version"))))
        groups[str(network)] = normalized
    return groups


def instance_from_server(server: Dict[str, Any]) -> Instance:
    """Build an Instance from a compute API server document."""
    return Instance(
        id=server["id"],
        name=server.get("name") or "",
        status=server.get("status") or "",
        access_ipv4=server.get("accessIPv4") or "",
        access_ipv6=server.get("accessIPv6") or "",
        address_groups=normalize_addresses(server.get("addresses")),
        metadata={str(k): str(v) for k, v in (server.get("metadata") or {}).items()},
        tenant_id=server.get("tenant_id") or "",
        user_id=server.get("user_id") or "",
        created=server["created"],
    )


class InstanceProvider(ABC):
    """Source of instance records."""

    @abstractmethod
    def get_instance(self, instance_id: str) -> Optional[Instance]:
        """Return the instance, or None if the provider does not know it."""
        pass

    def require_instance(self, instance_id: str) -> Instance:
        instance = self.get_instance(instance_id)
        if instance is None:
            raise InstanceNotFound(instance_id)
        return instance


class StaticInstanceProvider(InstanceProvider):
    """In-memory provider for tests and embedding."""

    def __init__(self, instances: Iterable[Instance] = ()):
        self._instances: Dict[str, Instance] = {i.id: i for i in instances}

    def add(self, instance: Instance) -> None:
        self._instances[instance.id] = instance

    def get_instance(self, instance_id: str) -> Optional[Instance]:
        return self._instances.get(instance_id)


class JsonSnapshotProvider(InstanceProvider):
    """
    Serves instances from a JSON snapshot of server documents.

    The file holds either a list of servers or {"servers": [...]}, as
    exported from the compute API, and is re-read once the cache TTL expires.
    """

    def __init__(self, path: str, cache_ttl: int = 60):
        self.path = path
        self._cache = CachedConfig(ttl_seconds=cache_ttl)

    def _servers(self) -> List[Dict[str, Any]]:
        try:
            data = self._cache.get_json(self.path)
        except FileNotFoundError:
            return []
        if isinstance(data, dict):
            data = data.get("servers", [])
        return data

    def get_instance(self, instance_id: str) -> Optional[Instance]:
        for server in self._servers():
            if server.get("id") == instance_id:
                return instance_from_server(server)
        return None
