from datetime import datetime, timedelta, timezone

from instance_attest import Instance, Role

CORRECT_IPV4 = "192.168.1.1"
WRONG_IPV4 = "192.168.1.2"
CORRECT_IPV6 = "2001:db8::1"
WRONG_IPV6 = "2001:db8::2"
PROXY_IPV4 = "192.168.2.1"
PROXY_IPV6 = "2001:db8:1::1"
NAT_IPV4 = "192.168.3.1"
NAT_IPV6 = "2001:db8:2::1"

TENANT_ID = "fcad67a6189847c4aecfa3c81a05783b"
USER_ID = "9349aff8be7545ac9d2f1d00999a23cd"


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, now=None):
        self.now = now or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


def make_instance(clock=None, age=0, **overrides):
    created = (clock() if clock else datetime.now(timezone.utc)) - timedelta(seconds=age)
    fields = {
        "id": "ef079b0c-e610-4dfb-b1aa-b49f07ac48e5",
        "name": "test",
        "status": "ACTIVE",
        "access_ipv4": CORRECT_IPV4,
        "access_ipv6": "",
        "address_groups": {},
        "metadata": {"vault-role": "test"},
        "tenant_id": TENANT_ID,
        "user_id": USER_ID,
        "created": created,
    }
    fields.update(overrides)
    return Instance(**fields)


def make_role(**overrides):
    fields = {
        "name": "test",
        "policies": ["test"],
        "ttl": 60,
        "max_ttl": 120,
        "period": 120,
        "metadata_key": "vault-role",
        "tenant_id": TENANT_ID,
        "auth_period": 120,
        "auth_limit": 2,
    }
    fields.update(overrides)
    return Role(**fields)


def address_group(*addrs):
    entries = []
    for addr in addrs:
        entries.append({"addr": addr, "ip_version": 6 if ":" in addr else 4})
    return {"private": entries}
