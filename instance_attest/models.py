import re
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from pydantic import BaseModel, Field, field_validator, model_validator

from .addresses import parse_prefix

ROLE_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]{1,128}$')

DEFAULT_METADATA_KEY = "vault-role"
DEFAULT_PERIOD = timedelta(seconds=120)
DEFAULT_AUTH_PERIOD = timedelta(seconds=120)
DEFAULT_AUTH_LIMIT = 1


class AddressEntry(BaseModel):
    addr: str
    ip_version: int = 4


class Instance(BaseModel):
    """Instance record as resolved by the compute provider."""
    id: str
    name: str = ""
    status: str
    access_ipv4: str = ""
    access_ipv6: str = ""
    address_groups: Dict[str, List[AddressEntry]] = Field(default_factory=dict)
    metadata: Dict[str, str] = Field(default_factory=dict)
    tenant_id: str = ""
    user_id: str = ""
    created: datetime

    @field_validator("created")
    @classmethod
    def _created_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class Role(BaseModel):
    """Administrator policy binding instances to a set of policies."""
    name: str
    policies: List[str] = Field(default_factory=list)
    ttl: timedelta = timedelta(0)
    max_ttl: timedelta = timedelta(0)
    period: timedelta = DEFAULT_PERIOD
    metadata_key: str = DEFAULT_METADATA_KEY
    tenant_id: str = ""
    user_id: str = ""
    auth_period: timedelta = DEFAULT_AUTH_PERIOD
    auth_limit: int = DEFAULT_AUTH_LIMIT
    trusted_prefixes: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def _valid_name(cls, v: str) -> str:
        if not ROLE_NAME_PATTERN.match(v):
            raise ValueError("role name must match [A-Za-z0-9_.-]{1,128}")
        return v

    @field_validator("metadata_key")
    @classmethod
    def _valid_metadata_key(cls, v: str) -> str:
        if not v:
            raise ValueError("metadata_key cannot be empty")
        return v

    @field_validator("period", "auth_period")
    @classmethod
    def _positive_window(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("must be greater than zero")
        return v

    @field_validator("auth_limit")
    @classmethod
    def _positive_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("auth_limit must be at least 1")
        return v

    @field_validator("trusted_prefixes")
    @classmethod
    def _valid_prefixes(cls, v: List[str]) -> List[str]:
        for prefix in v:
            if parse_prefix(prefix) is None:
                raise ValueError(f"invalid CIDR prefix: {prefix!r}")
        return v

    @model_validator(mode="after")
    def _ttl_bounds(self) -> "Role":
        if self.max_ttl and self.ttl > self.max_ttl:
            raise ValueError("ttl cannot be greater than max_ttl")
        return self


class LoginRequest(BaseModel):
    role: str
    instance_id: str


class RenewRequest(BaseModel):
    role: str
    instance_id: str
    policies: List[str] = Field(default_factory=list)
