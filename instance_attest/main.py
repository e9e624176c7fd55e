from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from fastapi import Body, FastAPI, HTTPException, Request
from pydantic import ValidationError

from .addresses import Network, in_networks, normalize_addr, trusted_networks
from .attestor import Attestor
from .config import (
    CONFIG_CACHE_TTL,
    DB_PATH,
    INSTANCES_PATH,
    LOG_FILE,
    LOG_JSON,
    LOG_LEVEL,
    TRUST_FORWARDED_FOR,
    TRUSTED_PROXY_PREFIXES,
    validate_config,
)
from .counter import SqliteAttemptStore
from .db import Database
from .errors import AttestationError, InstanceNotFound, RoleNotFound, StorageError
from .logging_config import audit_log, configure_logging, set_request_id
from .models import LoginRequest, RenewRequest, Role
from .provider import InstanceProvider, JsonSnapshotProvider
from .roles import RoleStore

DURATION_FIELDS = ("ttl", "max_ttl", "period", "auth_period")


def request_addresses(request: Request, proxies: Sequence[Network] = ()) -> List[str]:
    """
    Direct peer first, then X-Forwarded-For hops in header order.

    Forwarded hops are read only when the direct peer is one of the trusted
    proxies; from any other peer the header is ignored.
    """
    addrs = []
    peer = request.client.host if request.client else ""
    if peer:
        addrs.append(peer)
    if peer and in_networks(normalize_addr(peer), proxies):
        for header in request.headers.getlist("x-forwarded-for"):
            addrs.extend(a.strip() for a in header.split(",") if a.strip())
    return addrs


def role_view(role: Role) -> Dict[str, Any]:
    data = role.model_dump()
    for name in DURATION_FIELDS:
        data[name] = int(data[name].total_seconds())
    return data


def auth_response(role: Role, instance_id: str, instance_name: str) -> Dict[str, Any]:
    return {
        "policies": role.policies,
        "ttl": int(role.ttl.total_seconds()),
        "max_ttl": int(role.max_ttl.total_seconds()),
        "renewable": True,
        "metadata": {
            "role": role.name,
            "instance_id": instance_id,
            "instance_name": instance_name,
        },
        "alias": {"name": instance_id},
    }


def create_app(
    db_path: Optional[str] = None,
    provider: Optional[InstanceProvider] = None,
    clock: Optional[Callable[[], datetime]] = None,
    trust_forwarded: bool = TRUST_FORWARDED_FOR,
    trusted_proxies: Optional[List[str]] = None
) -> FastAPI:
    db_path = db_path or DB_PATH
    if trusted_proxies is None:
        trusted_proxies = TRUSTED_PROXY_PREFIXES
    proxies = trusted_networks(trusted_proxies) if trust_forwarded else []

    db = Database(db_path)
    roles = RoleStore(db)
    attestor = Attestor(SqliteAttemptStore(db), clock=clock)
    if provider is None:
        provider = JsonSnapshotProvider(INSTANCES_PATH, cache_ttl=CONFIG_CACHE_TTL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(LOG_LEVEL, json_format=LOG_JSON, log_file=LOG_FILE)
        db.init_schema()
        yield
        db.close()

    app = FastAPI(title="Instance Attestation", lifespan=lifespan)
    app.state.db = db
    app.state.roles = roles
    app.state.attestor = attestor
    app.state.provider = provider

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        request_id = set_request_id(request.headers.get("x-request-id"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    @app.post("/login")
    def login(req: LoginRequest, request: Request):
        try:
            role = roles.require(req.role)
            instance = provider.require_instance(req.instance_id)
        except RoleNotFound:
            raise HTTPException(400, "UNKNOWN_ROLE")
        except InstanceNotFound:
            raise HTTPException(400, "UNKNOWN_INSTANCE")

        addrs = request_addresses(request, proxies)
        try:
            count = attestor.attest(instance, role, addrs)
        except AttestationError as e:
            raise HTTPException(403, e.code.value)
        except StorageError as e:
            audit_log.security_event("attempt_store_unavailable", "high", error=str(e))
            raise HTTPException(503, "STORAGE_UNAVAILABLE")

        auth = auth_response(role, instance.id, instance.name)
        auth["auth_count"] = count
        return {"auth": auth}

    @app.post("/renew")
    def renew(req: RenewRequest):
        # renewal re-reads the role only; it does not re-attest the instance
        try:
            role = roles.require(req.role)
        except RoleNotFound:
            raise HTTPException(400, "UNKNOWN_ROLE")
        if set(req.policies) != set(role.policies):
            audit_log.security_event(
                "renew_policies_changed", "medium",
                role=role.name, instance_id=req.instance_id
            )
            raise HTTPException(403, "POLICIES_CHANGED")
        return {"auth": auth_response(role, req.instance_id, "")}

    @app.get("/role")
    def list_roles():
        return {"keys": roles.list_names()}

    @app.get("/role/{name}")
    def read_role(name: str):
        role = roles.get(name)
        if role is None:
            raise HTTPException(404, "NOT_FOUND")
        return role_view(role)

    @app.post("/role/{name}")
    def write_role(name: str, body: Dict[str, Any] = Body(...)):
        try:
            role = Role.model_validate({**body, "name": name})
        except ValidationError as e:
            raise HTTPException(422, e.errors(include_url=False, include_context=False))
        roles.put(role)
        return role_view(role)

    @app.delete("/role/{name}")
    def delete_role(name: str):
        if not roles.delete(name):
            raise HTTPException(404, "NOT_FOUND")
        return {"deleted": name}

    @app.post("/tidy")
    def tidy():
        try:
            return {"removed": attestor.sweep()}
        except StorageError as e:
            audit_log.security_event("attempt_store_unavailable", "high", error=str(e))
            raise HTTPException(503, "STORAGE_UNAVAILABLE")

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            **db.stats(),
            "config": validate_config(db_path=db_path, trusted_proxies=trusted_proxies),
        }

    return app


app = create_app()
