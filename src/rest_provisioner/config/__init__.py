"""YAML configuration loading and convenience plan/apply API."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import SecretStr

from rest_provisioner.config.loader import ConfigError, load_config
from rest_provisioner.config.schema import Config, ProviderConfig
from rest_provisioner.core.provider import BasicAuth, BearerAuth, RestProvider
from rest_provisioner.core.state import ResourceInstance, State
from rest_provisioner.engine.engine import ProgressCallback, RestEngine
from rest_provisioner.engine.types import Action, ResourceChange

if TYPE_CHECKING:
    from pathlib import Path

    from rest_provisioner.engine.types import ApplyResult, Plan

__all__ = [
    "Config",
    "ConfigError",
    "ProviderConfig",
    "State",
    "apply",
    "drift",
    "import_object",
    "load",
    "load_config",
    "plan",
    "plan_and_apply",
    "refresh",
    "save_state",
]


def load(path: Path | str) -> Config:
    """Load a YAML configuration file."""
    return load_config(path)


def _provider_from_config(config: Config) -> RestProvider:
    settings = config.provider
    if not settings.uri:
        raise ConfigError("provider.uri is required (set in YAML or REST_URI env var)")
    if settings.bearer_token and settings.username:
        raise ConfigError("provider: set either bearer_token or username/password, not both")

    auth: BasicAuth | BearerAuth | None = None
    if settings.bearer_token:
        auth = BearerAuth(token=SecretStr(settings.bearer_token))
    elif settings.username:
        auth = BasicAuth(
            username=settings.username, password=SecretStr(settings.password or "")
        )
    return RestProvider(
        uri=settings.uri,
        auth=auth,
        headers=settings.headers,
        timeout=settings.timeout,
        insecure=settings.insecure,
        defaults=settings.defaults,
        data_sensitive=settings.data_sensitive,
    )


def _engine_from_config(config: Config) -> RestEngine:
    """Build a ``RestEngine`` from a ``Config`` instance."""
    return RestEngine(provider=_provider_from_config(config), state_path=config.state_path)


def plan(config: Config, *, destroy: bool = False, refresh: bool = True) -> Plan:
    """Plan changes for the given configuration."""
    engine = _engine_from_config(config)
    return engine.plan(config.resources, destroy=destroy, refresh=refresh)


def apply(
    plan_obj: Plan, config: Config, *, progress: ProgressCallback | None = None
) -> ApplyResult:
    """Apply a previously computed plan."""
    engine = _engine_from_config(config)
    return engine.apply(plan_obj, progress=progress)


def plan_and_apply(config: Config, *, destroy: bool = False, refresh: bool = True) -> ApplyResult:
    """Plan and apply in one step."""
    plan_obj = plan(config, destroy=destroy, refresh=refresh)
    return apply(plan_obj, config)


def refresh(config: Config) -> tuple[list[ResourceChange], State]:
    """Read every tracked object back from the server (not persisted).

    Returns the list of drift changes and the new state. Call
    :func:`save_state` to persist the returned state to disk.
    """
    engine = _engine_from_config(config)
    old_state, new_state = engine.refresh()
    return _build_drift_changes(old_state, new_state), new_state


def save_state(config: Config, state: State) -> None:
    """Persist state to disk."""
    from rest_provisioner.engine.lock import StateLock

    with StateLock(config.state_path):
        state.serial += 1
        state.save(config.state_path)


def drift(config: Config) -> list[ResourceChange]:
    """Detect drift between state file and the live server."""
    changes, _ = refresh(config)
    return changes


def import_object(config: Config, address: str, composite_id: str) -> ResourceInstance:
    """Import an existing server object into state as *address*."""
    engine = _engine_from_config(config)
    return engine.import_object(address, composite_id, resource=config.find(address))


def _build_drift_changes(old_state: State, new_state: State) -> list[ResourceChange]:
    """Compare old vs new state and return a list of drift changes."""
    old_attrs = {addr: inst.attributes.copy() for addr, inst in old_state.resources.items()}
    changes: list[ResourceChange] = []
    for addr, inst in new_state.resources.items():
        old = old_attrs.get(addr)
        if old is None:
            continue
        if old != inst.attributes:
            all_keys = sorted(set(old) | set(inst.attributes))
            diff = {
                k: {"from": old.get(k), "to": inst.attributes.get(k)}
                for k in all_keys
                if old.get(k) != inst.attributes.get(k)
            }
            changes.append(
                ResourceChange(
                    address=addr,
                    resource_type=inst.resource_type,
                    action=Action.UPDATE,
                    prior=old,
                    planned=dict(inst.attributes),
                    diff=diff,
                )
            )
    for addr in sorted(set(old_attrs) - set(new_state.resources)):
        changes.append(
            ResourceChange(
                address=addr,
                resource_type=old_state.resources[addr].resource_type,
                action=Action.DELETE,
                prior=old_attrs[addr],
            )
        )
    return changes
