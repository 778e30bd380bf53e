"""Plan/apply engine."""

from __future__ import annotations

import contextlib
import hashlib
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from rest_provisioner import __version__
from rest_provisioner.core.state import (
    ResourceInstance,
    State,
    compute_attributes_hash,
    compute_state_digest,
)
from rest_provisioner.engine.documents import get_key, parse_object
from rest_provisioner.engine.drift import values_equal
from rest_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DuplicateAddressError,
    EngineError,
    StalePlanError,
    StateEndpointMismatchError,
    ValidationError,
)
from rest_provisioner.engine.graph import DependencyGraph
from rest_provisioner.engine.lock import StateLock
from rest_provisioner.engine.paths import ID_PLACEHOLDER
from rest_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange
from rest_provisioner.resources.api_object import ApiObjectResource
from rest_provisioner.resources.markers import CompareStrategy, collect_compare_strategies

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceChange, Literal["start", "done"]], None]

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from rest_provisioner.core.provider import ProviderDefaults, RestProvider
    from rest_provisioner.engine.lifecycle import ResourceLifecycleController

_COMPARE_STRATEGIES = collect_compare_strategies(ApiObjectResource)


def _json_differs(desired: Any, prior: Any) -> bool:
    try:
        return not values_equal(parse_object(desired), parse_object(prior))
    except ValueError:
        # A corrupted recorded document always needs rewriting.
        return True


def _values_differ(desired: Any, prior: Any, *, strategy: CompareStrategy | None = None) -> bool:
    """Check whether a desired setting differs from the recorded one.

    - ``strategy="json"``: JSON text compared as parsed documents.
    - ``strategy="set"``: lists compared order-insensitively.
    - otherwise strict equality.

    Unset values (``None``, empty, ``False``) are all equivalent.
    """
    if not desired and not prior:
        return False
    if strategy == "json":
        return _json_differs(desired, prior)
    if strategy == "set" and isinstance(desired, list) and isinstance(prior, list):
        return set(desired) != set(prior)
    return desired != prior


def _replace_reasons(desired: dict[str, Any], prior: dict[str, Any]) -> list[str]:
    """``force_new`` data paths whose value changes."""
    try:
        want = parse_object(desired.get("data"))
        have = parse_object(prior.get("data"))
    except ValueError:
        return []
    return [
        field
        for field in desired.get("force_new") or []
        if not values_equal(get_key(want, field, sep="."), get_key(have, field, sep="."))
    ]


def _canonical_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)


def _compute_config_digest(resources: Sequence[ApiObjectResource]) -> str:
    items = sorted(
        (
            {
                "address": r.address,
                "resource_type": r.resource_type,
                "planned": r.record(),
                "depends_on": sorted(r.depends_on),
            }
            for r in resources
        ),
        key=lambda x: x["address"],
    )
    return hashlib.sha256(_canonical_json(items).encode("utf-8")).hexdigest()


def validate_resource(
    resource: ApiObjectResource, defaults: ProviderDefaults | None = None
) -> list[str]:
    """Checks that need the whole resource rather than a single field.

    *defaults* fill ``create_path`` and ``id_attribute`` when the resource
    leaves them unset, the same way options are layered at call time.
    """
    errors: list[str] = []
    create_path = resource.create_path or getattr(defaults, "create_path", None)
    if create_path and ID_PLACEHOLDER in create_path and not resource.object_id:
        id_attribute = resource.id_attribute or getattr(defaults, "id_attribute", None) or "id"
        if get_key(parse_object(resource.data), id_attribute) is None:
            errors.append(
                f"Resource '{resource.address}': create_path uses {ID_PLACEHOLDER} but neither "
                f"object_id nor data['{id_attribute}'] is set"
            )
    if resource.force_new:
        data = parse_object(resource.data)
        errors.extend(
            f"Resource '{resource.address}': force_new field '{f}' is not in data"
            for f in resource.force_new
            if get_key(data, f, sep=".") is None
        )
    return errors


class RestEngine:
    """Terraform-like plan/apply engine for REST API objects."""

    def __init__(self, *, provider: RestProvider, state_path: Path) -> None:
        self._provider = provider
        self._state_path = state_path

    @property
    def endpoint(self) -> str:
        return self._provider.endpoint

    @property
    def state_path(self) -> Path:
        return self._state_path

    @property
    def controller(self) -> ResourceLifecycleController:
        return self._provider.controller

    def _load_state(self) -> State:
        state = State.load_or_create(self._state_path, endpoint=self.endpoint)
        if state.endpoint != self.endpoint:
            raise StateEndpointMismatchError(self.endpoint, state.endpoint)
        logger.debug("State loaded: serial=%d, %d resources", state.serial, len(state.resources))
        return state

    def _load_state_for_apply(self, plan: Plan) -> State:
        if self._state_path.exists():
            return self._load_state()
        # No state yet: bootstrap from the plan metadata (saved-plan semantics).
        return State(
            endpoint=self.endpoint,
            lineage=plan.metadata.state_lineage,
            serial=plan.metadata.state_serial,
        )

    def _persist(self, state: State) -> None:
        state.serial += 1
        state.save(self._state_path)

    # ── Refresh ─────────────────────────────────────────────────────

    def _refresh_state_in_place(self, state: State) -> bool:
        logger.debug("Refreshing state from the API server")
        changed = False
        for address, inst in list(state.resources.items()):
            record = self.controller.read(inst.attributes, known_id=inst.object_id)
            if record is None:
                logger.info("%s no longer exists on the server", address)
                del state.resources[address]
                changed = True
                continue

            new_hash = compute_attributes_hash(record)
            if record != inst.attributes or new_hash != inst.attributes_hash:
                inst.attributes = record
                inst.attributes_hash = new_hash
                inst.updated_at = datetime.now(UTC)
                changed = True

        logger.debug("State refreshed, changed=%s", changed)
        return changed

    def refresh(self, *, persist: bool = False) -> tuple[State, State]:
        """Read every tracked object back. Returns ``(before, after)``."""
        with StateLock(self._state_path):
            state = self._load_state()
            snapshot = state.model_copy(deep=True)
            if self._refresh_state_in_place(state) and persist:
                self._persist(state)
            return snapshot, state

    # ── Import ──────────────────────────────────────────────────────

    def import_object(
        self,
        address: str,
        composite_id: str,
        *,
        resource: ApiObjectResource | None = None,
    ) -> ResourceInstance:
        """Adopt the object at *composite_id* (``/<path>/<id>``) as *address*.

        *resource*, when the address is declared in configuration, supplies the
        object's other settings (overrides, drift rules, dependencies).
        """
        resource_type, _, name = address.partition(".")
        if resource_type != ApiObjectResource.resource_type or not name:
            expected = f"{ApiObjectResource.resource_type}.<name>"
            raise ValidationError([f"Cannot import to '{address}': expected {expected}"])

        with StateLock(self._state_path):
            state = self._load_state()
            if address in state.resources:
                raise EngineError(f"Resource already managed: {address}")

            settings = resource.record() if resource is not None else {}
            record = self.controller.import_object(composite_id, settings)
            if resource is not None:
                record["debug"] = resource.debug

            now = datetime.now(UTC)
            inst = ResourceInstance(
                address=address,
                resource_type=resource_type,
                name=name,
                attributes=record,
                attributes_hash=compute_attributes_hash(record),
                dependencies=list(resource.depends_on) if resource is not None else [],
                created_at=now,
                updated_at=now,
            )
            state.resources[address] = inst
            self._persist(state)
            logger.info("Imported %s (id '%s')", address, inst.object_id)
            return inst

    # ── Plan ────────────────────────────────────────────────────────

    def _classify_change(
        self, resource: ApiObjectResource, state: State, deps: list[str]
    ) -> ResourceChange:
        """Classify a single resource as CREATE, UPDATE, REPLACE, or NOOP."""
        addr = resource.address
        desired = resource.record()

        prior_inst = state.resources.get(addr)
        if prior_inst is None:
            logger.debug("Classified %s as create", addr)
            return ResourceChange(
                address=addr,
                resource_type=resource.resource_type,
                action=Action.CREATE,
                desired=desired,
                planned=desired,
                dependencies=deps,
            )

        prior = dict(prior_inst.attributes)
        keys = sorted((set(desired) | set(prior)) - {"id"})
        diff = {
            k: {"from": prior.get(k), "to": desired.get(k)}
            for k in keys
            if _values_differ(desired.get(k), prior.get(k), strategy=_COMPARE_STRATEGIES.get(k))
        }

        reasons = _replace_reasons(desired, prior) if "data" in diff else []
        if reasons:
            action = Action.REPLACE
        else:
            action = Action.UPDATE if diff else Action.NOOP
        logger.debug("Classified %s as %s", addr, action.value)
        return ResourceChange(
            address=addr,
            resource_type=resource.resource_type,
            action=action,
            desired=desired,
            prior=prior,
            planned=desired,
            diff=diff or None,
            dependencies=deps,
            replace_reasons=reasons,
        )

    def _plan_deletes(self, state: State, addrs: set[str]) -> list[ResourceChange]:
        """Plan delete changes for the given addresses, dependents first."""
        deps = {a: state.resources[a].dependencies for a in addrs}
        return [
            ResourceChange(
                address=addr,
                resource_type=state.resources[addr].resource_type,
                action=Action.DELETE,
                prior=dict(state.resources[addr].attributes),
                dependencies=list(state.resources[addr].dependencies),
            )
            for addr in DependencyGraph(addrs, deps).reverse_topological_order()
        ]

    def _validate(self, desired_by_addr: dict[str, ApiObjectResource], state: State) -> None:
        errors: list[str] = []
        known = set(desired_by_addr) | set(state.resources)
        for r in desired_by_addr.values():
            errors.extend(validate_resource(r, self._provider.defaults))
            errors.extend(
                f"Resource '{r.address}' depends on unknown address '{dep}'"
                for dep in r.depends_on
                if dep not in known
            )
        if errors:
            raise ValidationError(errors)

    def plan(
        self,
        resources: Sequence[ApiObjectResource],
        *,
        destroy: bool = False,
        refresh: bool = True,
    ) -> Plan:
        logger.info(
            "Planning %d resources (destroy=%s, refresh=%s)", len(resources), destroy, refresh
        )
        # Only lock when refresh may write state.
        lock_cm = StateLock(self._state_path) if refresh else contextlib.nullcontext()
        with lock_cm:
            state = self._load_state()

            if refresh and self._refresh_state_in_place(state):
                self._persist(state)

            desired_by_addr: dict[str, ApiObjectResource] = {}
            for r in resources:
                if r.address in desired_by_addr:
                    raise DuplicateAddressError(r.address)
                desired_by_addr[r.address] = r

            state_addrs = set(state.resources)
            if destroy:
                changes = self._plan_deletes(state, state_addrs)
            else:
                self._validate(desired_by_addr, state)
                dep_map = {a: list(r.depends_on) for a, r in desired_by_addr.items()}
                order = DependencyGraph(desired_by_addr, dep_map).topological_order()
                changes = [
                    self._classify_change(desired_by_addr[a], state, dep_map[a]) for a in order
                ]
                changes.extend(self._plan_deletes(state, state_addrs - set(desired_by_addr)))

            metadata = PlanMetadata(
                endpoint=self.endpoint,
                created_at=datetime.now(UTC),
                destroy=destroy,
                refresh=refresh,
                state_lineage=state.lineage,
                state_serial=state.serial,
                state_digest=compute_state_digest(state),
                config_digest=_compute_config_digest([] if destroy else resources),
                engine_version=__version__,
            )
            return Plan(metadata=metadata, changes=changes)

    # ── Apply ───────────────────────────────────────────────────────

    def _create(self, change: ResourceChange, state: State) -> None:
        assert change.desired is not None
        result = self.controller.create(change.desired)
        attrs = {**change.desired, "id": result.identifier}
        now = datetime.now(UTC)
        state.resources[change.address] = ResourceInstance(
            address=change.address,
            resource_type=change.resource_type,
            name=change.address.partition(".")[2],
            attributes=attrs,
            attributes_hash=compute_attributes_hash(attrs),
            dependencies=list(change.dependencies),
            created_at=now,
            updated_at=now,
        )

    def _update(self, change: ResourceChange, state: State) -> None:
        assert change.desired is not None
        inst = state.resources[change.address]
        self.controller.update(change.desired, known_id=inst.object_id)
        attrs = {**change.desired, "id": change.desired.get("object_id") or inst.object_id}
        inst.attributes = attrs
        inst.attributes_hash = compute_attributes_hash(attrs)
        inst.dependencies = list(change.dependencies)
        inst.updated_at = datetime.now(UTC)

    def _delete(self, change: ResourceChange, state: State) -> None:
        inst = state.resources[change.address]
        self.controller.delete(inst.attributes, known_id=inst.object_id)
        del state.resources[change.address]

    def _run(self, change: ResourceChange, state: State) -> None:
        match change.action:
            case Action.CREATE:
                self._create(change, state)
            case Action.UPDATE:
                self._update(change, state)
            case Action.REPLACE:
                self._delete(change, state)
                self._create(change, state)
            case Action.DELETE:
                self._delete(change, state)
            case _:
                raise ValueError(f"Unknown action: {change.action}")

    def _apply_order(self, plan: Plan) -> list[ResourceChange]:
        """Creates/updates in dependency order, then deletes (dependents first)."""
        upserts = {
            c.address: c for c in plan.changes if c.action not in (Action.NOOP, Action.DELETE)
        }
        deletes = {c.address: c for c in plan.changes if c.action == Action.DELETE}
        up_order = DependencyGraph(
            upserts, {a: c.dependencies for a, c in upserts.items()}
        ).topological_order()
        del_order = DependencyGraph(
            deletes, {a: c.dependencies for a, c in deletes.items()}
        ).reverse_topological_order()
        return [upserts[a] for a in up_order] + [deletes[a] for a in del_order]

    def apply(self, plan: Plan, *, progress: ProgressCallback | None = None) -> ApplyResult:
        with StateLock(self._state_path):
            state = self._load_state_for_apply(plan)
            if state.endpoint != self.endpoint:
                raise StateEndpointMismatchError(self.endpoint, state.endpoint)

            if state.lineage != plan.metadata.state_lineage:
                raise StalePlanError("State lineage changed; re-run plan")
            if state.serial != plan.metadata.state_serial:
                raise StalePlanError("State serial changed; re-run plan")
            if compute_state_digest(state) != plan.metadata.state_digest:
                raise StalePlanError("State digest changed; re-run plan")

            applied: list[ResourceChange] = []
            ordered = self._apply_order(plan)
            logger.info("Applying %d changes", len(ordered))

            change: ResourceChange | None = None
            try:
                for change in ordered:
                    logger.debug("Applying %s: %s", change.address, change.action.value)
                    if progress:
                        progress(change, "start")
                    self._run(change, state)
                    self._persist(state)
                    applied.append(change)
                    if progress:
                        progress(change, "done")
            except KeyboardInterrupt as e:  # pragma: no cover
                raise ApplyCanceled("Apply canceled") from e
            except Exception as e:
                address = change.address if change is not None else "<plan>"
                raise ApplyError(applied=applied, address=address, message=str(e)) from e

            return ApplyResult(applied=applied)
