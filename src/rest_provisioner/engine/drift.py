"""Drift detection between declared data and the object the server reports.

Three settings decide what the server is allowed to change in the declared
record:

- ``ignore_all_server_changes`` -- the server never wins; dominates the rest.
- comparison scope -- an explicit ``drift_fields`` document, or the declared
  data itself when ``drift_fields_from_data`` is set. Only fields present in
  the scope are compared. An explicit document takes precedence over the
  flag; an empty document means "no restriction".
- ``ignore_changes_to`` -- dot paths never compared. Ignoring ``meta`` covers
  ``meta.ts``; ignoring ``meta.ts`` leaves ``meta.owner`` compared.

Per key, the outcome comes from ``_DECISIONS`` below.
"""

from __future__ import annotations

import copy
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rest_provisioner.engine.errors import DriftParseError


@dataclass(frozen=True)
class DriftPolicy:
    ignore_all_server_changes: bool = False
    drift_fields: dict[str, Any] | None = None
    drift_fields_from_data: bool = False

    @classmethod
    def parse(
        cls,
        *,
        ignore_all_server_changes: bool = False,
        drift_fields: str | None = None,
        drift_fields_from_data: bool = False,
    ) -> DriftPolicy:
        """Build a policy from raw settings, decoding the ``drift_fields`` JSON.

        Raises:
            DriftParseError: ``drift_fields`` is malformed or not a JSON object.
        """
        if ignore_all_server_changes:
            return cls(ignore_all_server_changes=True)
        doc: dict[str, Any] | None = None
        if drift_fields:
            try:
                doc = json.loads(drift_fields)
            except ValueError as exc:
                raise DriftParseError(f"drift_fields attribute is invalid JSON: {exc}") from exc
            if not isinstance(doc, dict):
                raise DriftParseError(
                    f"drift_fields must be a JSON object, got {type(doc).__name__}"
                )
        return cls(
            ignore_all_server_changes=bool(ignore_all_server_changes),
            drift_fields=doc or None,
            drift_fields_from_data=bool(drift_fields_from_data),
        )

    def scope_for(self, declared: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Comparison scope for *declared*; ``None`` means every field."""
        if self.drift_fields is not None:
            return self.drift_fields
        if self.drift_fields_from_data:
            return declared
        return None


@dataclass(frozen=True)
class ReconciledState:
    data: dict[str, Any]
    changed: bool
    changed_paths: list[str] = field(default_factory=list)


class Decision(str, Enum):
    KEEP_DECLARED = "keep-declared"
    OMIT = "omit"
    COMPARE = "compare"
    DROP = "drop"
    ADOPT = "adopt"


# (excluded, in declared, in observed) -> decision.
# "excluded" = on the ignore-list or outside the comparison scope.
_DECISIONS: dict[tuple[bool, bool, bool], Decision] = {
    (True, True, True): Decision.KEEP_DECLARED,
    (True, True, False): Decision.KEEP_DECLARED,
    (True, False, True): Decision.OMIT,
    (False, True, True): Decision.COMPARE,
    (False, True, False): Decision.DROP,
    (False, False, True): Decision.ADOPT,
}


def values_equal(a: Any, b: Any) -> bool:
    """Structural equality for JSON values.

    Objects compare regardless of key order, arrays element by element, and
    booleans never equal numbers (``True != 1``).
    """
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(values_equal(v, b[k]) for k, v in a.items())
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b, strict=True))
    return a == b


def _descend_ignores(key: str, ignores: Sequence[str]) -> list[str]:
    prefix = f"{key}."
    return [p.removeprefix(prefix) for p in ignores if p.startswith(prefix)]


def _descend_scope(key: str, scope: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if scope is None:
        return None
    sub = scope.get(key)
    # A non-object scope value covers the whole subtree.
    return sub if isinstance(sub, dict) else None


def _excluded_only(
    declared: Mapping[str, Any], ignores: Sequence[str], scope: Mapping[str, Any] | None
) -> dict[str, Any]:
    """The part of *declared* that is ignored or out of scope, at any depth."""
    kept: dict[str, Any] = {}
    for key, value in declared.items():
        if key in ignores or (scope is not None and key not in scope):
            kept[key] = copy.deepcopy(value)
        elif isinstance(value, dict):
            sub = _excluded_only(value, _descend_ignores(key, ignores), _descend_scope(key, scope))
            if sub:
                kept[key] = sub
    return kept


class _Walker:
    def __init__(self) -> None:
        self.changed_paths: list[str] = []

    def walk(
        self,
        declared: Mapping[str, Any],
        observed: Mapping[str, Any],
        ignores: Sequence[str],
        scope: Mapping[str, Any] | None,
        prefix: str = "",
    ) -> dict[str, Any]:
        out: dict[str, Any] = {}
        keys = list(declared) + [k for k in observed if k not in declared]
        for key in keys:
            path = f"{prefix}{key}"
            excluded = key in ignores or (scope is not None and key not in scope)
            decision = _DECISIONS[(excluded, key in declared, key in observed)]

            match decision:
                case Decision.KEEP_DECLARED:
                    out[key] = copy.deepcopy(declared[key])
                case Decision.OMIT:
                    pass
                case Decision.ADOPT:
                    out[key] = copy.deepcopy(observed[key])
                    self.changed_paths.append(path)
                case Decision.DROP:
                    # A declared null matches an absent field.
                    if declared[key] is None:
                        out[key] = None
                    else:
                        self._keep_excluded(out, key, declared[key], ignores, scope, path)
                case Decision.COMPARE:
                    mine, theirs = declared[key], observed[key]
                    if isinstance(mine, dict) and isinstance(theirs, dict):
                        out[key] = self.walk(
                            mine,
                            theirs,
                            _descend_ignores(key, ignores),
                            _descend_scope(key, scope),
                            prefix=f"{path}.",
                        )
                    elif values_equal(mine, theirs):
                        out[key] = copy.deepcopy(mine)
                    elif isinstance(mine, dict) and _excluded_only(
                        mine, _descend_ignores(key, ignores), _descend_scope(key, scope)
                    ):
                        # The server replaced an object whose ignored children must survive.
                        self._keep_excluded(out, key, mine, ignores, scope, path)
                    else:
                        out[key] = copy.deepcopy(theirs)
                        self.changed_paths.append(path)
        return out

    def _keep_excluded(
        self,
        out: dict[str, Any],
        key: str,
        mine: Any,
        ignores: Sequence[str],
        scope: Mapping[str, Any] | None,
        path: str,
    ) -> None:
        """Keep only the ignored or out-of-scope part of *mine* under *key*."""
        kept: dict[str, Any] = {}
        if isinstance(mine, dict):
            kept = _excluded_only(mine, _descend_ignores(key, ignores), _descend_scope(key, scope))
        if kept:
            out[key] = kept
        if not (kept and values_equal(kept, mine)):
            self.changed_paths.append(path)


def detect_drift(
    declared: Mapping[str, Any],
    observed: Mapping[str, Any],
    ignore_list: Sequence[str] = (),
    policy: DriftPolicy | None = None,
) -> ReconciledState:
    """Reconcile *declared* against *observed*.

    Returns a new document where ignored and out-of-scope fields keep their
    declared values and every other field takes the observed value, plus
    whether any compared field differed. Inputs are never mutated.
    """
    policy = policy or DriftPolicy()
    if policy.ignore_all_server_changes:
        return ReconciledState(data=copy.deepcopy(dict(declared)), changed=False)

    walker = _Walker()
    data = walker.walk(declared, observed, list(ignore_list), policy.scope_for(declared))
    return ReconciledState(
        data=data, changed=bool(walker.changed_paths), changed_paths=walker.changed_paths
    )
