"""Reconciliation core and plan/apply engine for REST API objects."""

from rest_provisioner.engine.drift import DriftPolicy, ReconciledState, detect_drift
from rest_provisioner.engine.engine import RestEngine
from rest_provisioner.engine.errors import (
    ApplyCanceled,
    ApplyError,
    DependencyCycleError,
    DriftParseError,
    DuplicateAddressError,
    EngineError,
    InvalidImportFormatError,
    InvalidPayloadError,
    MissingIdentifierError,
    NotFoundError,
    StalePlanError,
    StateEndpointMismatchError,
    StateLockError,
    TransportError,
    ValidationError,
)
from rest_provisioner.engine.import_id import ImportId, parse_import_id
from rest_provisioner.engine.lifecycle import ResourceLifecycleController
from rest_provisioner.engine.options import OperationOptions, ReadSearch, build_options
from rest_provisioner.engine.paths import resolve_path
from rest_provisioner.engine.transport import CreateResult, RequestsTransport, Transport
from rest_provisioner.engine.types import Action, ApplyResult, Plan, PlanMetadata, ResourceChange

__all__ = [
    "Action",
    "ApplyCanceled",
    "ApplyError",
    "ApplyResult",
    "CreateResult",
    "DependencyCycleError",
    "DriftParseError",
    "DriftPolicy",
    "DuplicateAddressError",
    "EngineError",
    "ImportId",
    "InvalidImportFormatError",
    "InvalidPayloadError",
    "MissingIdentifierError",
    "NotFoundError",
    "OperationOptions",
    "Plan",
    "PlanMetadata",
    "ReadSearch",
    "ReconciledState",
    "RequestsTransport",
    "ResourceChange",
    "ResourceLifecycleController",
    "RestEngine",
    "StalePlanError",
    "StateEndpointMismatchError",
    "StateLockError",
    "Transport",
    "TransportError",
    "ValidationError",
    "build_options",
    "detect_drift",
    "parse_import_id",
    "resolve_path",
]
