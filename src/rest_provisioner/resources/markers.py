"""Declarative field markers for resource models.

``Compare`` attaches to Pydantic fields via ``Annotated`` and tells the engine
how to compare a desired value with the stored one when planning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

CompareStrategy: TypeAlias = Literal["exact", "set", "json"]


@dataclass(frozen=True, slots=True)
class Compare:
    """How the engine should compare the field.

    - ``"exact"``: strict equality comparison
    - ``"set"``: order-insensitive list comparison
    - ``"json"``: both sides are JSON text, compared as parsed documents
    """

    strategy: CompareStrategy


def _find_compare(field_info: FieldInfo) -> Compare | None:
    return next((m for m in field_info.metadata if isinstance(m, Compare)), None)


def collect_compare_strategies(model_or_cls: Any) -> dict[str, CompareStrategy]:
    """Collect per-field compare strategies from ``Compare`` markers."""
    cls = model_or_cls if isinstance(model_or_cls, type) else type(model_or_cls)
    return {
        name: marker.strategy
        for name, fi in cls.model_fields.items()
        if (marker := _find_compare(fi)) is not None
    }
