# Aggregation stage descriptors and builders
# mflix/data_access/stages.py

"""
Aggregation stages as immutable data.

Each stage kind is its own frozen Pydantic model carrying exactly the
parameters needed to render it. ``to_mongo()`` renders the MongoDB stage
document; ``stage_from_mongo()`` parses one back, so a pipeline built here
can be rendered and re-derived without losing its inputs.

The ``build_*`` functions are the public constructors. They validate their
inputs and raise ``ConfigurationError`` before anything reaches the store.
Stages know nothing about their position in a pipeline; ordering is the
caller's job (see ``mflix.services.facets``).

Sorting: ties on the sort key come back in the store's natural order,
which is not deterministic.
"""

import logging
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple, Union

from pymongo import ASCENDING, DESCENDING
from pydantic import BaseModel, ConfigDict

from mflix.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

TEXT_SCORE = "textScore"
TEXT_FIELD = "$text"
DEFAULT_BUCKET_OUTPUT: Dict[str, Any] = {"count": {"$sum": 1}}


class StageKind(str, Enum):
    """The closed set of stage kinds, keyed by their MongoDB operator."""
    MATCH = "$match"
    SORT = "$sort"
    SKIP = "$skip"
    LIMIT = "$limit"
    BUCKET = "$bucket"
    ADD_FIELDS = "$addFields"
    FACET = "$facet"
    COUNT = "$count"
    LOOKUP = "$lookup"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# --- Match predicates ---
class Equals(_Frozen):
    value: Any

    def to_filter(self, field: str) -> Dict[str, Any]:
        return {field: self.value}


class InSet(_Frozen):
    values: Tuple[Any, ...]

    def to_filter(self, field: str) -> Dict[str, Any]:
        # No values means no restriction
        if not self.values:
            return {}
        return {field: {"$in": list(self.values)}}


class TextSearch(_Frozen):
    search: str

    def to_filter(self, field: str) -> Dict[str, Any]:
        return {TEXT_FIELD: {"$search": self.search}}


Predicate = Union[Equals, InSet, TextSearch]


# --- Stages ---
class MatchStage(_Frozen):
    kind: ClassVar[StageKind] = StageKind.MATCH
    field: str
    predicate: Predicate

    def to_filter(self) -> Dict[str, Any]:
        """The bare query document, usable with ``find()`` as well."""
        return self.predicate.to_filter(self.field)

    def to_mongo(self) -> Dict[str, Any]:
        return {self.kind.value: self.to_filter()}

    @classmethod
    def from_mongo(cls, body: Dict[str, Any]) -> "MatchStage":
        if len(body) != 1:
            raise ConfigurationError(f"Cannot derive a single-field match from {body}")
        field, condition = next(iter(body.items()))
        if field == TEXT_FIELD:
            return build_match(TEXT_FIELD, TextSearch(search=condition["$search"]))
        if isinstance(condition, dict) and any(key.startswith("$") for key in condition):
            if set(condition) != {"$in"}:
                raise ConfigurationError(f"Unsupported match operator(s) for '{field}': {list(condition)}")
            return build_match(field, InSet(values=tuple(condition["$in"])))
        return build_match(field, Equals(value=condition))


class SortStage(_Frozen):
    kind: ClassVar[StageKind] = StageKind.SORT
    field: str
    direction: Union[int, str] = DESCENDING

    def _key(self) -> Any:
        if self.direction == TEXT_SCORE:
            return {"$meta": TEXT_SCORE}
        return self.direction

    def to_sort_spec(self) -> List[Tuple[str, Any]]:
        """Sort specification in the form ``Cursor.sort()`` accepts."""
        return [(self.field, self._key())]

    def to_mongo(self) -> Dict[str, Any]:
        return {self.kind.value: {self.field: self._key()}}

    @classmethod
    def from_mongo(cls, body: Dict[str, Any]) -> "SortStage":
        if len(body) != 1:
            raise ConfigurationError(f"Only single-key sorts are supported, got {body}")
        field, key = next(iter(body.items()))
        if isinstance(key, dict):
            return build_sort(field, key.get("$meta"))
        return build_sort(field, key)


class SkipStage(_Frozen):
    kind: ClassVar[StageKind] = StageKind.SKIP
    n: int

    def to_mongo(self) -> Dict[str, Any]:
        return {self.kind.value: self.n}

    @classmethod
    def from_mongo(cls, body: int) -> "SkipStage":
        return build_skip(body)


class LimitStage(_Frozen):
    kind: ClassVar[StageKind] = StageKind.LIMIT
    n: int

    def to_mongo(self) -> Dict[str, Any]:
        return {self.kind.value: self.n}

    @classmethod
    def from_mongo(cls, body: int) -> "LimitStage":
        return build_limit(body)


class BucketStage(_Frozen):
    """Histogram over ``group_by``: one bin per ``[b_i, b_i+1)`` plus the default bin."""
    kind: ClassVar[StageKind] = StageKind.BUCKET
    group_by: str
    boundaries: Tuple[Union[int, float], ...]
    default: Any
    output: Dict[str, Any]

    def to_mongo(self) -> Dict[str, Any]:
        return {
            self.kind.value: {
                "groupBy": f"${self.group_by}",
                "boundaries": list(self.boundaries),
                "default": self.default,
                "output": self.output,
            }
        }

    @classmethod
    def from_mongo(cls, body: Dict[str, Any]) -> "BucketStage":
        return build_bucket(
            body["groupBy"].lstrip("$"),
            body["boundaries"],
            body.get("default"),
            body.get("output"),
        )


class AddFieldsStage(_Frozen):
    kind: ClassVar[StageKind] = StageKind.ADD_FIELDS
    assignments: Dict[str, Any]

    def to_mongo(self) -> Dict[str, Any]:
        return {self.kind.value: dict(self.assignments)}

    @classmethod
    def from_mongo(cls, body: Dict[str, Any]) -> "AddFieldsStage":
        return build_add_fields(body)


class CountStage(_Frozen):
    kind: ClassVar[StageKind] = StageKind.COUNT
    field: str

    def to_mongo(self) -> Dict[str, Any]:
        return {self.kind.value: self.field}

    @classmethod
    def from_mongo(cls, body: str) -> "CountStage":
        return build_count(body)


class LookupStage(_Frozen):
    kind: ClassVar[StageKind] = StageKind.LOOKUP
    from_collection: str
    local_field: str
    foreign_field: str
    as_field: str

    def to_mongo(self) -> Dict[str, Any]:
        return {
            self.kind.value: {
                "from": self.from_collection,
                "localField": self.local_field,
                "foreignField": self.foreign_field,
                "as": self.as_field,
            }
        }

    @classmethod
    def from_mongo(cls, body: Dict[str, Any]) -> "LookupStage":
        return build_lookup(body["from"], body["localField"], body["foreignField"], body["as"])


class FacetStage(_Frozen):
    """Fans the incoming documents out to named sub-pipelines."""
    kind: ClassVar[StageKind] = StageKind.FACET
    facets: Dict[str, "Pipeline"]

    def to_mongo(self) -> Dict[str, Any]:
        return {self.kind.value: {name: sub.to_mongo() for name, sub in self.facets.items()}}

    @classmethod
    def from_mongo(cls, body: Dict[str, Any]) -> "FacetStage":
        return build_facet({name: Pipeline.from_mongo(sub) for name, sub in body.items()})


Stage = Union[
    MatchStage,
    SortStage,
    SkipStage,
    LimitStage,
    BucketStage,
    AddFieldsStage,
    FacetStage,
    CountStage,
    LookupStage,
]


class Pipeline(_Frozen):
    """An ordered sequence of stages; each stage consumes the previous stage's output."""
    stages: Tuple[Stage, ...] = ()

    def then(self, *stages: Stage) -> "Pipeline":
        return Pipeline(stages=self.stages + tuple(stages))

    def kinds(self) -> List[StageKind]:
        return [stage.kind for stage in self.stages]

    def to_mongo(self) -> List[Dict[str, Any]]:
        return [stage.to_mongo() for stage in self.stages]

    @classmethod
    def from_mongo(cls, docs: Sequence[Dict[str, Any]]) -> "Pipeline":
        return cls(stages=tuple(stage_from_mongo(doc) for doc in docs))


FacetStage.model_rebuild()
Pipeline.model_rebuild()

_STAGE_TYPES = {
    stage_type.kind: stage_type
    for stage_type in (
        MatchStage, SortStage, SkipStage, LimitStage, BucketStage,
        AddFieldsStage, FacetStage, CountStage, LookupStage,
    )
}


def stage_from_mongo(doc: Dict[str, Any]) -> Stage:
    """Parses one rendered stage document back into its stage model."""
    if not isinstance(doc, dict) or len(doc) != 1:
        raise ConfigurationError(f"A stage document must have exactly one operator key, got {doc!r}")
    operator, body = next(iter(doc.items()))
    try:
        kind = StageKind(operator)
    except ValueError:
        raise ConfigurationError(f"Unsupported pipeline stage: {operator}")
    return _STAGE_TYPES[kind].from_mongo(body)


# --- Builders ---

def build_match(field: str, predicate: Predicate) -> MatchStage:
    """
    Builds a ``$match`` stage for ``field``.

    Args:
        field: Document field (dotted paths allowed). Ignored by ``TextSearch``,
            which always searches the collection's text index.
        predicate: ``Equals``, ``InSet`` or ``TextSearch``.

    Raises:
        ConfigurationError: If the field name is empty.
    """
    if not field:
        raise ConfigurationError("Match field name must not be empty.")
    return MatchStage(field=field, predicate=predicate)


def build_sort(field: str, direction: Union[int, str] = DESCENDING) -> SortStage:
    """Builds a single-key ``$sort``. ``direction`` is 1, -1 or ``TEXT_SCORE``."""
    if not field:
        raise ConfigurationError("Sort field name must not be empty.")
    if direction not in (ASCENDING, DESCENDING, TEXT_SCORE):
        raise ConfigurationError(f"Invalid sort direction for '{field}': {direction!r}")
    return SortStage(field=field, direction=direction)


def build_skip(n: int) -> SkipStage:
    if n < 0:
        raise ConfigurationError(f"Skip must be >= 0, got {n}")
    return SkipStage(n=n)


def build_limit(n: int) -> LimitStage:
    # MongoDB rejects {"$limit": 0}
    if n < 1:
        raise ConfigurationError(f"Limit must be >= 1, got {n}")
    return LimitStage(n=n)


def build_bucket(
    group_by: str,
    boundaries: Sequence[Union[int, float]],
    default: Any = "other",
    output: Optional[Dict[str, Any]] = None,
) -> BucketStage:
    """
    Builds a ``$bucket`` histogram stage.

    Documents whose ``group_by`` value lies in ``[boundaries[i], boundaries[i+1])``
    land in the bin keyed by ``boundaries[i]``. Missing or out-of-range values
    land in the ``default`` bin, which the store emits last.

    Raises:
        ConfigurationError: If ``group_by`` is empty, or ``boundaries`` has fewer
            than 2 entries or is not strictly ascending.
    """
    if not group_by:
        raise ConfigurationError("Bucket groupBy field must not be empty.")
    boundaries = tuple(boundaries)
    if len(boundaries) < 2:
        raise ConfigurationError(f"Bucket boundaries need at least 2 entries, got {list(boundaries)}")
    if any(lo >= hi for lo, hi in zip(boundaries, boundaries[1:])):
        raise ConfigurationError(f"Bucket boundaries must be strictly ascending, got {list(boundaries)}")
    if default is not None and boundaries[0] <= _as_number(default) < boundaries[-1]:
        raise ConfigurationError(f"Default bucket {default!r} must lie outside the boundary range")
    return BucketStage(
        group_by=group_by,
        boundaries=boundaries,
        default=default,
        output=dict(output) if output is not None else dict(DEFAULT_BUCKET_OUTPUT),
    )


def _as_number(value: Any) -> float:
    # Non-numeric default keys (e.g. "other") never collide with a numeric bin
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return float("inf")


def build_add_fields(fields: Dict[str, Any]) -> AddFieldsStage:
    if not fields:
        raise ConfigurationError("$addFields needs at least one field.")
    return AddFieldsStage(assignments=dict(fields))


def build_facet(facets: Dict[str, Union[Pipeline, Sequence[Stage]]]) -> FacetStage:
    if not facets:
        raise ConfigurationError("$facet needs at least one named sub-pipeline.")
    normalized: Dict[str, Pipeline] = {}
    for name, sub in facets.items():
        sub_pipeline = sub if isinstance(sub, Pipeline) else Pipeline(stages=tuple(sub))
        if not sub_pipeline.stages:
            raise ConfigurationError(f"Facet '{name}' has an empty sub-pipeline.")
        normalized[name] = sub_pipeline
    return FacetStage(facets=normalized)


def build_count(output_field: str) -> CountStage:
    """Builds a ``$count`` stage writing the input cardinality to ``output_field``."""
    if not output_field or output_field.startswith("$") or "." in output_field:
        raise ConfigurationError(f"Invalid $count output field: {output_field!r}")
    return CountStage(field=output_field)


def build_lookup(from_collection: str, local_field: str, foreign_field: str, as_field: str) -> LookupStage:
    if not all((from_collection, local_field, foreign_field, as_field)):
        raise ConfigurationError("$lookup needs from, localField, foreignField and as.")
    return LookupStage(
        from_collection=from_collection,
        local_field=local_field,
        foreign_field=foreign_field,
        as_field=as_field,
    )
