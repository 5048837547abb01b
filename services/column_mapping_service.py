"""
Column mapping between spreadsheet headers and the captação schema.

Each header is scored against every target field still unclaimed:

    1.00  normalized header == normalized field key
    0.98  normalized header == normalized field label
    0.90  either contains the other (key or label)
    0.85  token overlap ratio >= 0.6
    0.75  at least one shared token

The best field is accepted when it scores >= 0.75. Headers are processed
in file order and a claimed field leaves the pool, so the proposal is
deterministic and one-to-one.
"""

from dataclasses import dataclass, replace
from typing import Optional
import structlog

from models.captacao import TargetField, TARGET_FIELDS, get_target_field
from utils.text_utils import normalize_header, tokenize
from exceptions import (
    MappingIncompleteError,
    MappingConflictError,
    UnknownTargetFieldError,
)

logger = structlog.get_logger(__name__)

MIN_MATCH_SCORE = 0.75


@dataclass
class ColumnMapping:
    """Mapping of one source column; mutated by operator overrides."""
    source_column: str
    target_field: Optional[TargetField] = None
    is_selected: bool = False
    is_required: bool = False

    @property
    def target_key(self) -> Optional[str]:
        return self.target_field.key if self.target_field else None


@dataclass(frozen=True)
class _FieldProfile:
    field: TargetField
    key_norm: str
    label_norm: str
    tokens: frozenset[str]


def _profile(target: TargetField) -> _FieldProfile:
    return _FieldProfile(
        field=target,
        key_norm=normalize_header(target.key),
        label_norm=normalize_header(target.label),
        tokens=frozenset(tokenize(target.label)) | frozenset(tokenize(target.key)),
    )


def _score(header_norm: str, header_tokens: list[str], profile: _FieldProfile) -> float:
    if not header_norm:
        return 0.0
    if header_norm == profile.key_norm:
        return 1.0
    if header_norm == profile.label_norm:
        return 0.98
    if (
        profile.key_norm in header_norm
        or header_norm in profile.key_norm
        or profile.label_norm in header_norm
        or header_norm in profile.label_norm
    ):
        return 0.9

    source_tokens = set(header_tokens)
    overlap = sum(1 for token in profile.tokens if token in source_tokens)
    denom = max(1, max(len(header_tokens), len(profile.tokens)))
    if overlap / denom >= 0.6:
        return 0.85
    if overlap >= 1:
        return 0.75
    return 0.0


def score_header(header: str, target: TargetField) -> float:
    """Score one header against one target field."""
    return _score(normalize_header(header), tokenize(header), _profile(target))


def propose_mapping(
    headers: list[str],
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> list[ColumnMapping]:
    """
    Propose an initial mapping for every header.

    Args:
        headers: Source headers in file order
        fields: Target schema

    Returns:
        One ColumnMapping per header, in header order
    """
    profiles = [_profile(f) for f in fields]
    claimed: set[str] = set()
    mappings: list[ColumnMapping] = []

    for header in headers:
        header_norm = normalize_header(header)
        header_tokens = tokenize(header)

        best: Optional[_FieldProfile] = None
        best_score = 0.0
        for profile in profiles:
            if profile.field.key in claimed:
                continue
            score = _score(header_norm, header_tokens, profile)
            # Strictly greater: ties go to the earlier field
            if score > best_score:
                best, best_score = profile, score

        if best is not None and best_score >= MIN_MATCH_SCORE:
            claimed.add(best.field.key)
            mappings.append(ColumnMapping(
                source_column=header,
                target_field=best.field,
                is_selected=True,
                is_required=best.field.required,
            ))
            logger.debug(
                "column_auto_mapped",
                column=header,
                field=best.field.key,
                score=best_score
            )
        else:
            mappings.append(ColumnMapping(source_column=header))

    logger.info(
        "mapping_proposed",
        columns=len(headers),
        mapped=len(claimed),
        unmapped=[m.source_column for m in mappings if m.target_field is None]
    )

    return mappings


def _claimed_by(mappings: list[ColumnMapping], field_key: str, exclude: int) -> Optional[ColumnMapping]:
    for i, mapping in enumerate(mappings):
        if i != exclude and mapping.is_selected and mapping.target_key == field_key:
            return mapping
    return None


def available_fields(
    mappings: list[ColumnMapping],
    index: int,
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> list[TargetField]:
    """
    Fields column `index` may be mapped to.

    Only other *selected* mappings block a field; unselected ones do not.
    """
    used = {
        m.target_key
        for i, m in enumerate(mappings)
        if i != index and m.is_selected and m.target_field is not None
    }
    return [f for f in fields if f.key not in used]


def assign_field(
    mappings: list[ColumnMapping],
    index: int,
    field_key: Optional[str],
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> ColumnMapping:
    """
    Point column `index` at a target field, or clear it with None.

    Raises:
        UnknownTargetFieldError: If field_key is not in the schema
        MappingConflictError: If another selected column already has the field
    """
    mapping = mappings[index]

    if field_key is None:
        mapping.target_field = None
        mapping.is_required = False
        return mapping

    target = get_target_field(field_key, fields)
    if target is None:
        raise UnknownTargetFieldError(field_key)

    if mapping.is_selected:
        owner = _claimed_by(mappings, field_key, exclude=index)
        if owner is not None:
            raise MappingConflictError(field_key, owner.source_column)

    mapping.target_field = target
    mapping.is_required = target.required
    logger.info("column_mapping_assigned", column=mapping.source_column, field=field_key)
    return mapping


def set_selected(
    mappings: list[ColumnMapping],
    index: int,
    selected: bool
) -> ColumnMapping:
    """
    Include or exclude column `index` from the import.

    Raises:
        MappingConflictError: If selecting would map a field twice
    """
    mapping = mappings[index]
    if selected and mapping.target_field is not None:
        owner = _claimed_by(mappings, mapping.target_key, exclude=index)
        if owner is not None:
            raise MappingConflictError(mapping.target_key, owner.source_column)
    mapping.is_selected = selected
    return mapping


@dataclass(frozen=True)
class MappingOverride:
    """One operator edit; `assign` with field_key None clears the target."""
    index: int
    assign: bool = False
    field_key: Optional[str] = None
    selected: Optional[bool] = None


def apply_overrides(
    mappings: list[ColumnMapping],
    overrides: list[MappingOverride],
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> list[ColumnMapping]:
    """
    Apply a batch of edits to a copy of `mappings`.

    Conflicts are checked on the final state, so two columns can swap
    fields in one batch. The input list is never modified.

    Raises:
        UnknownTargetFieldError: If an edit names a field not in the schema
        MappingConflictError: If two selected columns end up on one field
    """
    draft = [replace(m) for m in mappings]

    for override in overrides:
        mapping = draft[override.index]
        if override.assign:
            if override.field_key is None:
                mapping.target_field = None
            else:
                target = get_target_field(override.field_key, fields)
                if target is None:
                    raise UnknownTargetFieldError(override.field_key)
                mapping.target_field = target
            mapping.is_required = bool(mapping.target_field and mapping.target_field.required)
        if override.selected is not None:
            mapping.is_selected = override.selected

    owners: dict[str, ColumnMapping] = {}
    for mapping in confirmed_mappings(draft):
        owner = owners.setdefault(mapping.target_key, mapping)
        if owner is not mapping:
            raise MappingConflictError(mapping.target_key, owner.source_column)

    logger.info("column_mapping_updated", edits=len(overrides))
    return draft


def confirmed_mappings(mappings: list[ColumnMapping]) -> list[ColumnMapping]:
    """Mappings that take part in the import."""
    return [m for m in mappings if m.is_selected and m.target_field is not None]


def missing_required_fields(
    mappings: list[ColumnMapping],
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> list[TargetField]:
    mapped = {m.target_key for m in confirmed_mappings(mappings)}
    return [f for f in fields if f.required and f.key not in mapped]


def validate_mapping(
    mappings: list[ColumnMapping],
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> list[ColumnMapping]:
    """
    Check every required field has a selected source column.

    Returns:
        The confirmed mappings

    Raises:
        MappingIncompleteError: Listing every unmapped required field
    """
    missing = missing_required_fields(mappings, fields)
    if missing:
        logger.warning("mapping_incomplete", missing=[f.key for f in missing])
        raise MappingIncompleteError(
            missing=[f.key for f in missing],
            labels=[f.label for f in missing]
        )
    return confirmed_mappings(mappings)
