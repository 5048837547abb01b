"""
Captação target schema.

The destination table has a fixed, ordered set of columns. Uploaded
spreadsheet headers are mapped onto these fields before any row is read.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FieldType(str, Enum):
    """How a cell is coerced before insert."""
    DATE = "date"
    DECIMAL = "decimal"
    TEXT = "text"


@dataclass(frozen=True)
class TargetField:
    """One column of the destination table."""
    key: str
    label: str
    required: bool
    type: FieldType


TARGET_FIELDS: tuple[TargetField, ...] = (
    TargetField("data_captacao", "Data Captação", True, FieldType.DATE),
    TargetField("cod_assessor", "Código Assessor", True, FieldType.TEXT),
    TargetField("cod_cliente", "Código Cliente", True, FieldType.TEXT),
    TargetField("tipo_captacao", "Tipo Captação", True, FieldType.TEXT),
    TargetField("aux", "Aux", True, FieldType.TEXT),
    TargetField("valor_captacao", "Valor Captação", True, FieldType.DECIMAL),
    TargetField("data_atualizacao", "Data Atualização", True, FieldType.DATE),
    TargetField("tipo_pessoa", "Tipo Pessoa", True, FieldType.TEXT),
)

# Order matters: duplicate keys are compared as tuples
NATURAL_KEY_FIELDS: tuple[str, ...] = (
    "data_captacao",
    "data_atualizacao",
    "cod_cliente",
    "tipo_captacao",
    "cod_assessor",
    "valor_captacao",
)


def get_target_field(
    key: str,
    fields: tuple[TargetField, ...] = TARGET_FIELDS
) -> Optional[TargetField]:
    """Look up a target field by key."""
    for target in fields:
        if target.key == key:
            return target
    return None
