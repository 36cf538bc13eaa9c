"""Row-to-event mapping (pure) and mapping definitions."""

from inventory_ingestion.mapping.engine import (
    apply_mapping,
    apply_transform,
    coerce_value,
    parse_kind,
    to_candidates,
)
from inventory_ingestion.mapping.loader import (
    BUILTIN_MAPPINGS,
    compile_mapping,
    load_mapping_file,
)

__all__ = [
    "BUILTIN_MAPPINGS",
    "apply_mapping",
    "apply_transform",
    "coerce_value",
    "compile_mapping",
    "load_mapping_file",
    "parse_kind",
    "to_candidates",
]
