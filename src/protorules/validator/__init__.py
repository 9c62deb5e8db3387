"""Message validation against a compiled schema."""
from __future__ import annotations

from protorules.validator.compiler import (
    CompiledSchema,
    FieldPlan,
    MessagePlan,
    SchemaCompiler,
    ValuePlan,
    cache_size,
    clear_cache,
    compile_schema,
)
from protorules.validator.presence import (
    FieldState,
    is_missing,
    is_zero_element,
    is_zero_value,
    resolve_presence,
)
from protorules.validator.validator import Validator, validate
from protorules.validator.violations import ValidationResult, Violation

__all__ = [
    "CompiledSchema",
    "FieldPlan",
    "FieldState",
    "MessagePlan",
    "SchemaCompiler",
    "ValidationResult",
    "Validator",
    "ValuePlan",
    "Violation",
    "cache_size",
    "clear_cache",
    "compile_schema",
    "is_missing",
    "is_zero_element",
    "is_zero_value",
    "resolve_presence",
    "validate",
]
