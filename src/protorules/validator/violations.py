"""Violation records and the validation result container."""
from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Violation:
    """One failed constraint on one field.

    Parameters
    ----------
    field_path:
        Location of the offending value, e.g. ``"address.lines[2]"`` or
        ``'labels["env"]'``.  Empty for rules on the root message.
    rule_id:
        Identifier of the failed rule, e.g. ``"string.min_len"``,
        ``"required"`` or a ``cel`` rule's id.
    message:
        Rendered human-readable explanation.
    for_key:
        True when the violation concerns a map key rather than its value.
    """

    field_path: str
    rule_id: str
    message: str
    for_key: bool = False

    def __str__(self) -> str:
        location = f"{self.field_path}: " if self.field_path else ""
        key = " (key)" if self.for_key else ""
        return f"{location}{self.message} [{self.rule_id}]{key}"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "field_path": self.field_path,
            "rule_id": self.rule_id,
            "message": self.message,
        }
        if self.for_key:
            out["for_key"] = True
        return out


@dataclass(frozen=True)
class ValidationResult:
    """The ordered violations found in one validation call.

    An empty result means the message is valid.  ``len(result)`` is
    the number of violations, so a valid result is falsy; prefer the
    explicit ``valid`` property in conditions.
    """

    violations: tuple[Violation, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.violations

    def __iter__(self) -> Iterator[Violation]:
        return iter(self.violations)

    def __len__(self) -> int:
        return len(self.violations)

    def __getitem__(self, index: int) -> Violation:
        return self.violations[index]

    def rule_ids(self) -> list[str]:
        """Return the rule id of every violation, in order."""
        return [v.rule_id for v in self.violations]

    def for_path(self, field_path: str) -> list[Violation]:
        """Return the violations reported at exactly ``field_path``."""
        return [v for v in self.violations if v.field_path == field_path]

    def to_dicts(self) -> list[dict[str, Any]]:
        return [v.to_dict() for v in self.violations]
