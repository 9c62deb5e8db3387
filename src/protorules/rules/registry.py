"""Registry of rule families.

Maps a family name (the key used under a field's ``rules``, e.g.
``"string"`` or ``"int32"``) to a ``RuleFamily`` subclass.  There is
no module-level registry: ``default_registry()`` builds a fresh one
holding the built-in families and the compiled schema keeps a
reference to the registry it was compiled with.

Third-party families register by declaring entry-points in their own
``pyproject.toml`` under the "protorules.rules" group.

Example
-------
Add a family for a custom well-known type::

    from protorules.rules import RuleFamily, default_registry

    registry = default_registry()

    @registry.register("money")
    class MoneyRules(RuleFamily):
        name = "money"
        rules = ("positive",)

        def applies_to(self, target):
            return target.type.type_name == "acme.Money"

        def compile(self, params, ctx):
            ...

    validator = Validator(schema, registry=registry)
"""
from __future__ import annotations

import importlib.metadata
import logging
from collections.abc import Callable

from protorules.rules.base import RuleFamily, RuleTarget

logger = logging.getLogger(__name__)

ENTRYPOINT_GROUP = "protorules.rules"


class RuleFamilyNotFoundError(KeyError):
    """Raised when a requested family name is not in the registry."""

    def __init__(self, name: str) -> None:
        self.family_name = name
        super().__init__(
            f"Rule family {name!r} is not registered. "
            "Check that the package providing it is installed and its entry-points are declared."
        )


class RuleFamilyAlreadyRegisteredError(ValueError):
    """Raised when attempting to register a name that already exists."""

    def __init__(self, name: str) -> None:
        self.family_name = name
        super().__init__(
            f"Rule family {name!r} is already registered. "
            "Use a unique name or explicitly deregister the existing entry first."
        )


class RuleRegistry:
    """Name-keyed registry of ``RuleFamily`` classes.

    Families are registered either via the ``@register`` decorator,
    ``register_class``, or lazily via ``load_entrypoints`` for
    installed packages.  Instances are created on first lookup and
    reused; families are stateless.
    """

    def __init__(self) -> None:
        self._families: dict[str, type[RuleFamily]] = {}
        self._instances: dict[str, RuleFamily] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str) -> Callable[[type[RuleFamily]], type[RuleFamily]]:
        """Return a class decorator that registers the decorated family.

        Raises
        ------
        RuleFamilyAlreadyRegisteredError
            If ``name`` is already in use in this registry.
        TypeError
            If the decorated class does not subclass ``RuleFamily``.
        """

        def decorator(cls: type[RuleFamily]) -> type[RuleFamily]:
            self.register_class(name, cls)
            return cls

        return decorator

    def register_class(self, name: str, cls: type[RuleFamily]) -> None:
        """Register a family class directly without using the decorator."""
        if name in self._families:
            raise RuleFamilyAlreadyRegisteredError(name)
        if not (isinstance(cls, type) and issubclass(cls, RuleFamily)):
            raise TypeError(
                f"Cannot register {cls!r} under {name!r}: it must be a subclass of RuleFamily."
            )
        self._families[name] = cls
        logger.debug("Registered rule family %r -> %s", name, cls.__qualname__)

    def deregister(self, name: str) -> None:
        """Remove a family from the registry.

        Raises
        ------
        RuleFamilyNotFoundError
            If ``name`` is not currently registered.
        """
        if name not in self._families:
            raise RuleFamilyNotFoundError(name)
        del self._families[name]
        self._instances.pop(name, None)
        logger.debug("Deregistered rule family %r", name)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> RuleFamily:
        """Return the (shared) family instance registered under ``name``.

        Raises
        ------
        RuleFamilyNotFoundError
            If no family is registered under ``name``.
        """
        instance = self._instances.get(name)
        if instance is None:
            try:
                cls = self._families[name]
            except KeyError:
                raise RuleFamilyNotFoundError(name) from None
            instance = self._instances[name] = cls()
        return instance

    def families_for(self, target: RuleTarget) -> list[str]:
        """Return the names of all families whose rules apply to ``target``."""
        return [name for name in self.list_families() if self.get(name).applies_to(target)]

    def list_families(self) -> list[str]:
        """Return a sorted list of all registered family names."""
        return sorted(self._families)

    def __contains__(self, name: object) -> bool:
        return name in self._families

    def __len__(self) -> int:
        return len(self._families)

    def __repr__(self) -> str:
        return f"RuleRegistry(families={self.list_families()})"

    # ------------------------------------------------------------------
    # Entry-point loading
    # ------------------------------------------------------------------

    def load_entrypoints(self, group: str = ENTRYPOINT_GROUP) -> None:
        """Discover and register families declared as package entry-points.

        Entry-points whose name is already registered are skipped, so
        repeated calls are idempotent.  A failing entry-point is logged
        and skipped.

        Example
        -------
        In a downstream package's ``pyproject.toml``::

            [project.entry-points."protorules.rules"]
            money = "acme_rules.money:MoneyRules"
        """
        for ep in importlib.metadata.entry_points(group=group):
            if ep.name in self._families:
                logger.debug("Entry-point %r already registered; skipping.", ep.name)
                continue
            try:
                cls = ep.load()
            except Exception:
                logger.exception(
                    "Failed to load entry-point %r from group %r; skipping.", ep.name, group
                )
                continue
            try:
                self.register_class(ep.name, cls)
            except (RuleFamilyAlreadyRegisteredError, TypeError):
                logger.warning(
                    "Entry-point %r loaded but could not be registered; skipping.", ep.name
                )


def default_registry(*, load_plugins: bool = True) -> RuleRegistry:
    """Build a registry holding every built-in family.

    Parameters
    ----------
    load_plugins:
        Also register families from the "protorules.rules" entry-point
        group.
    """
    from protorules.rules.containers import MapRules, RepeatedRules
    from protorules.rules.enums import BoolRules, EnumRules
    from protorules.rules.numeric import NUMERIC_FAMILIES
    from protorules.rules.strings import BytesRules, StringRules
    from protorules.rules.wellknown import (
        AnyRules,
        DurationRules,
        FieldMaskRules,
        TimestampRules,
    )

    registry = RuleRegistry()
    builtin: list[type[RuleFamily]] = [
        StringRules,
        BytesRules,
        BoolRules,
        EnumRules,
        RepeatedRules,
        MapRules,
        TimestampRules,
        DurationRules,
        AnyRules,
        FieldMaskRules,
        *NUMERIC_FAMILIES,
    ]
    for cls in builtin:
        registry.register_class(cls.name, cls)
    if load_plugins:
        registry.load_entrypoints()
    return registry
