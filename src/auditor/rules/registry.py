# src/auditor/rules/registry.py
import importlib
import logging
import pkgutil
from typing import Dict, Iterable, List, Optional

from auditor.errors import DuplicateRuleError
from auditor.managers.config_manager import config_manager
from auditor.rules.base import Rule

logger = logging.getLogger(__name__)

PACKS_PACKAGE = "auditor.rules.packs"


class RulePackRegistry:
    """
    Holds the generic WCAG pack and the domain-specific overlay.

    Registration is append-only and happens at startup. `AuditRunManager` freezes
    the registry when it is created, after which it is only ever read.
    """

    def __init__(self, rules: Iterable[Rule] = ()):
        self._generic: List[Rule] = []
        self._domain: List[Rule] = []
        self._by_id: Dict[str, Rule] = {}
        self._frozen = False
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule) -> None:
        """
        Raises:
            DuplicateRuleError: A rule with the same id is already registered.
            RuntimeError: The registry was frozen by an engine that is serving runs.
        """
        if self._frozen:
            raise RuntimeError(f"Cannot register rule '{rule.id}': registry is frozen")
        if rule.id in self._by_id:
            raise DuplicateRuleError(rule.id)
        self._by_id[rule.id] = rule
        if rule.is_domain_specific:
            self._domain.append(rule)
        else:
            self._generic.append(rule)
        logger.debug("Registered rule %s (%s)", rule.id, "domain" if rule.is_domain_specific else "generic")

    def generic(self) -> List[Rule]:
        return list(self._generic)

    def domain_specific(self) -> List[Rule]:
        return list(self._domain)

    def all(self) -> List[Rule]:
        """Generic pack first, then the domain overlay, each in registration order."""
        return self._generic + self._domain

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._by_id.get(rule_id)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def freeze(self) -> None:
        """Closes the registry to further registration; reads are unaffected."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @classmethod
    def discover(cls, package: str = PACKS_PACKAGE, disabled: Optional[Iterable[str]] = None) -> "RulePackRegistry":
        """
        Builds a registry from every module in the packs package that exposes a `RULES` list.

        Modules are loaded in order of their `PRIORITY` (then name). Rule ids listed in
        `disabled` (default: config `rules.disabled`) are skipped.
        """
        if disabled is None:
            disabled = config_manager.get_nested("rules.disabled", [])
        disabled = set(disabled)

        pkg = importlib.import_module(package)
        modules = []
        for _, name, _ in pkgutil.iter_modules(pkg.__path__):
            full_name = f"{package}.{name}"
            try:
                module = importlib.import_module(full_name)
            except ImportError as e:
                logger.error("Error loading rule pack %s: %s", name, e)
                continue
            if not isinstance(getattr(module, "RULES", None), list):
                logger.debug("Skipping %s: no RULES list", full_name)
                continue
            modules.append((getattr(module, "PRIORITY", 100), name, module))

        registry = cls()
        for _, name, module in sorted(modules, key=lambda m: (m[0], m[1])):
            for rule in module.RULES:
                if rule.id in disabled:
                    logger.info("Rule %s disabled by configuration", rule.id)
                    continue
                registry.register(rule)
            logger.debug("Rule pack loaded: %s (%d rules)", name, len(module.RULES))

        logger.info(
            "Rule registry ready: %d generic, %d domain-specific",
            len(registry._generic), len(registry._domain)
        )
        return registry
