"""Strategy registry for healing strategy discovery and management."""

import logging
import threading
import warnings
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from ..models.healing_models import FailureType, HealingContext, RegistryStatistics
from .base import HealingStrategy, ObservablePlugin, PluginLifecycle
from .errors import ConfigurationWarning, DuplicateStrategyError
from .version import PluginKey, SemanticVersion

logger = logging.getLogger(__name__)


class StrategyRegistry:
    """
    Registry of healing strategies indexed by supported failure type.

    PATTERN: Explicit registry object, constructed at startup and passed by
    reference (no process-wide singleton)
    CRITICAL: Thread-safe registration and retrieval; reads return snapshots
    GOTCHA: Strategies are keyed by (name, semantic version), so several
    versions of one strategy may coexist; only the latest is a candidate
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._strategies: Dict[PluginKey, HealingStrategy] = {}
        self._by_type: Dict[FailureType, List[PluginKey]] = {t: [] for t in FailureType}
        self._lifecycles: Dict[PluginKey, PluginLifecycle] = {}
        self._observables: Dict[PluginKey, ObservablePlugin] = {}

    def register(self, strategy: HealingStrategy, strict: bool = False) -> bool:
        """
        Register a strategy.

        Args:
            strategy: Strategy instance to register
            strict: Raise instead of ignoring a duplicate (name, version)

        Returns:
            True if the strategy was stored, False if it was a duplicate

        Raises:
            DuplicateStrategyError: If strict and already registered
        """
        key = strategy.key

        with self._lock:
            if key in self._strategies:
                if strict:
                    raise DuplicateStrategyError(str(key))
                logger.warning(f"Healing strategy already registered: {key}")
                return False

            self._strategies[key] = strategy
            for failure_type in FailureType:
                if failure_type in strategy.supported_failure_types:
                    self._by_type[failure_type].append(key)

            # Capabilities are resolved once here, never per call
            if isinstance(strategy, PluginLifecycle):
                self._lifecycles[key] = strategy
            if isinstance(strategy, ObservablePlugin):
                self._observables[key] = strategy

        logger.info(
            f"Registered healing strategy: {key} "
            f"(types: {', '.join(sorted(t.value for t in strategy.supported_failure_types))})"
        )
        return True

    def unregister(self, name: str, version: Optional[str] = None) -> int:
        """
        Unregister one version of a strategy, or all versions of it.

        Returns:
            Number of strategies removed
        """
        with self._lock:
            if version is not None:
                keys = [PluginKey.of(name, version)]
            else:
                keys = [key for key in self._strategies if key.name == name]

            removed = 0
            for key in keys:
                if self._strategies.pop(key, None) is None:
                    continue
                removed += 1
                for bucket in self._by_type.values():
                    if key in bucket:
                        bucket.remove(key)
                self._lifecycles.pop(key, None)
                self._observables.pop(key, None)

        if removed:
            logger.info(f"Unregistered healing strategy: {name} ({removed} version(s))")
        else:
            logger.warning(f"Healing strategy '{name}' not found in registry")
        return removed

    def get(
        self, name: str, version: Optional[Union[str, SemanticVersion]] = None
    ) -> Optional[HealingStrategy]:
        """Get a strategy by exact version, or its latest version."""
        with self._lock:
            if version is not None:
                return self._strategies.get(PluginKey.of(name, version))

            versions = [key for key in self._strategies if key.name == name]
            if not versions:
                return None
            return self._strategies[max(versions, key=lambda k: k.version)]

    def all(self) -> List[HealingStrategy]:
        with self._lock:
            return list(self._strategies.values())

    def names(self) -> List[str]:
        with self._lock:
            return list(dict.fromkeys(key.name for key in self._strategies))

    def __len__(self) -> int:
        with self._lock:
            return len(self._strategies)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return any(key.name == name for key in self._strategies)

    def candidates_for(
        self,
        failure_type: FailureType,
        context: Optional[HealingContext] = None,
        allowed: Optional[Iterable[str]] = None,
    ) -> List[HealingStrategy]:
        """
        Ordered candidate strategies for a failure type.

        Strategies registered for the type, filtered to the context's
        available strategies (and the ``allowed`` list) when non-empty, then
        preferred strategies first in preference order, the rest in
        registration order.
        """
        context = context or HealingContext()
        allowed_names = set(allowed or ())

        with self._lock:
            registered_names = {key.name for key in self._strategies}
            latest: Dict[str, PluginKey] = {}
            for key in self._by_type[FailureType(failure_type)]:
                current = latest.get(key.name)
                if current is None or key.version > current.version:
                    latest[key.name] = key
            ordered = [self._strategies[key] for key in latest.values()]

        self._warn_unknown(allowed_names, registered_names, "HEALING_STRATEGIES")
        available = context.available_strategies
        if available:
            ordered = [s for s in ordered if s.name in available]
        if allowed_names:
            ordered = [s for s in ordered if s.name in allowed_names]

        preferred = context.user_preferences.preferred_strategies
        self._warn_unknown(preferred, registered_names, "preferred_strategies")
        if not preferred:
            return ordered

        by_name = {s.name: s for s in ordered}
        front: List[HealingStrategy] = []
        for name in preferred:
            strategy = by_name.pop(name, None)
            if strategy is not None:
                front.append(strategy)
        return front + [s for s in ordered if s.name in by_name]

    @staticmethod
    def _warn_unknown(names: Iterable[str], registered: Set[str], source: str) -> None:
        for name in names:
            if name not in registered:
                message = f"Unknown healing strategy '{name}' in {source}, ignoring"
                logger.warning(message)
                try:
                    warnings.warn(message, ConfigurationWarning, stacklevel=3)
                except ConfigurationWarning:
                    # Escalated by a warnings filter; the name is still just ignored
                    logger.debug(f"ConfigurationWarning escalated to error for '{name}'")

    def statistics(self) -> RegistryStatistics:
        with self._lock:
            return RegistryStatistics(
                total_strategies=len(self._strategies),
                unique_names=len({key.name for key in self._strategies}),
                strategies_with_lifecycle=len(self._lifecycles),
                strategies_with_observability=len(self._observables),
                strategies_by_type={t: len(keys) for t, keys in self._by_type.items()},
            )

    async def initialize_all(self, context: Optional[Dict[str, Any]] = None) -> None:
        """Initialize strategies implementing PluginLifecycle. Errors propagate."""
        with self._lock:
            lifecycles = list(self._lifecycles.items())

        for key, plugin in lifecycles:
            try:
                await plugin.initialize(context or {})
            except Exception as e:
                logger.error(f"Failed to initialize healing strategy {key}: {e}")
                raise
            logger.info(f"Initialized healing strategy: {key}")

    async def cleanup_all(self) -> None:
        """Destroy strategies implementing PluginLifecycle, logging failures."""
        with self._lock:
            lifecycles = list(self._lifecycles.items())

        for key, plugin in lifecycles:
            try:
                await plugin.destroy()
                logger.info(f"Cleaned up healing strategy: {key}")
            except Exception as e:
                logger.error(f"Failed to clean up healing strategy {key}: {e}")

    def clear(self) -> None:
        """Remove all strategies (for testing)."""
        with self._lock:
            self._strategies.clear()
            for bucket in self._by_type.values():
                bucket.clear()
            self._lifecycles.clear()
            self._observables.clear()
        logger.warning("Cleared all healing strategies from registry")
