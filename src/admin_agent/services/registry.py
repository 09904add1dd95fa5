"""Service registry: free-text service names to canonical service keys.

The registry is built once from the service-binding manifest. It derives a
many-to-one alias map from every key (camelCase, snake_case, plural and
"Service"-suffixed spellings) and resolves names a model writes in code such as
`await mediaFileService.list({})` to a canonical key.

Resolution order:
1. exact normalized match against the alias map
2. first camelCase segment ("mediaFileService" -> "media")
3. snake_case reconstruction, longest prefix first
4. bounded edit distance (substring containment preferred)

Capabilities are bound explicitly per key as method tables; nothing is looked
up by reflection on arbitrary attributes. A deployment binds them from
registration hooks ("package.module:function", listed in the
AGENT_SERVICE_BINDING_HOOKS setting) that register_service_bindings() runs
against the process-wide RegistryCache at service and CLI startup.
"""

import importlib
import inspect
import re
from collections.abc import Iterable, Mapping
from typing import Any, Callable

from admin_agent.errors import NotFoundError, UnsupportedOperation, ValidationError
from admin_agent.services.types import MethodTable, ModuleInfo, ServiceCategory, to_camel_case
from admin_agent.telemetry import get_logger

log = get_logger(__name__)

_SUFFIX_RE = re.compile(r"[_\-\s]?service$", re.IGNORECASE)
_SEPARATORS_RE = re.compile(r"[_\-\s.]+")
_CAMEL_SPLIT_RE = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")

MAX_FUZZY_DISTANCE = 2


def normalize_service_name(name: str) -> str:
    """Strip a "Service" suffix, lowercase, and drop separators."""
    stripped = _SUFFIX_RE.sub("", (name or "").strip())
    return _SEPARATORS_RE.sub("", stripped).lower()


def camel_segments(name: str) -> list[str]:
    """Split "mediaFileService" into ["media", "file", "service"]."""
    return [part.lower() for part in _CAMEL_SPLIT_RE.findall(name or "")]


def levenshtein(a: str, b: str) -> int:
    """Classic edit distance."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb))
            )
        previous = current
    return previous[-1]


def find_closest_match(
    target: str, candidates: Iterable[str], max_distance: int = MAX_FUZZY_DISTANCE
) -> str | None:
    """Find the candidate closest to target.

    Substring containment wins over edit distance; among containing
    candidates the one with the smallest length difference is chosen.

    Args:
        target: Normalized name to look for.
        candidates: Normalized canonical keys.
        max_distance: Largest edit distance accepted.

    Returns:
        Best candidate, or None if nothing is within tolerance.
    """
    if not target:
        return None
    pool = list(dict.fromkeys(candidates))
    containing = [
        c for c in pool if len(c) >= 3 and len(target) >= 3 and (c in target or target in c)
    ]
    if containing:
        return min(containing, key=lambda c: (abs(len(c) - len(target)), c))

    best: tuple[int, str] | None = None
    for candidate in pool:
        distance = levenshtein(target, candidate)
        if distance <= max_distance and (best is None or distance < best[0]):
            best = (distance, candidate)
    return best[1] if best else None


def derive_aliases(module: ModuleInfo) -> set[str]:
    """All lowercase spellings that resolve to module.key."""
    key = module.key
    camel = to_camel_case(key)
    compact = key.replace("_", "").replace("-", "")
    return {
        key,
        module.service_name.lower(),
        compact,
        f"{key}service",
        f"{key}_service",
        camel,
        f"{camel}service",
        camel.lower(),
        f"{camel.lower()}service",
        f"{key}s",
        f"{compact}s",
    }


class ServiceRegistry:
    """Canonical service keys, their aliases, and bound capabilities."""

    def __init__(self, modules: Iterable[ModuleInfo]) -> None:
        self._modules: dict[str, ModuleInfo] = {}
        self._aliases: dict[str, str] = {}
        self._bindings: dict[str, MethodTable] = {}
        for module in modules:
            if module.key in self._modules:
                continue
            self._modules[module.key] = module
            for alias in derive_aliases(module):
                self._aliases.setdefault(alias, module.key)
        # compact keys ("inventoryitem") for the normalized lookups
        self._compact = {
            key.replace("_", "").replace("-", ""): key for key in self._modules
        }
        log.debug("service_registry_built", services=len(self._modules))

    @classmethod
    def from_modules(cls, modules: Iterable[ModuleInfo]) -> "ServiceRegistry":
        """Build a registry from manifest entries."""
        return cls(modules)

    @classmethod
    def from_keys(cls, *keys: str) -> "ServiceRegistry":
        """Build a registry of custom services from bare keys."""
        return cls(ModuleInfo(key=key) for key in keys)

    @property
    def keys(self) -> list[str]:
        """Canonical keys in manifest order."""
        return list(self._modules)

    def module(self, key: str) -> ModuleInfo | None:
        """Manifest entry for a canonical key."""
        return self._modules.get(key)

    def resolve(self, name: str) -> str | None:
        """Resolve a free-text service name to a canonical key.

        Returns:
            Canonical key, or None when nothing clears tolerance. Callers treat
            None as a hard "service not found".
        """
        if not name or not name.strip():
            return None
        raw = name.strip()

        lowered = raw.lower()
        if lowered in self._aliases:
            return self._aliases[lowered]
        normalized = normalize_service_name(raw)
        if normalized in self._aliases:
            return self._aliases[normalized]
        if normalized in self._compact:
            return self._compact[normalized]

        segments = [s for s in camel_segments(_SUFFIX_RE.sub("", raw)) if s]
        if segments and segments[0] in self._aliases:
            return self._aliases[segments[0]]

        for end in range(len(segments), 0, -1):
            snake = "_".join(segments[:end])
            if snake in self._aliases:
                return self._aliases[snake]

        match = find_closest_match(normalized, self._compact)
        if match is not None:
            log.debug("service_name_fuzzy_resolved", name=raw, resolved=self._compact[match])
            return self._compact[match]
        return None

    def bind(self, key: str, methods: Mapping[str, Callable[..., Any]]) -> None:
        """Bind callable capabilities for a service.

        Raises:
            NotFoundError: If key does not resolve to a registered service.
        """
        canonical = self.resolve(key)
        if canonical is None:
            raise NotFoundError(f"Service not found: {key}")
        table = dict(self._bindings.get(canonical, {}))
        table.update(methods)
        self._bindings[canonical] = table

    def methods(self, key: str) -> list[str]:
        """Names of methods bound for a canonical key."""
        return sorted(self._bindings.get(key, {}))

    async def invoke(self, name: str, method: str, args: list[Any] | tuple[Any, ...] = ()) -> Any:
        """Resolve a service name and call one of its bound methods.

        Raises:
            NotFoundError: If the service name does not resolve.
            UnsupportedOperation: If the method is not bound for that service.
        """
        key = self.resolve(name)
        if key is None:
            raise NotFoundError(f"Service not found: {name}")
        fn = self._bindings.get(key, {}).get(method)
        if fn is None:
            raise UnsupportedOperation(f"Method {method!r} is not available on service {key!r}")
        result = fn(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    def prompt_listing(self) -> str:
        """Render registered services for a planning prompt."""
        lines: list[str] = []
        for category in (ServiceCategory.CORE, ServiceCategory.CUSTOM):
            entries = []
            for key, module in self._modules.items():
                if module.category != category:
                    continue
                bound = self.methods(key)
                suffix = f" ({', '.join(bound)})" if bound else ""
                entries.append(f"{to_camel_case(key)}Service{suffix}")
            if entries:
                lines.append(f"{category.value.title()} services: {', '.join(entries)}")
        return "\n".join(lines)


class RegistryCache:
    """Owns the process-wide ServiceRegistry.

    The registry is built on first use and replaced wholesale by install() or
    after invalidate(); readers always see a complete instance. Capabilities
    bound through the cache are kept here and re-applied to every rebuilt or
    installed registry.
    """

    def __init__(self, loader: Callable[[], list[ModuleInfo]] | None = None) -> None:
        self._loader = loader
        self._registry: ServiceRegistry | None = None
        self._bindings: dict[str, MethodTable] = {}

    def get(self) -> ServiceRegistry:
        """Return the current registry, building it if needed."""
        registry = self._registry
        if registry is None:
            if self._loader is None:
                from admin_agent.config import load_service_manifest  # noqa: PLC0415

                modules = load_service_manifest()
            else:
                modules = self._loader()
            registry = ServiceRegistry.from_modules(modules)
            self._apply_bindings(registry)
            self._registry = registry
        return registry

    def bind(self, key: str, methods: Mapping[str, Callable[..., Any]]) -> None:
        """Bind capabilities on the current registry and keep them for rebuilds.

        Raises:
            NotFoundError: If key does not resolve to a registered service.
        """
        self.get().bind(key, methods)
        table = dict(self._bindings.get(key, {}))
        table.update(methods)
        self._bindings[key] = table

    def install(self, registry: ServiceRegistry) -> None:
        """Swap in a prebuilt registry (kept bindings are applied to it)."""
        self._apply_bindings(registry)
        self._registry = registry

    def invalidate(self) -> None:
        """Force the next get() to rebuild from the manifest."""
        self._registry = None

    def _apply_bindings(self, registry: ServiceRegistry) -> None:
        for key, methods in self._bindings.items():
            try:
                registry.bind(key, methods)
            except NotFoundError:
                # Service left the manifest; the binding comes back if it returns
                log.warning("service_binding_dropped", service=key, methods=sorted(methods))


_registry_cache = RegistryCache()


def get_registry_cache() -> RegistryCache:
    """Get the process-wide registry cache."""
    return _registry_cache


def register_service_bindings(hooks: Iterable[str], cache: RegistryCache | None = None) -> int:
    """Run deployment registration hooks against the registry cache.

    Each hook is "package.module:function". The function receives the
    RegistryCache and calls cache.bind(key, {...}) for the capabilities the
    deployment provides.

    Args:
        hooks: Hook import paths, run in order.
        cache: Cache to bind into (default: the process-wide one).

    Returns:
        Number of hooks run.

    Raises:
        ValidationError: If a hook path is malformed or does not name a callable.
    """
    cache = cache or get_registry_cache()
    count = 0
    for hook in hooks:
        module_name, _, attr = hook.partition(":")
        if not module_name or not attr:
            raise ValidationError(f"Service binding hook must be 'module:function': {hook!r}")
        register = getattr(importlib.import_module(module_name), attr, None)
        if not callable(register):
            raise ValidationError(f"Service binding hook is not callable: {hook!r}")
        register(cache)
        count += 1
        log.info("service_bindings_registered", hook=hook)
    return count
