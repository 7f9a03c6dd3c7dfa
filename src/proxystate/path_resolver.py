"""
PathResolver: whitelisted dotted property paths resolved to AccessorChains.

A resolver is not bound to one class. It keeps a whitelist of property paths
and, per runtime class, a lazily populated map of path -> AccessorChain. The
same resolver can therefore serve unrelated classes that happen to expose the
same properties (duck typing).

Permissions:
- An explicitly listed path ("address.city") is writable.
- With intermediate access enabled, every dotted prefix of a listed path
  ("address") and every path below a listed one resolve too, read-only.
- An empty whitelist permits every path; each one is then writable.

Permissions are derived from the whitelist alone, never from the order in
which paths were listed or first resolved.

Thread safety: chain maps use get-or-insert under a lock. Two threads may
build the same chain concurrently, but only the first one is published and
every caller sees that one from then on.
"""
from contextlib import nullcontext
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Set

from proxystate.accessor_chain import AccessorChain
from proxystate.config import get_proxy_config
from proxystate.errors import NoSuchPropertyError
from proxystate.property_accessor import PropertyAccessor

logger = logging.getLogger(__name__)


def _flatten_paths(paths: Iterable[Any]) -> List[str]:
    flat: List[str] = []
    for path in paths:
        if path is None:
            continue
        if isinstance(path, str):
            flat.append(path)
        else:
            flat.extend(_flatten_paths(path))
    return flat


def validate_property_path(path: str) -> str:
    """Reject empty paths and empty segments ("a..b", ".a", "a.")."""
    if not isinstance(path, str):
        raise TypeError(f"Property path must be a string, got {type(path).__name__}")
    path = path.strip()
    if not path or any(not segment for segment in path.split('.')):
        raise ValueError(f"Invalid property path {path!r}")
    return path


class PathResolver:
    """Whitelist of property paths plus per-class AccessorChain caches.

    Example:
        resolver = PathResolver("name", "address.city")
        resolver.get_value(person, "address.city")   # None if person.address is None
        resolver.set_value(person, "name", "Ada")
        resolver.set_value(person, "address", other)  # ReadOnlyPropertyError
    """

    def __init__(self, *property_paths: Any,
                 allow_intermediate_properties: Optional[bool] = None,
                 thread_safe: Optional[bool] = None):
        config = get_proxy_config()
        self.allow_intermediate_properties = (
            config.allow_intermediate_properties
            if allow_intermediate_properties is None else allow_intermediate_properties
        )
        thread_safe = config.thread_safe if thread_safe is None else thread_safe
        self._lock = threading.RLock() if thread_safe else nullcontext()

        self._paths: List[str] = []
        self._explicit: Set[str] = set()
        self._prefixes: Set[str] = set()
        self._chains_by_class: Dict[type, Dict[str, AccessorChain]] = {}

        self.add_paths(*property_paths)

    # ========== WHITELIST ==========

    @property
    def paths(self) -> List[str]:
        """Permitted paths, sorted and deduplicated."""
        return list(self._paths)

    def get_path(self, index: int = 0) -> Optional[str]:
        paths = self._paths
        return paths[index] if 0 <= index < len(paths) else None

    def add_paths(self, *property_paths: Any) -> None:
        """Permit more paths. Accepts strings or iterables of strings; duplicates are ignored.

        Already published chains keep the permission they were published with.
        """
        new_paths = [validate_property_path(p) for p in _flatten_paths(property_paths)]
        if not new_paths:
            return
        with self._lock:
            for path in new_paths:
                if path in self._explicit:
                    continue
                self._explicit.add(path)
                segments = path.split('.')
                for i in range(1, len(segments)):
                    self._prefixes.add('.'.join(segments[:i]))
            self._paths = sorted(self._explicit)
        logger.debug(f"Permitted paths now: {self._paths}")

    def set_paths(self, *property_paths: Any) -> None:
        """Replace the whitelist and drop every cached chain."""
        with self._lock:
            self._paths = []
            self._explicit.clear()
            self._prefixes.clear()
            self._chains_by_class.clear()
        self.add_paths(*property_paths)

    def is_restricted(self) -> bool:
        return bool(self._explicit)

    def is_explicit(self, path: str) -> bool:
        return path in self._explicit

    def is_intermediate(self, path: str) -> bool:
        """True for a strict prefix of a permitted path that is not itself listed."""
        return path in self._prefixes and path not in self._explicit

    def has_descendants(self, path: str) -> bool:
        """True when some permitted path continues below ``path``."""
        return path in self._prefixes

    def _listed_ancestor(self, path: str) -> Optional[str]:
        segments = path.split('.')
        for i in range(len(segments) - 1, 0, -1):
            prefix = '.'.join(segments[:i])
            if prefix in self._explicit:
                return prefix
        return None

    def is_permitted(self, path: str) -> bool:
        if not self._explicit or path in self._explicit:
            return True
        if not self.allow_intermediate_properties:
            return False
        return path in self._prefixes or self._listed_ancestor(path) is not None

    def is_writable(self, path: str) -> bool:
        return not self._explicit or path in self._explicit

    # ========== CHAIN RESOLUTION ==========

    def _class_chains(self, clazz: type) -> Dict[str, AccessorChain]:
        chains = self._chains_by_class.get(clazz)
        if chains is None:
            with self._lock:
                chains = self._chains_by_class.setdefault(clazz, {})
        return chains

    def cached_chains(self, clazz: type) -> Dict[str, AccessorChain]:
        """Snapshot of the chains published so far for ``clazz``."""
        with self._lock:
            return dict(self._chains_by_class.get(clazz, {}))

    def resolve(self, clazz: type, property_path: str, read_only: bool = False) -> AccessorChain:
        """Return the AccessorChain for ``property_path`` on ``clazz``, building it on first use.

        Args:
            clazz: Runtime class the path starts from
            property_path: Dotted path, e.g. "address.city"
            read_only: Build the chain read-only even if the path is writable.
                       Only matters for the first caller; the published chain wins.

        Raises:
            NoSuchPropertyError: path not permitted, or some segment has no getter
        """
        chains = self._class_chains(clazz)
        chain = chains.get(property_path)
        if chain is not None:
            return chain

        property_path = validate_property_path(property_path)
        if not self.is_permitted(property_path):
            raise NoSuchPropertyError(clazz, property_path, "not a permitted property path")

        built = self._build_chains(clazz, property_path, read_only)
        with self._lock:
            for candidate in built:
                published = chains.setdefault(candidate.property_path, candidate)
                if published is candidate:
                    logger.debug(f"Published {candidate!r}")
            return chains[property_path]

    def _build_chains(self, clazz: type, property_path: str, read_only: bool) -> List[AccessorChain]:
        segments = property_path.split('.')
        writable = not read_only and self.is_writable(property_path)

        accessors: List[PropertyAccessor] = []
        owner: Optional[type] = clazz
        for index, segment in enumerate(segments):
            if owner is None:
                walked = '.'.join(segments[:index])
                raise NoSuchPropertyError(clazz, property_path, f"declared type of '{walked}' is unknown")
            is_last = index == len(segments) - 1
            accessor = PropertyAccessor.resolve(owner, segment, with_setter=is_last and writable)
            if not accessor.exists:
                raise NoSuchPropertyError(clazz, property_path, f"{owner.__name__} has no readable '{segment}'")
            accessors.append(accessor)
            owner = accessor.return_type

        if writable and not accessors[-1].writable:
            logger.debug(f"{clazz.__name__}.{property_path} has no setter, publishing it read-only")
            writable = False

        chains = [AccessorChain(clazz, property_path, not writable, accessors)]

        if self.allow_intermediate_properties and self._explicit:
            # Listed prefixes are left for their own (writable) resolution
            for i in range(1, len(segments)):
                prefix = '.'.join(segments[:i])
                if prefix in self._explicit:
                    continue
                chains.append(AccessorChain(clazz, prefix, True, accessors[:i]))
        return chains

    def get_property_type(self, clazz: type, property_path: Optional[str] = None) -> Optional[type]:
        """Declared type of the last property of ``property_path`` (first permitted path by default).

        Any resolvable path may be queried, permitted or not. A path without a
        published chain is resolved read-only and not cached.

        Raises:
            NoSuchPropertyError: some segment has no getter or an unknown declared type
        """
        property_path = property_path or self.get_path(0)
        if property_path is None:
            raise ValueError("No property path given and no permitted paths registered")
        chain = self._class_chains(clazz).get(property_path)
        if chain is None:
            chain = self._build_chains(clazz, validate_property_path(property_path), True)[0]
        return chain.return_type

    # ========== VALUE ACCESS ==========

    def get_value(self, base: Any, property_path: Optional[str] = None) -> Any:
        """Follow ``property_path`` from ``base`` (first permitted path by default).

        None when ``base`` is None or when any intermediate value is None.
        """
        property_path = property_path or self.get_path(0)
        if base is None or property_path is None:
            return None
        return self.resolve(type(base), property_path).get_value(base)

    def set_value(self, base: Any, property_path: str, value: Any) -> bool:
        """Set ``property_path`` on ``base``; no-op (False) if an intermediate is None."""
        if base is None:
            return False
        return self.resolve(type(base), property_path).set_value(base, value)

    def __repr__(self) -> str:
        return f"PathResolver({self._paths!r}, intermediate={self.allow_intermediate_properties})"
