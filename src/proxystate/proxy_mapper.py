"""
Proxy mappers: change tracking in front of a "real" object.

A RootProxyMapper wraps one real object (or the promise of one, via a
ProxyLoader). Reads go through AccessorChains and the first value seen for a
path is latched as its original value. Writes are recorded as pending values
and only reach the real object when apply_to_real_object() is called.

Nested objects are represented by ChildProxyMappers. A child owns no state of
its own: every key it touches is rewritten to the root's coordinate space
("address" + "city" -> "address.city") and stored on the root.

Storage (all keyed by full dotted path, all on the root):
- _original_values: first observed value per path (first read wins)
- _new_values: pending writes (last write wins)
- _children: ChildProxyMapper per path prefix
"""
from abc import ABC, abstractmethod
from contextlib import nullcontext
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from proxystate.accessor_chain import AccessorChain
from proxystate.config import get_proxy_config
from proxystate.errors import ChildObjectNotLoadableError, NoSuchPropertyError, ReadOnlyPropertyError
from proxystate.path_resolver import PathResolver
from proxystate.proxy_loader import ProxyBehavior, ProxyLoader, ProxyMapperState, ProxyMethodHelper

if TYPE_CHECKING:
    from proxystate.child_proxy_mapper import ChildProxyMapper

logger = logging.getLogger(__name__)

# Callbacks receive (true_property_path, previous_value, new_value)
ChangeCallback = Callable[[str, Any, Any], None]


def _is_under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + '.')


class ProxyMapper(ABC):
    """Behavior shared by root and child mappers.

    Subclasses decide where bookkeeping lives: RootProxyMapper keeps it,
    ChildProxyMapper forwards it to its root.
    """

    def __init__(
        self,
        base_property_path: str,
        real_class: type,
        real_object: Any = None,
        proxy_loader: Optional[ProxyLoader] = None,
        proxy_method_helper: Optional[ProxyMethodHelper] = None,
    ):
        self._base_property_path = base_property_path
        self._real_class = real_class
        self._real_object = real_object
        self._proxy_loader = proxy_loader
        self._proxy_method_helper = proxy_method_helper

    @property
    def base_property_path(self) -> str:
        """Position of this mapper in the root's coordinate space ("" for the root)."""
        return self._base_property_path

    @property
    def real_class(self) -> type:
        return self._real_class

    @property
    def depth(self) -> int:
        return len(self._base_property_path.split('.')) if self._base_property_path else 0

    @property
    def is_root(self) -> bool:
        return False

    def true_property_name(self, property_name: str) -> str:
        """Full dotted path of a property named relative to this mapper."""
        if self._base_property_path:
            return f"{self._base_property_path}.{property_name}"
        return property_name

    def is_real_object_set(self) -> bool:
        return self._real_object is not None

    def _set_real_object(self, real_object: Any) -> None:
        self._real_object = real_object

    def _clear_real_object(self) -> None:
        self._real_object = None

    def get_real_object(self, must_be_not_null: bool = False, *messages: Any) -> Any:
        """Return the real object, asking the ProxyLoader if it is not loaded yet.

        Raises:
            ChildObjectNotLoadableError: ``must_be_not_null`` and no object could be had
        """
        if self._real_object is not None:
            return self._real_object

        loader = self.get_proxy_loader()
        if loader is not None:
            try:
                loaded = loader.get_real_object(self, *messages)
            except ChildObjectNotLoadableError:
                if must_be_not_null:
                    raise
                logger.debug(f"Loader could not load {self!r}, treating as absent")
                loaded = None
            if loaded is not None:
                logger.debug(f"Loaded real {type(loaded).__name__} for {self!r}")
                self._set_real_object(loaded)
                return loaded

        if must_be_not_null:
            raise ChildObjectNotLoadableError(*messages)
        return None

    # ========== COLLABORATORS ==========

    def get_proxy_loader(self) -> Optional[ProxyLoader]:
        return self._proxy_loader

    def get_proxy_method_helper(self) -> Optional[ProxyMethodHelper]:
        return self._proxy_method_helper

    # ========== BOOKKEEPING (root keeps it, child forwards it) ==========

    @abstractmethod
    def get_root_proxy_mapper(self) -> 'RootProxyMapper':
        """The mapper owning all change-tracking state."""

    @abstractmethod
    def get_path_resolver(self) -> PathResolver:
        """Resolver used for every chain of this mapper's object graph."""

    @abstractmethod
    def get_proxy_behavior(self) -> ProxyBehavior:
        """Behavior policy for unloaded real objects."""

    @abstractmethod
    def get_accessor_chain(self, property_name: str) -> AccessorChain:
        """Chain for ``property_name`` (relative to this mapper), rooted at the root's class."""

    @abstractmethod
    def get_cached_value(self, property_name: str) -> Any:
        """Pending value if any, else the latched original value, else None."""

    @abstractmethod
    def contains_key(self, property_name: str) -> bool:
        """True if a pending or original value is recorded for ``property_name``."""

    @abstractmethod
    def get_new_values(self) -> Dict[str, Any]:
        """Pending values, keyed relative to this mapper."""

    @abstractmethod
    def get_original_values(self) -> Dict[str, Any]:
        """Latched original values, keyed relative to this mapper."""

    @abstractmethod
    def dirty_properties(self) -> Set[str]:
        """Pending properties whose value differs from the latched original."""

    @abstractmethod
    def get_child_proxy_mapper(self, property_name: str) -> 'ChildProxyMapper':
        """Mapper for the nested object held by ``property_name``."""

    @abstractmethod
    def _put_original_value(self, property_name: str, value: Any) -> Any:
        """Latch ``value`` unless already latched; return the latched value."""

    @abstractmethod
    def _put_new_value(self, property_name: str, value: Any) -> None:
        """Record a pending value."""

    @abstractmethod
    def apply_to_real_object(self) -> Any:
        """Flush pending values to the real object."""

    # ========== VALUE ACCESS ==========

    def get_value(self, property_name: str) -> Any:
        """Current value of ``property_name`` as seen through this proxy.

        The closest pending value at or above the path first, then the latched
        original, then a read through the real object (latched as original).
        Nothing is latched when the real object is unavailable.
        """
        chain = self.get_accessor_chain(property_name)
        true_name = self.true_property_name(property_name)
        root = self.get_root_proxy_mapper()
        root._applied = False

        # A pending replacement of an enclosing object shadows the real one
        pending = root._closest_pending(true_name)
        if pending is not None:
            pending_path, pending_value = pending
            if pending_path == true_name:
                return pending_value
            return chain.get_value(pending_value, offset=len(pending_path.split('.')))

        if self.contains_key(property_name):
            return self.get_cached_value(property_name)

        behavior = self.get_proxy_behavior()
        if behavior is ProxyBehavior.NULL_VALUE and not self.is_real_object_set():
            return None

        real_object = self.get_real_object(behavior is ProxyBehavior.STRICT, f"reading '{true_name}'")
        if real_object is None:
            return None
        value = chain.get_value(real_object, offset=self.depth)
        return self._put_original_value(property_name, value)

    def set_value(self, property_name: str, value: Any) -> None:
        """Record ``value`` as pending for ``property_name``; the real object is untouched.

        Raises:
            NoSuchPropertyError: path not resolvable or not permitted
            ReadOnlyPropertyError: path resolves to a read-only chain
        """
        chain = self.get_accessor_chain(property_name)
        if chain.read_only:
            raise ReadOnlyPropertyError(chain.clazz, chain.property_path)
        self._put_new_value(property_name, value)

    def is_dirty(self) -> bool:
        return bool(self.dirty_properties())

    def __repr__(self) -> str:
        where = self._base_property_path or "<root>"
        return f"{type(self).__name__}({self._real_class.__name__} @ {where})"


class RootProxyMapper(ProxyMapper):
    """Owner of all change-tracking state for one real object graph.

    Args:
        real_object: The object to wrap; may be None when a proxy_loader supplies it later
        real_class: Class of the real object; required when real_object is None
        property_paths: Whitelist for a new PathResolver (ignored if path_resolver is given)
        path_resolver: Shared resolver to use instead of building one
        proxy_loader: Lazy-loading collaborator
        proxy_behavior: Policy for unloaded real objects (config default otherwise)
        proxy_method_helper: Handles non-property calls made through views
        allow_intermediate_properties: Passed to the new PathResolver
    """

    def __init__(
        self,
        real_object: Any = None,
        real_class: Optional[type] = None,
        property_paths: Tuple[str, ...] = (),
        path_resolver: Optional[PathResolver] = None,
        proxy_loader: Optional[ProxyLoader] = None,
        proxy_behavior: Optional[ProxyBehavior] = None,
        proxy_method_helper: Optional[ProxyMethodHelper] = None,
        allow_intermediate_properties: Optional[bool] = None,
    ):
        if real_class is None:
            if real_object is None:
                raise ValueError("RootProxyMapper needs a real_object or a real_class")
            real_class = type(real_object)
        elif real_object is not None and not isinstance(real_object, real_class):
            raise TypeError(f"real_object is a {type(real_object).__name__}, not a {real_class.__name__}")

        config = get_proxy_config()
        super().__init__(
            '',
            real_class,
            real_object=real_object,
            proxy_loader=proxy_loader,
            proxy_method_helper=proxy_method_helper or ProxyMethodHelper(),
        )
        self._path_resolver = path_resolver or PathResolver(
            property_paths,
            allow_intermediate_properties=allow_intermediate_properties,
        )
        self._proxy_behavior = proxy_behavior or config.default_behavior
        self._lock = threading.RLock() if config.thread_safe else nullcontext()

        self._original_values: Dict[str, Any] = {}
        self._new_values: Dict[str, Any] = {}
        self._children: Dict[str, 'ChildProxyMapper'] = {}
        self._change_callbacks: List[ChangeCallback] = []
        self._applied = False

    @property
    def is_root(self) -> bool:
        return True

    def get_root_proxy_mapper(self) -> 'RootProxyMapper':
        return self

    def get_path_resolver(self) -> PathResolver:
        return self._path_resolver

    def get_proxy_behavior(self) -> ProxyBehavior:
        return self._proxy_behavior

    def set_proxy_behavior(self, proxy_behavior: ProxyBehavior) -> None:
        self._proxy_behavior = proxy_behavior

    def set_proxy_loader(self, proxy_loader: Optional[ProxyLoader]) -> None:
        self._proxy_loader = proxy_loader

    @property
    def state(self) -> ProxyMapperState:
        if self._new_values:
            return ProxyMapperState.MUTATED
        if not self.is_real_object_set():
            return ProxyMapperState.UNLOADED
        return ProxyMapperState.APPLIED if self._applied else ProxyMapperState.LOADED

    # ========== CHANGE CALLBACKS ==========

    def add_change_callback(self, callback: ChangeCallback) -> None:
        """Subscribe to pending-value changes anywhere in this object graph."""
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)

    def remove_change_callback(self, callback: ChangeCallback) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)

    def _fire_change_callbacks(self, path: str, previous: Any, value: Any) -> None:
        for callback in list(self._change_callbacks):
            try:
                callback(path, previous, value)
            except Exception as e:
                logger.warning(f"Error in change callback for '{path}': {e}")

    # ========== BOOKKEEPING ==========

    def get_accessor_chain(self, property_name: str) -> AccessorChain:
        return self._path_resolver.resolve(self._real_class, property_name)

    def get_cached_value(self, property_name: str) -> Any:
        with self._lock:
            if property_name in self._new_values:
                return self._new_values[property_name]
            return self._original_values.get(property_name)

    def contains_key(self, property_name: str) -> bool:
        with self._lock:
            return property_name in self._new_values or property_name in self._original_values

    @staticmethod
    def _relative_view(values: Dict[str, Any], base_property_path: str) -> Dict[str, Any]:
        if not base_property_path:
            return dict(values)
        prefix = base_property_path + '.'
        return {path[len(prefix):]: value for path, value in values.items() if path.startswith(prefix)}

    def get_new_values(self, base_property_path: str = '') -> Dict[str, Any]:
        """Pending values, optionally only those below ``base_property_path`` (keys made relative)."""
        with self._lock:
            return self._relative_view(self._new_values, base_property_path)

    def get_original_values(self, base_property_path: str = '') -> Dict[str, Any]:
        with self._lock:
            return self._relative_view(self._original_values, base_property_path)

    def dirty_properties(self, base_property_path: str = '') -> Set[str]:
        with self._lock:
            dirty = {
                path for path, value in self._new_values.items()
                if path not in self._original_values or self._original_values[path] != value
            }
        if not base_property_path:
            return dirty
        prefix = base_property_path + '.'
        return {path[len(prefix):] for path in dirty if path.startswith(prefix)}

    def _put_original_value(self, property_name: str, value: Any) -> Any:
        with self._lock:
            return self._original_values.setdefault(property_name, value)

    def _put_new_value(self, property_name: str, value: Any) -> None:
        with self._lock:
            if property_name in self._new_values:
                previous = self._new_values[property_name]
            else:
                previous = self._original_values.get(property_name)
            self._new_values[property_name] = value
            self._applied = False
        logger.debug(f"Pending '{property_name}' = {value!r}")
        self._fire_change_callbacks(property_name, previous, value)

    def _closest_pending(self, property_path: str) -> Optional[Tuple[str, Any]]:
        """``property_path`` or its closest enclosing path with a pending value."""
        with self._lock:
            if not self._new_values:
                return None
            segments = property_path.split('.')
            for i in range(len(segments), 0, -1):
                prefix = '.'.join(segments[:i])
                if prefix in self._new_values:
                    return prefix, self._new_values[prefix]
        return None

    # ========== CHILDREN ==========

    def get_child_proxy_mapper(self, property_name: str) -> 'ChildProxyMapper':
        """Child mapper for the object at ``property_name`` (a full path when called on the root).

        Children are created on first request and cached for the life of the root.

        Raises:
            NoSuchPropertyError: path not resolvable, or its declared type is unknown
        """
        from proxystate.child_proxy_mapper import ChildProxyMapper

        child = self._children.get(property_name)
        if child is not None:
            return child

        chain = self.get_accessor_chain(property_name)
        if chain.return_type is None:
            raise NoSuchPropertyError(self._real_class, property_name, "declared type is unknown, cannot proxy it")

        candidate = ChildProxyMapper(property_name, self, chain.last_accessor, chain.return_type)
        with self._lock:
            child = self._children.setdefault(property_name, candidate)
        if child is candidate:
            logger.debug(f"Created {child!r}")
        return child

    def get_proxy_mapper_at(self, property_path: str) -> ProxyMapper:
        """This root for "", otherwise the child mapper at ``property_path``."""
        if not property_path:
            return self
        return self.get_child_proxy_mapper(property_path)

    def get_child_proxy_mappers(self) -> Dict[str, 'ChildProxyMapper']:
        with self._lock:
            return dict(self._children)

    # ========== APPLY / RESTORE ==========

    def apply_to_real_object(self) -> Any:
        """Write every pending value to the real object, then clear them.

        Paths are applied in lexicographic order, so a replaced parent object
        ("address") is in place before its properties ("address.city") are
        written into it. Written values become the new original values.

        A path whose intermediate object is None on the real object cannot be
        written; it stays pending. If a setter raises, the paths written
        before it are still recorded as applied and the error propagates.

        Raises:
            ChildObjectNotLoadableError: no real object available
        """
        real_object = self.get_real_object(True, "applying pending changes")
        with self._lock:
            pending = dict(self._new_values)

        written: Dict[str, Any] = {}
        skipped: List[str] = []
        try:
            for path in sorted(pending):
                chain = self.get_accessor_chain(path)
                if chain.set_value(real_object, pending[path]):
                    written[path] = pending[path]
                else:
                    skipped.append(path)
        finally:
            self._promote_written(written)

        if skipped:
            logger.warning(f"Left {len(skipped)} change(s) pending, an intermediate value is None: {skipped}")
        logger.info(f"Applied {len(written)}/{len(pending)} pending change(s) to {type(real_object).__name__}")
        return real_object

    def _promote_written(self, written: Dict[str, Any]) -> None:
        """Turn values written to the real object into original values."""
        if not written:
            return
        with self._lock:
            for path, value in written.items():
                # A concurrent set_value() after our snapshot stays pending
                if path in self._new_values and self._new_values[path] is value:
                    del self._new_values[path]
                for stale in [p for p in self._original_values if p.startswith(path + '.')]:
                    del self._original_values[stale]
                self._original_values[path] = value
            for child_path, child in self._children.items():
                if any(_is_under(child_path, path) for path in written):
                    child._clear_real_object()
            self._applied = True

    def restore_original(self) -> None:
        """Discard every pending value."""
        with self._lock:
            discarded = dict(self._new_values)
            self._new_values.clear()
        for path, value in discarded.items():
            self._fire_change_callbacks(path, value, self.get_cached_value(path))
        logger.debug(f"Discarded {len(discarded)} pending change(s)")
