"""
ChildProxyMapper: proxy mapper for a nested object, backed by its root.

A child keeps no change-tracking state. Each call is rewritten from the
child's local names to the root's full paths and forwarded:

    child at "address", child.set_value("city", "X")
        -> root._put_new_value("address.city", "X")

The only thing a child caches is its own real object, obtained lazily:
the ProxyLoader is tried first, and if it cannot load a nested object the
child asks its parent mapper for the parent's real object and reads its own
property off it. Parents are looked up by path through the root, so a child
never holds a reference to anything but the root.
"""
import logging
from typing import Any, Dict, Optional, Set

from proxystate.accessor_chain import AccessorChain
from proxystate.errors import ChildObjectNotLoadableError, UnsupportedProxyOperationError
from proxystate.path_resolver import PathResolver
from proxystate.property_accessor import PropertyAccessor
from proxystate.proxy_loader import ProxyBehavior, ProxyLoader, ProxyMethodHelper
from proxystate.proxy_mapper import ProxyMapper, RootProxyMapper

logger = logging.getLogger(__name__)


class ChildProxyMapper(ProxyMapper):
    """Delegate for the object found at ``base_property_path`` under ``root``.

    Args:
        base_property_path: Full dotted path of this child within the root
        root: Owner of every piece of state this child reports
        property_accessor: Reads this child's object off its parent's real object
        real_class: Declared class of the nested object
        real_object: Already known nested object, if any
        proxy_loader: Local loader; the root's is used when None
        proxy_method_helper: Local method helper; the root's is used when None
    """

    def __init__(
        self,
        base_property_path: str,
        root: RootProxyMapper,
        property_accessor: PropertyAccessor,
        real_class: type,
        real_object: Any = None,
        proxy_loader: Optional[ProxyLoader] = None,
        proxy_method_helper: Optional[ProxyMethodHelper] = None,
    ):
        if not base_property_path:
            raise ValueError("A child proxy mapper needs a non-empty base property path")
        super().__init__(
            base_property_path,
            real_class,
            real_object=real_object,
            proxy_loader=proxy_loader,
            proxy_method_helper=proxy_method_helper,
        )
        self._root = root
        self._property_accessor = property_accessor
        self._parent_property_path = base_property_path.rpartition('.')[0]

    @property
    def property_accessor(self) -> PropertyAccessor:
        return self._property_accessor

    @property
    def parent_property_path(self) -> str:
        return self._parent_property_path

    def get_root_proxy_mapper(self) -> RootProxyMapper:
        return self._root

    def get_parent_proxy_mapper(self) -> ProxyMapper:
        """The mapper one level up: the root, or another child looked up by path."""
        return self._root.get_proxy_mapper_at(self._parent_property_path)

    # ========== FORWARDED TO ROOT ==========

    def get_path_resolver(self) -> PathResolver:
        return self._root.get_path_resolver()

    def get_proxy_behavior(self) -> ProxyBehavior:
        return self._root.get_proxy_behavior()

    def get_accessor_chain(self, property_name: str) -> AccessorChain:
        return self._root.get_accessor_chain(self.true_property_name(property_name))

    def get_cached_value(self, property_name: str) -> Any:
        return self._root.get_cached_value(self.true_property_name(property_name))

    def contains_key(self, property_name: str) -> bool:
        return self._root.contains_key(self.true_property_name(property_name))

    def get_new_values(self) -> Dict[str, Any]:
        return self._root.get_new_values(self.base_property_path)

    def get_original_values(self) -> Dict[str, Any]:
        return self._root.get_original_values(self.base_property_path)

    def dirty_properties(self) -> Set[str]:
        return self._root.dirty_properties(self.base_property_path)

    def get_child_proxy_mapper(self, property_name: str) -> 'ChildProxyMapper':
        return self._root.get_child_proxy_mapper(self.true_property_name(property_name))

    def _put_original_value(self, property_name: str, value: Any) -> Any:
        return self._root._put_original_value(self.true_property_name(property_name), value)

    def _put_new_value(self, property_name: str, value: Any) -> None:
        self._root._put_new_value(self.true_property_name(property_name), value)

    def get_proxy_loader(self) -> Optional[ProxyLoader]:
        return super().get_proxy_loader() or self._root.get_proxy_loader()

    def get_proxy_method_helper(self) -> Optional[ProxyMethodHelper]:
        return super().get_proxy_method_helper() or self._root.get_proxy_method_helper()

    def apply_to_real_object(self) -> Any:
        raise UnsupportedProxyOperationError(
            f"cannot apply_to_real_object() on child proxy mapper '{self.base_property_path}'; "
            f"apply on the root instead"
        )

    # ========== LAZY REAL OBJECT ==========

    def get_real_object(self, must_be_not_null: bool = False, *messages: Any) -> Any:
        """Cached object or loader first, otherwise read off the parent's real object.

        Returns None when the parent object (or this property on it) is absent,
        unless ``must_be_not_null`` is set, in which case that raises.
        """
        try:
            return super().get_real_object(True, *messages)
        except ChildObjectNotLoadableError:
            logger.debug(f"{self!r} not directly loadable, falling back to parent")

        parent_object = self.get_parent_proxy_mapper().get_real_object(must_be_not_null, *messages)
        if parent_object is None:
            return None

        real_object = self._property_accessor.read(parent_object)
        if real_object is None:
            if must_be_not_null:
                raise ChildObjectNotLoadableError(
                    *messages, f"'{self.base_property_path}' is None on its parent"
                )
            return None
        self._set_real_object(real_object)
        return real_object
