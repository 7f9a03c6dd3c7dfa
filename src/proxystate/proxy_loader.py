"""
Collaborators plugged into proxy mappers: lazy loading, behavior policy and
non-property method handling.
"""
from abc import ABC, abstractmethod
from enum import Enum
import inspect
import logging
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from proxystate.proxy_mapper import ProxyMapper

logger = logging.getLogger(__name__)


class ProxyBehavior(Enum):
    """How a mapper reacts when a value is needed but the real object is not loaded.

    READ_THROUGH: ask the loader (or the parent mapper) for the real object.
    NULL_VALUE: report None for anything not already cached, never load.
    STRICT: load like READ_THROUGH, but an unavailable real object raises
            ChildObjectNotLoadableError instead of reading as None.
    """
    READ_THROUGH = "read_through"
    NULL_VALUE = "null_value"
    STRICT = "strict"


class ProxyMapperState(Enum):
    """Lifecycle of a root proxy mapper.

    UNLOADED -> LOADED -> MUTATED -> APPLIED. APPLIED is reported right after
    apply_to_real_object() and returns to LOADED on the next read.
    """
    UNLOADED = "unloaded"
    LOADED = "loaded"
    MUTATED = "mutated"
    APPLIED = "applied"


class ProxyLoader(ABC):
    """Supplies the real object behind a proxy mapper on demand.

    Implementations raise ChildObjectNotLoadableError when they cannot load the
    object for this mapper (for example a loader that only knows how to fetch
    root objects being asked for a nested one). Returning None means the value
    is legitimately absent.
    """

    @abstractmethod
    def get_real_object(self, proxy_mapper: 'ProxyMapper', *messages: Any) -> Any:
        """Load the real object for ``proxy_mapper``."""


class ProxyMethodHelper:
    """Handles calls made through a view that are not property accessors.

    The default forwards the call to the real object, loading it if necessary.
    """

    def handles(self, clazz: type, name: str) -> bool:
        if name.startswith('_'):
            return False
        attr = inspect.getattr_static(clazz, name, None)
        if attr is None or isinstance(attr, property):
            return False
        return callable(attr) or isinstance(attr, (staticmethod, classmethod))

    def invoke(self, proxy_mapper: 'ProxyMapper', name: str, *args: Any, **kwargs: Any) -> Any:
        real_object = proxy_mapper.get_real_object(True, f"calling {name}()")
        logger.debug(f"Forwarding {name}() to real {type(real_object).__name__}")
        return getattr(real_object, name)(*args, **kwargs)
