"""
AccessorChain: the ordered accessors realizing one dotted property path.

"grandparent.parent.child" on Person becomes three PropertyAccessors, each one
owned by the class the previous one returns. Reading stops quietly at the
first None along the way; so does writing. Only the last accessor may write.
"""
import logging
from typing import Any, Optional, Sequence, Tuple

from proxystate.errors import ReadOnlyPropertyError
from proxystate.property_accessor import PropertyAccessor

logger = logging.getLogger(__name__)


class AccessorChain:
    """Immutable chain of PropertyAccessors for one (class, dotted path) pair."""

    __slots__ = ('_clazz', '_property_path', '_read_only', '_accessors')

    def __init__(self, clazz: type, property_path: str, read_only: bool, accessors: Sequence[PropertyAccessor]):
        accessors = tuple(accessors)
        segments = property_path.split('.')
        if len(accessors) != len(segments):
            raise ValueError(
                f"Chain for '{property_path}' needs {len(segments)} accessors, got {len(accessors)}"
            )

        owner = clazz
        for index, (segment, accessor) in enumerate(zip(segments, accessors)):
            if not accessor.exists:
                raise ValueError(f"Accessor for '{segment}' in '{property_path}' does not exist")
            if accessor.property_name != segment:
                raise ValueError(f"Accessor '{accessor.property_name}' does not match segment '{segment}'")
            if accessor.clazz is not owner:
                raise ValueError(
                    f"Accessor '{segment}' belongs to {accessor.clazz.__name__}, "
                    f"expected {getattr(owner, '__name__', owner)}"
                )
            is_last = index == len(accessors) - 1
            if not is_last and accessor.writable:
                raise ValueError(f"Only the last property of '{property_path}' may have a setter")
            owner = accessor.return_type

        if not read_only and not accessors[-1].writable:
            raise ValueError(f"Writable chain '{property_path}' has no setter for its last property")

        self._clazz = clazz
        self._property_path = property_path
        self._read_only = read_only
        self._accessors: Tuple[PropertyAccessor, ...] = accessors

    @property
    def clazz(self) -> type:
        return self._clazz

    @property
    def property_path(self) -> str:
        return self._property_path

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def accessors(self) -> Tuple[PropertyAccessor, ...]:
        return self._accessors

    @property
    def property_names(self) -> Tuple[str, ...]:
        return tuple(a.property_name for a in self._accessors)

    @property
    def return_type(self) -> Optional[type]:
        """Declared type of the last property, None when it carries no type hint."""
        return self._accessors[-1].return_type

    @property
    def last_accessor(self) -> PropertyAccessor:
        return self._accessors[-1]

    def __len__(self) -> int:
        return len(self._accessors)

    def is_prefix_of(self, property_path: str) -> bool:
        return property_path.startswith(self._property_path + '.')

    def _check_offset(self, offset: int) -> None:
        if not 0 <= offset < len(self._accessors):
            raise ValueError(f"Offset {offset} out of range for '{self._property_path}'")

    def get_value(self, base: Any, offset: int = 0) -> Any:
        """Follow the chain from ``base``; None as soon as any step is None.

        Args:
            base: Object owning the first property (or the ``offset``-th one)
            offset: Number of leading accessors to skip. A nested proxy mapper
                    passes its own depth and its own real object.
        """
        self._check_offset(offset)
        current = base
        for accessor in self._accessors[offset:]:
            if current is None:
                return None
            current = accessor.read(current)
        return current

    def set_value(self, base: Any, value: Any, offset: int = 0) -> bool:
        """Set the last property; silently skipped when an intermediate is None.

        Returns:
            True if the value was written, False if the walk hit a None.

        Raises:
            ReadOnlyPropertyError: chain was built read-only
        """
        if self._read_only:
            raise ReadOnlyPropertyError(self._clazz, self._property_path)
        self._check_offset(offset)
        current = base
        for accessor in self._accessors[offset:-1]:
            if current is None:
                break
            current = accessor.read(current)
        if current is None:
            logger.debug(f"Skipped write to '{self._property_path}': intermediate value is None")
            return False
        self._accessors[-1].write(current, value)
        return True

    def __repr__(self) -> str:
        mode = "read-only" if self._read_only else "read-write"
        return f"AccessorChain({self._clazz.__name__}.{self._property_path}, {mode})"
