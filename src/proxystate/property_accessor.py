"""
Single-property accessors discovered on arbitrary (duck-typed) classes.

A PropertyAccessor captures how to read, and optionally write, one named
property of one class. Discovery looks, in order, at:

1. accessors registered explicitly with register_accessor()
2. accessor methods following the get/is/set naming convention
   (getFooBar / isActive / setFooBar, or get_foo_bar / is_active / set_foo_bar)
3. ``property`` objects
4. dataclass fields, class annotations, ``__slots__`` and ``__init__`` parameters

The declared type of a property comes from its type hints; Optional[X] is
reported as X so that a path can keep walking into the nested class.
"""
from dataclasses import dataclass, fields as dataclass_fields, is_dataclass
from enum import Enum
import inspect
import logging
import re
import threading
import types
from typing import Any, Callable, Dict, Optional, Tuple, Union, get_args, get_origin, get_type_hints

from proxystate.errors import NoSuchPropertyError, ReadOnlyPropertyError

logger = logging.getLogger(__name__)

# PEP 604 unions (X | None) report types.UnionType as their origin
_UNION_TYPE = getattr(types, 'UnionType', None)

_PROPERTY_METHOD_PATTERN = re.compile(r'^(is|get|set)(?:_(?P<snake>[A-Za-z]\w*)|(?P<camel>[A-Z]\w*))$')

# Explicitly registered accessors: class -> property name -> accessor template
_accessor_registry: Dict[type, Dict[str, Tuple[Callable, Optional[Callable], Optional[type]]]] = {}
_registry_lock = threading.Lock()

# class -> property name -> {'get': method name, 'set': method name}
_convention_cache: Dict[type, Dict[str, Dict[str, str]]] = {}


def _match_accessor_name(name: str, prefixes: Tuple[str, ...]) -> Optional[str]:
    match = _PROPERTY_METHOD_PATTERN.match(name)
    if match is None or match.group(1) not in prefixes:
        return None
    stem = match.group('snake') or match.group('camel')
    return stem[0].lower() + stem[1:]


def property_name(method_name: str) -> Optional[str]:
    """Property name for any get/is/set accessor name, else None.

    >>> property_name("getFooBar")
    'fooBar'
    >>> property_name("set_foo_bar")
    'foo_bar'
    """
    return _match_accessor_name(method_name, ('is', 'get', 'set'))


def getter_property_name(method_name: str) -> Optional[str]:
    return _match_accessor_name(method_name, ('is', 'get'))


def setter_property_name(method_name: str) -> Optional[str]:
    return _match_accessor_name(method_name, ('set',))


def register_accessor(
    clazz: type,
    name: str,
    getter: Callable[[Any], Any],
    setter: Optional[Callable[[Any, Any], None]] = None,
    return_type: Optional[type] = None,
) -> None:
    """Declare how to read/write ``name`` on ``clazz`` (and its subclasses).

    Registered accessors win over anything discovered by introspection.
    Chains already resolved for ``clazz`` are not affected, so register before
    first use.
    """
    if not isinstance(clazz, type):
        raise TypeError(f"register_accessor() needs a class, got {type(clazz).__name__}")
    if not name or '.' in name:
        raise ValueError(f"Invalid property name {name!r}: must be a single non-empty segment")
    if not callable(getter):
        raise TypeError(f"Getter for {clazz.__name__}.{name} is not callable")
    if setter is not None and not callable(setter):
        raise TypeError(f"Setter for {clazz.__name__}.{name} is not callable")
    with _registry_lock:
        _accessor_registry.setdefault(clazz, {})[name] = (getter, setter, return_type)
    logger.debug(f"Registered accessor {clazz.__name__}.{name}")


def unregister_accessor(clazz: type, name: str) -> None:
    with _registry_lock:
        registered = _accessor_registry.get(clazz)
        if registered is not None:
            registered.pop(name, None)
            if not registered:
                del _accessor_registry[clazz]


def _find_registered(clazz: type, name: str):
    for cls in clazz.__mro__:
        registered = _accessor_registry.get(cls)
        if registered and name in registered:
            return registered[name]
    return None


def _convention_methods(clazz: type) -> Dict[str, Dict[str, str]]:
    """Index the get/is/set accessor methods of ``clazz`` by property name."""
    cached = _convention_cache.get(clazz)
    if cached is not None:
        return cached

    index: Dict[str, Dict[str, str]] = {}
    for attr_name in dir(clazz):
        prop = property_name(attr_name)
        if prop is None:
            continue
        attr = inspect.getattr_static(clazz, attr_name, None)
        if not inspect.isfunction(attr):
            continue
        kind = 'set' if attr_name.startswith('set') else 'get'
        slot = index.setdefault(prop, {})
        # "get" wins over "is" when a class has both
        if kind not in slot or attr_name.startswith('get'):
            slot[kind] = attr_name

    # Races only ever compute identical indexes
    return _convention_cache.setdefault(clazz, index)


def _safe_type_hints(obj: Any) -> Dict[str, Any]:
    try:
        return get_type_hints(obj)
    except Exception:
        return dict(getattr(obj, '__annotations__', {}) or {})


def declared_class(type_hint: Any) -> Optional[type]:
    """Reduce a type hint to a class usable for further property lookup.

    Optional[X] -> X, List[int] -> list, unresolved forward refs -> None.
    """
    if type_hint is None or type_hint is Any or isinstance(type_hint, str):
        return None
    origin = get_origin(type_hint)
    if origin is Union or origin is _UNION_TYPE:
        args = [arg for arg in get_args(type_hint) if arg is not type(None)]
        if len(args) == 1:
            return declared_class(args[0])
        return None
    if origin is not None:
        return origin if isinstance(origin, type) else None
    return type_hint if isinstance(type_hint, type) else None


def has_discoverable_properties(clazz: Optional[type]) -> bool:
    """True for classes whose properties can be walked into.

    Dataclasses, classes with annotated attributes, Python ``property``
    objects or get/is/set accessor methods. Builtins and enums are values.
    """
    if clazz is None or clazz.__module__ == 'builtins' or issubclass(clazz, Enum):
        return False
    if is_dataclass(clazz) or _convention_methods(clazz) or _safe_type_hints(clazz):
        return True
    return any(isinstance(inspect.getattr_static(clazz, name, None), property) for name in dir(clazz))


def _init_parameter_types(clazz: type) -> Dict[str, Any]:
    """__init__ parameter hints along the MRO, most specific first (None if unannotated)."""
    result: Dict[str, Any] = {}
    for cls in clazz.__mro__:
        if cls is object or cls.__init__ is object.__init__:
            continue
        try:
            sig = inspect.signature(cls.__init__)
        except (ValueError, TypeError):
            continue
        hints = _safe_type_hints(cls.__init__)
        for name, param in sig.parameters.items():
            if name == 'self' or name in result:
                continue
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            if name in hints:
                result[name] = hints[name]
            elif param.annotation is not inspect.Parameter.empty:
                result[name] = param.annotation
            else:
                result[name] = None
    return result


def _attribute_reader(name: str) -> Callable[[Any], Any]:
    def read(obj: Any) -> Any:
        return getattr(obj, name)
    return read


def _attribute_writer(name: str) -> Callable[[Any, Any], None]:
    def write(obj: Any, value: Any) -> None:
        setattr(obj, name, value)
    return write


def _method_reader(method_name: str) -> Callable[[Any], Any]:
    def read(obj: Any) -> Any:
        return getattr(obj, method_name)()
    return read


def _method_writer(method_name: str) -> Callable[[Any, Any], None]:
    def write(obj: Any, value: Any) -> None:
        getattr(obj, method_name)(value)
    return write


def _is_frozen(clazz: type) -> bool:
    params = getattr(clazz, '__dataclass_params__', None)
    return bool(params is not None and params.frozen)


@dataclass(frozen=True)
class PropertyAccessor:
    """Read/write handles for one property of one class.

    Build with PropertyAccessor.resolve(); an accessor whose ``exists`` is False
    has no getter and must never be placed in an AccessorChain.
    """
    property_name: str
    clazz: type
    getter: Optional[Callable[[Any], Any]] = None
    setter: Optional[Callable[[Any, Any], None]] = None
    return_type: Optional[type] = None

    @property
    def exists(self) -> bool:
        return self.getter is not None

    @property
    def writable(self) -> bool:
        return self.setter is not None

    @classmethod
    def resolve(cls, clazz: type, name: str, with_setter: bool = False) -> 'PropertyAccessor':
        """Discover the accessors for ``name`` on ``clazz``.

        Args:
            clazz: Class that owns the property
            name: Single property name (no dots)
            with_setter: Also look for a setter. Only the last segment of a
                         writable path needs one.
        """
        getter, setter, type_hint = cls._discover(clazz, name, with_setter)
        accessor = cls(
            property_name=name,
            clazz=clazz,
            getter=getter,
            setter=setter if with_setter else None,
            return_type=declared_class(type_hint),
        )
        if not accessor.exists:
            logger.debug(f"No getter for {clazz.__name__}.{name}")
        return accessor

    @staticmethod
    def _discover(clazz: type, name: str, with_setter: bool):
        registered = _find_registered(clazz, name)
        if registered is not None:
            return registered

        getter = setter = None
        type_hint = None

        methods = _convention_methods(clazz).get(name, {})
        if 'get' in methods:
            getter = _method_reader(methods['get'])
            type_hint = _safe_type_hints(getattr(clazz, methods['get'])).get('return')
        if with_setter and 'set' in methods:
            setter = _method_writer(methods['set'])

        static_attr = inspect.getattr_static(clazz, name, None)
        if isinstance(static_attr, property):
            if getter is None and static_attr.fget is not None:
                getter = _attribute_reader(name)
                type_hint = _safe_type_hints(static_attr.fget).get('return')
            if with_setter and setter is None and static_attr.fset is not None:
                setter = _attribute_writer(name)
            return getter, setter, type_hint

        field_hint, is_field = PropertyAccessor._field_hint(clazz, name)
        if is_field:
            if getter is None:
                getter = _attribute_reader(name)
                type_hint = field_hint
            # Convention getters only pair with convention setters
            if with_setter and setter is None and not _is_frozen(clazz) and 'get' not in methods:
                setter = _attribute_writer(name)
        return getter, setter, type_hint

    @staticmethod
    def _field_hint(clazz: type, name: str):
        if is_dataclass(clazz):
            for f in dataclass_fields(clazz):
                if f.name == name:
                    return _safe_type_hints(clazz).get(name, f.type), True
        class_hints = _safe_type_hints(clazz)
        if name in class_hints:
            return class_hints[name], True
        if name in getattr(clazz, '__slots__', ()):
            return None, True
        init_types = _init_parameter_types(clazz)
        if name in init_types:
            return init_types[name], True
        return None, False

    def read(self, obj: Any) -> Any:
        if self.getter is None:
            raise NoSuchPropertyError(self.clazz, self.property_name, "no getter")
        return self.getter(obj)

    def write(self, obj: Any, value: Any) -> None:
        if self.setter is None:
            raise ReadOnlyPropertyError(self.clazz, self.property_name)
        self.setter(obj, value)

    def __repr__(self) -> str:
        access = "rw" if self.writable else "r"
        returns = getattr(self.return_type, '__name__', None)
        return f"PropertyAccessor({self.clazz.__name__}.{self.property_name} [{access}] -> {returns})"
