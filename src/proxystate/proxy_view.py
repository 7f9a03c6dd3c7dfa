"""
ProxyView: attribute-style facade over a proxy mapper.

Calling code treats the view as if it were the real object:

    person = ProxyFactory().get_proxy(real_person, "name", "address.city")
    person.name = "Ada"              # pending on the root mapper
    person.address.city              # child view, then a read through the mapper
    person.get_name()                # get/is/set convention routed to the mapper
    person.describe()                # other methods forwarded to the real object

Internally everything goes through the mapper's get_value()/set_value(), so
the view itself holds no state besides its mapper.
"""
import functools
import logging
from typing import Any, Optional

from proxystate.errors import NoSuchPropertyError
from proxystate.property_accessor import getter_property_name, has_discoverable_properties, setter_property_name
from proxystate.proxy_loader import ProxyBehavior, ProxyLoader, ProxyMethodHelper
from proxystate.proxy_mapper import ProxyMapper, RootProxyMapper

logger = logging.getLogger(__name__)


class ProxyView:
    """Forward attribute reads/writes to a ProxyMapper.

    Nested paths that the whitelist continues below, and properties holding
    objects with properties of their own, return child views (also when the
    nested object is None); everything else returns the tracked value.
    """

    def __init__(self, proxy_mapper: ProxyMapper):
        object.__setattr__(self, '_proxy_mapper', proxy_mapper)

    def __getattr__(self, name: str) -> Any:
        if name.startswith('__'):
            raise AttributeError(name)
        mapper: ProxyMapper = object.__getattribute__(self, '_proxy_mapper')

        if mapper.get_path_resolver().has_descendants(mapper.true_property_name(name)):
            return ProxyView(mapper.get_child_proxy_mapper(name))

        try:
            chain = mapper.get_accessor_chain(name)
        except NoSuchPropertyError:
            accessor = self._convention_method(mapper, name)
            if accessor is not None:
                return accessor
            helper = mapper.get_proxy_method_helper()
            if helper is not None and helper.handles(mapper.real_class, name):
                return functools.partial(helper.invoke, mapper, name)
            raise

        # Nested objects come back as views so writes into them stay pending
        if has_discoverable_properties(chain.return_type):
            return ProxyView(mapper.get_child_proxy_mapper(name))
        return mapper.get_value(name)

    def _convention_method(self, mapper: ProxyMapper, name: str):
        prop = getter_property_name(name)
        if prop is not None:
            def getter() -> Any:
                return getattr(self, prop)
            return getter
        prop = setter_property_name(name)
        if prop is not None:
            def setter(value: Any) -> None:
                mapper.set_value(prop, value)
            return setter
        return None

    def __setattr__(self, name: str, value: Any) -> None:
        mapper: ProxyMapper = object.__getattribute__(self, '_proxy_mapper')
        mapper.set_value(name, value)

    def __delattr__(self, name: str) -> None:
        raise AttributeError("ProxyView properties cannot be deleted; set them to None instead")

    def __dir__(self):
        mapper: ProxyMapper = object.__getattribute__(self, '_proxy_mapper')
        base = mapper.base_property_path
        prefix = f"{base}." if base else ""
        names = set()
        for path in mapper.get_path_resolver().paths:
            if path.startswith(prefix):
                names.add(path[len(prefix):].split('.')[0])
        return sorted(names)

    def __repr__(self) -> str:
        mapper = object.__getattribute__(self, '_proxy_mapper')
        return f"ProxyView({mapper!r})"


def proxy_mapper_of(view: ProxyView) -> ProxyMapper:
    """The mapper behind a view."""
    if not isinstance(view, ProxyView):
        raise TypeError(f"Expected ProxyView, got {type(view).__name__}")
    return object.__getattribute__(view, '_proxy_mapper')


class ProxyFactory:
    """Builds root mappers with shared defaults and hands out their views."""

    def __init__(
        self,
        proxy_loader: Optional[ProxyLoader] = None,
        proxy_behavior: Optional[ProxyBehavior] = None,
        proxy_method_helper: Optional[ProxyMethodHelper] = None,
        allow_intermediate_properties: Optional[bool] = None,
    ):
        self.proxy_loader = proxy_loader
        self.proxy_behavior = proxy_behavior
        self.proxy_method_helper = proxy_method_helper
        self.allow_intermediate_properties = allow_intermediate_properties

    def get_proxy_mapper(self, real_object: Any = None, *property_paths: str,
                         real_class: Optional[type] = None) -> RootProxyMapper:
        return RootProxyMapper(
            real_object,
            real_class=real_class,
            property_paths=property_paths,
            proxy_loader=self.proxy_loader,
            proxy_behavior=self.proxy_behavior,
            proxy_method_helper=self.proxy_method_helper,
            allow_intermediate_properties=self.allow_intermediate_properties,
        )

    def get_proxy(self, real_object: Any = None, *property_paths: str,
                  real_class: Optional[type] = None) -> ProxyView:
        """A view over a new root mapper for ``real_object`` (or a lazily loaded ``real_class``)."""
        mapper = self.get_proxy_mapper(real_object, *property_paths, real_class=real_class)
        logger.debug(f"Created proxy for {mapper!r} with paths {list(property_paths)}")
        return ProxyView(mapper)
