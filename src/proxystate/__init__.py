"""
Dotted-path property access and change-tracking proxies for duck-typed objects.

Read and write nested properties by path ("grandparent.parent.child") on
objects that share no common interface, and put a change-tracking proxy in
front of a real object: reads are latched as original values, writes are held
as pending values until they are applied.

Quick Start:
    >>> from proxystate import PathResolver, ProxyFactory, proxy_mapper_of
    >>>
    >>> resolver = PathResolver("name", "address.city")
    >>> resolver.get_value(person, "address.city")    # None if person.address is None
    >>>
    >>> view = ProxyFactory().get_proxy(person, "name", "address.city")
    >>> view.address.city = "Lisbon"                  # pending, person untouched
    >>> proxy_mapper_of(view).apply_to_real_object()  # now person.address.city changes

Architecture:
    PropertyAccessor    one property of one class (get/is/set convention,
                        properties, fields, or an explicit registration)
    AccessorChain       the accessors for one dotted path
    PathResolver        whitelist + per-class chain cache
    RootProxyMapper     original/pending stores, lazy loading, apply
    ChildProxyMapper    nested object; forwards everything to its root
    ProxyView           attribute facade over a mapper

Modules:
    - property_accessor: accessor discovery and naming convention parsing
    - accessor_chain: dotted path traversal with None short-circuit
    - path_resolver: whitelisted, cached chain resolution
    - proxy_mapper / child_proxy_mapper: change tracking and delegation
    - proxy_loader: loader, behavior and method-helper collaborators
    - proxy_view: attribute facade and factory
    - config: library defaults
    - errors: exception types
"""

# Accessors
from proxystate.property_accessor import (
    PropertyAccessor,
    register_accessor,
    unregister_accessor,
    property_name,
    getter_property_name,
    setter_property_name,
    has_discoverable_properties,
)

# Chains and resolution
from proxystate.accessor_chain import AccessorChain
from proxystate.path_resolver import PathResolver, validate_property_path

# Mappers
from proxystate.proxy_mapper import ProxyMapper, RootProxyMapper
from proxystate.child_proxy_mapper import ChildProxyMapper
from proxystate.proxy_loader import ProxyBehavior, ProxyLoader, ProxyMapperState, ProxyMethodHelper

# Facade
from proxystate.proxy_view import ProxyView, ProxyFactory, proxy_mapper_of

# Configuration
from proxystate.config import ProxyConfig, get_proxy_config, set_proxy_config, proxy_config_context

# Errors
from proxystate.errors import (
    ProxyStateError,
    NoSuchPropertyError,
    ReadOnlyPropertyError,
    ChildObjectNotLoadableError,
    UnsupportedProxyOperationError,
)

__all__ = [
    # Accessors
    'PropertyAccessor',
    'register_accessor',
    'unregister_accessor',
    'property_name',
    'getter_property_name',
    'setter_property_name',
    'has_discoverable_properties',
    # Chains and resolution
    'AccessorChain',
    'PathResolver',
    'validate_property_path',
    # Mappers
    'ProxyMapper',
    'RootProxyMapper',
    'ChildProxyMapper',
    'ProxyBehavior',
    'ProxyLoader',
    'ProxyMapperState',
    'ProxyMethodHelper',
    # Facade
    'ProxyView',
    'ProxyFactory',
    'proxy_mapper_of',
    # Configuration
    'ProxyConfig',
    'get_proxy_config',
    'set_proxy_config',
    'proxy_config_context',
    # Errors
    'ProxyStateError',
    'NoSuchPropertyError',
    'ReadOnlyPropertyError',
    'ChildObjectNotLoadableError',
    'UnsupportedProxyOperationError',
]

__version__ = "0.1.0"
