"""
Library-wide defaults for proxy mappers and path resolvers.

Two layers, same pattern as the global-config storage this package grew from:
- a process-wide ProxyConfig set with set_proxy_config()
- a contextvars override installed with proxy_config_context()

Mappers and resolvers only consult these when the caller passes no explicit
value for the corresponding option.
"""
import contextvars
import dataclasses
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Generator, Optional

from proxystate.proxy_loader import ProxyBehavior


@dataclass(frozen=True)
class ProxyConfig:
    """Defaults applied to newly created mappers and resolvers."""
    default_behavior: ProxyBehavior = ProxyBehavior.READ_THROUGH
    # Register every dotted prefix of a permitted path as a read-only chain
    allow_intermediate_properties: bool = True
    # Guard root stores and chain caches with locks
    thread_safe: bool = True


_proxy_config: ProxyConfig = ProxyConfig()

_context_config: contextvars.ContextVar[Optional[ProxyConfig]] = contextvars.ContextVar(
    'proxystate_config', default=None
)


def get_proxy_config() -> ProxyConfig:
    """Return the config in effect for the current context."""
    override = _context_config.get()
    return override if override is not None else _proxy_config


def set_proxy_config(config: ProxyConfig) -> None:
    """Replace the process-wide defaults."""
    global _proxy_config
    if not isinstance(config, ProxyConfig):
        raise TypeError(f"Expected ProxyConfig, got {type(config).__name__}")
    _proxy_config = config


@contextmanager
def proxy_config_context(**overrides: Any) -> Generator[ProxyConfig, None, None]:
    """Temporarily override fields of the current config.

    Example:
        with proxy_config_context(default_behavior=ProxyBehavior.STRICT):
            mapper = RootProxyMapper(real_class=Person)
    """
    config = dataclasses.replace(get_proxy_config(), **overrides)
    token = _context_config.set(config)
    try:
        yield config
    finally:
        _context_config.reset(token)
