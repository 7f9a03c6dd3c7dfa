"""
Exception types raised by proxystate.

Every error derives from ProxyStateError and from the closest builtin, so
callers that only know about AttributeError / LookupError still catch them.
An absent intermediate value while following a property path is NOT an error
and never shows up here.
"""
from typing import Any, Optional, Tuple


class ProxyStateError(Exception):
    """Base class for all proxystate errors."""


class NoSuchPropertyError(ProxyStateError, AttributeError):
    """A property path does not resolve on a type, or is not permitted."""

    def __init__(self, clazz: Optional[type], property_path: str, reason: str = ""):
        self.clazz = clazz
        self.property_path = property_path
        self.reason = reason
        type_name = getattr(clazz, '__name__', repr(clazz))
        message = f"{type_name} has no property named '{property_path}'"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class ReadOnlyPropertyError(ProxyStateError, AttributeError):
    """Attempt to write through a read-only property chain."""

    def __init__(self, clazz: Optional[type], property_path: str):
        self.clazz = clazz
        self.property_path = property_path
        type_name = getattr(clazz, '__name__', repr(clazz))
        super().__init__(f"'{property_path}' is read-only on {type_name}")


class ChildObjectNotLoadableError(ProxyStateError, LookupError):
    """A real object is required but could not be obtained.

    ``messages`` holds whatever diagnostic context the caller or the loader
    supplied about why loading was attempted or why it failed.
    """

    def __init__(self, *messages: Any):
        self.messages: Tuple[Any, ...] = messages
        detail = " ".join(str(m) for m in messages if m is not None)
        super().__init__(f"real object is not loadable: {detail}" if detail else "real object is not loadable")


class UnsupportedProxyOperationError(ProxyStateError, NotImplementedError):
    """Operation not supported by this kind of proxy mapper."""
