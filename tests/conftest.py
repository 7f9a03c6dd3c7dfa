"""Pytest configuration and shared fixtures."""
import pytest
from dataclasses import dataclass
from typing import Optional

import proxystate.config as config_module
import proxystate.property_accessor as accessor_module
from proxystate import ProxyConfig, ProxyLoader, ChildObjectNotLoadableError


@dataclass
class Country:
    """Innermost level of the test object graph."""
    code: str = "PT"


@dataclass
class Address:
    """Nested object held by Person.address."""
    city: Optional[str] = None
    street: str = ""
    country: Optional[Country] = None


@dataclass
class Person:
    """Root object for most tests."""
    name: str = ""
    age: int = 0
    address: Optional[Address] = None

    def greeting(self) -> str:
        return f"Hello, {self.name}"


class Account:
    """Bean-style class: state only reachable through get/is/set methods."""

    def __init__(self, owner: str, active: bool = True):
        self._owner = owner
        self._active = active

    def getOwner(self) -> str:
        return self._owner

    def setOwner(self, owner: str) -> None:
        self._owner = owner

    def isActive(self) -> bool:
        return self._active


class RecordingLoader(ProxyLoader):
    """Loader returning a fixed root object and refusing nested ones."""

    def __init__(self, root_object):
        self.root_object = root_object
        self.calls = []

    def get_real_object(self, proxy_mapper, *messages):
        self.calls.append(proxy_mapper.base_property_path)
        if not proxy_mapper.is_root:
            raise ChildObjectNotLoadableError(*messages, "nested objects come from the parent")
        return self.root_object


@pytest.fixture(autouse=True)
def reset_library_state():
    """Reset module-level defaults and registries around each test."""
    original_config = config_module._proxy_config
    original_registry = {cls: dict(entries) for cls, entries in accessor_module._accessor_registry.items()}
    config_module._proxy_config = ProxyConfig()

    yield

    config_module._proxy_config = original_config
    accessor_module._accessor_registry.clear()
    accessor_module._accessor_registry.update(original_registry)


@pytest.fixture
def address():
    return Address(city="Porto", street="Rua das Flores", country=Country(code="PT"))


@pytest.fixture
def person(address):
    return Person(name="Ada", age=36, address=address)


@pytest.fixture
def homeless_person():
    return Person(name="Bob", age=40, address=None)
