"""
Tests for RootProxyMapper: latching, pending values, behaviors, apply and restore.
"""
import logging

import pytest

from proxystate import (
    ChildObjectNotLoadableError,
    NoSuchPropertyError,
    ProxyBehavior,
    ProxyMapperState,
    ReadOnlyPropertyError,
    RootProxyMapper,
)

from conftest import Address, Person, RecordingLoader


@pytest.fixture
def mapper(person):
    return RootProxyMapper(person, property_paths=("name", "age", "address.city"))


class TestConstruction:
    """Constructor argument checks."""

    def test_needs_object_or_class(self):
        with pytest.raises(ValueError):
            RootProxyMapper()

    def test_object_must_match_class(self, person):
        with pytest.raises(TypeError):
            RootProxyMapper(person, real_class=Address)

    def test_real_class_inferred(self, mapper):
        assert mapper.real_class is Person
        assert mapper.is_root
        assert mapper.depth == 0
        assert mapper.base_property_path == ""


class TestOriginalValues:
    """First read wins."""

    def test_first_read_is_latched(self, mapper, person):
        assert mapper.get_value("name") == "Ada"
        person.name = "Changed behind our back"

        assert mapper.get_original_values()["name"] == "Ada"
        assert mapper.get_value("name") == "Ada"

    def test_absent_intermediate_is_latched_as_none(self, homeless_person):
        mapper = RootProxyMapper(homeless_person, property_paths=("address.city",))
        assert mapper.get_value("address.city") is None
        assert mapper.contains_key("address.city")

        homeless_person.address = Address(city="Porto")
        assert mapper.get_value("address.city") is None

    def test_intermediate_prefix_is_readable(self, mapper, address):
        assert mapper.get_value("address") is address


class TestNewValues:
    """Pending writes never touch the real object."""

    def test_last_write_wins(self, mapper, person):
        mapper.set_value("name", "Grace")
        mapper.set_value("name", "Hedy")

        assert mapper.get_new_values() == {"name": "Hedy"}
        assert mapper.get_value("name") == "Hedy"
        assert person.name == "Ada"

    def test_read_only_prefix_rejects_writes(self, mapper):
        with pytest.raises(ReadOnlyPropertyError):
            mapper.set_value("address", Address())
        assert mapper.get_new_values() == {}

    def test_unknown_path(self, mapper):
        with pytest.raises(NoSuchPropertyError):
            mapper.set_value("nickname", "x")
        with pytest.raises(NoSuchPropertyError):
            mapper.get_value("nickname")

    def test_dirty_properties(self, mapper):
        mapper.get_value("name")
        mapper.set_value("name", "Ada")
        mapper.set_value("age", 37)

        assert mapper.dirty_properties() == {"age"}
        assert mapper.is_dirty()

    def test_pending_parent_shadows_real_object(self, person):
        mapper = RootProxyMapper(person, property_paths=("address", "address.city"))
        assert mapper.get_value("address.city") == "Porto"

        mapper.set_value("address", Address(city="Faro"))
        assert mapper.get_value("address.city") == "Faro"

        mapper.set_value("address.city", "Braga")
        assert mapper.get_value("address.city") == "Braga"
        assert person.address.city == "Porto"


class TestBehavior:
    """Reads when the real object is not loaded."""

    def test_read_through_without_loader_reads_none(self):
        mapper = RootProxyMapper(real_class=Person, property_paths=("name",))
        assert mapper.get_value("name") is None
        assert not mapper.contains_key("name")

    def test_null_value_never_loads(self, person):
        loader = RecordingLoader(person)
        mapper = RootProxyMapper(
            real_class=Person,
            property_paths=("name",),
            proxy_loader=loader,
            proxy_behavior=ProxyBehavior.NULL_VALUE,
        )
        assert mapper.get_value("name") is None
        assert loader.calls == []

    def test_strict_raises(self):
        mapper = RootProxyMapper(
            real_class=Person,
            property_paths=("name",),
            proxy_behavior=ProxyBehavior.STRICT,
        )
        with pytest.raises(ChildObjectNotLoadableError) as exc_info:
            mapper.get_value("name")
        assert "reading 'name'" in exc_info.value.messages

    def test_loader_is_used_once(self, person):
        loader = RecordingLoader(person)
        mapper = RootProxyMapper(real_class=Person, property_paths=("name", "age"), proxy_loader=loader)
        assert mapper.state is ProxyMapperState.UNLOADED

        assert mapper.get_value("name") == "Ada"
        assert mapper.get_value("age") == 36
        assert loader.calls == [""]
        assert mapper.state is ProxyMapperState.LOADED

    def test_behavior_can_change(self, person):
        mapper = RootProxyMapper(real_class=Person, property_paths=("name",),
                                 proxy_loader=RecordingLoader(person),
                                 proxy_behavior=ProxyBehavior.NULL_VALUE)
        assert mapper.get_value("name") is None
        mapper.set_proxy_behavior(ProxyBehavior.READ_THROUGH)
        assert mapper.get_value("name") == "Ada"


class TestApply:
    """apply_to_real_object() flushes pending values."""

    def test_apply_writes_and_clears(self, mapper, person):
        mapper.get_value("address.city")
        mapper.set_value("name", "Grace")
        mapper.set_value("address.city", "Lisbon")
        assert mapper.state is ProxyMapperState.MUTATED

        assert mapper.apply_to_real_object() is person
        assert person.name == "Grace"
        assert person.address.city == "Lisbon"
        assert mapper.get_new_values() == {}
        assert mapper.get_original_values()["address.city"] == "Lisbon"
        assert mapper.state is ProxyMapperState.APPLIED
        assert not mapper.is_dirty()

    def test_parent_applied_before_its_properties(self, person):
        mapper = RootProxyMapper(person, property_paths=("address", "address.city"))
        replacement = Address(city="Faro")
        mapper.set_value("address.city", "Braga")
        mapper.set_value("address", replacement)

        mapper.apply_to_real_object()
        assert person.address is replacement
        assert replacement.city == "Braga"

    def test_apply_skips_absent_intermediate(self, homeless_person, caplog):
        mapper = RootProxyMapper(homeless_person, property_paths=("address.city",))
        mapper.set_value("address.city", "Lisbon")
        with caplog.at_level(logging.WARNING, logger="proxystate.proxy_mapper"):
            mapper.apply_to_real_object()

        assert homeless_person.address is None
        # The value never reached the real object, so it is still pending
        assert mapper.get_new_values() == {"address.city": "Lisbon"}
        assert "address.city" not in mapper.get_original_values()
        assert mapper.is_dirty()
        assert mapper.state is ProxyMapperState.MUTATED
        assert "address.city" in caplog.text

        homeless_person.address = Address(city="Porto")
        mapper.apply_to_real_object()
        assert homeless_person.address.city == "Lisbon"
        assert mapper.get_new_values() == {}

    def test_failing_first_setter_leaves_everything_pending(self):
        class Gauge:
            def __init__(self):
                self._low = 0
                self._high = 0

            @property
            def low(self) -> int:
                return self._low

            @low.setter
            def low(self, value: int) -> None:
                self._low = value

            @property
            def high(self) -> int:
                return self._high

            @high.setter
            def high(self, value: int) -> None:
                if value > 10:
                    raise ValueError("high out of range")
                self._high = value

        gauge = Gauge()
        mapper = RootProxyMapper(gauge, property_paths=("high", "low"))
        mapper.set_value("low", 1)
        mapper.set_value("high", 99)

        # "high" sorts first and fails before "low" is written
        with pytest.raises(ValueError):
            mapper.apply_to_real_object()
        assert gauge.low == 0
        assert mapper.get_new_values() == {"high": 99, "low": 1}

        mapper.set_value("high", 5)
        mapper.set_value("low", 11)
        mapper.apply_to_real_object()
        assert (gauge.high, gauge.low) == (5, 11)

    def test_partial_apply_records_written_paths(self):
        class Gauge:
            def __init__(self):
                self._high = 0
                self._low = 0

            @property
            def high(self) -> int:
                return self._high

            @high.setter
            def high(self, value: int) -> None:
                self._high = value

            @property
            def low(self) -> int:
                return self._low

            @low.setter
            def low(self, value: int) -> None:
                if value < 0:
                    raise ValueError("low out of range")
                self._low = value

        gauge = Gauge()
        mapper = RootProxyMapper(gauge, property_paths=("high", "low"))
        mapper.set_value("high", 7)
        mapper.set_value("low", -1)

        with pytest.raises(ValueError):
            mapper.apply_to_real_object()

        assert gauge.high == 7
        assert mapper.get_new_values() == {"low": -1}
        assert mapper.get_original_values() == {"high": 7}

    def test_applied_returns_to_loaded_on_read(self, mapper):
        mapper.set_value("name", "Grace")
        mapper.apply_to_real_object()
        assert mapper.state is ProxyMapperState.APPLIED

        assert mapper.get_value("name") == "Grace"
        assert mapper.state is ProxyMapperState.LOADED

    def test_apply_drops_stale_descendant_originals(self, person):
        mapper = RootProxyMapper(person, property_paths=("address", "address.city"))
        assert mapper.get_value("address.city") == "Porto"
        mapper.set_value("address", Address(city="Faro"))
        mapper.apply_to_real_object()

        assert "address.city" not in mapper.get_original_values()
        assert mapper.get_value("address.city") == "Faro"

    def test_apply_needs_real_object(self):
        mapper = RootProxyMapper(real_class=Person, property_paths=("name",))
        mapper.set_value("name", "Grace")
        with pytest.raises(ChildObjectNotLoadableError):
            mapper.apply_to_real_object()
        assert mapper.get_new_values() == {"name": "Grace"}

    def test_apply_loads_through_loader(self, person):
        mapper = RootProxyMapper(real_class=Person, property_paths=("name",),
                                 proxy_loader=RecordingLoader(person))
        mapper.set_value("name", "Grace")
        mapper.apply_to_real_object()
        assert person.name == "Grace"


class TestRestoreAndCallbacks:
    """Discarding pending values and observing changes."""

    def test_restore_original(self, mapper, person):
        mapper.get_value("name")
        mapper.set_value("name", "Grace")
        mapper.restore_original()

        assert mapper.get_new_values() == {}
        assert mapper.get_value("name") == "Ada"
        assert person.name == "Ada"

    def test_callbacks_see_previous_and_new(self, mapper):
        events = []
        mapper.add_change_callback(lambda path, old, new: events.append((path, old, new)))

        mapper.get_value("name")
        mapper.set_value("name", "Grace")
        mapper.set_value("name", "Hedy")
        mapper.restore_original()

        assert events == [
            ("name", "Ada", "Grace"),
            ("name", "Grace", "Hedy"),
            ("name", "Hedy", "Ada"),
        ]

    def test_failing_callback_is_logged(self, mapper, caplog):
        events = []

        def broken(path, old, new):
            raise RuntimeError("boom")

        mapper.add_change_callback(broken)
        mapper.add_change_callback(lambda path, old, new: events.append(path))

        with caplog.at_level(logging.WARNING, logger="proxystate.proxy_mapper"):
            mapper.set_value("age", 1)

        assert events == ["age"]
        assert "boom" in caplog.text

    def test_remove_callback(self, mapper):
        events = []

        def callback(path, old, new):
            events.append(path)

        mapper.add_change_callback(callback)
        mapper.add_change_callback(callback)
        mapper.remove_change_callback(callback)
        mapper.set_value("age", 1)
        assert events == []


class TestChildren:
    """Child mapper bookkeeping on the root."""

    def test_children_are_cached(self, mapper):
        child = mapper.get_child_proxy_mapper("address")
        assert mapper.get_child_proxy_mapper("address") is child
        assert mapper.get_proxy_mapper_at("address") is child
        assert mapper.get_proxy_mapper_at("") is mapper
        assert mapper.get_child_proxy_mappers() == {"address": child}

    def test_child_of_untyped_property(self):
        class Loose:
            def __init__(self, inner):
                self.inner = inner

        mapper = RootProxyMapper(Loose(object()), property_paths=("inner",))
        with pytest.raises(NoSuchPropertyError, match="unknown"):
            mapper.get_child_proxy_mapper("inner")
