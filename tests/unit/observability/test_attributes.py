"""Tests for spanlinks.observability.attributes module."""

from spanlinks.observability import attributes
from spanlinks.observability.attributes import (
    ATTR_LINK_DIRECTION,
    ATTR_LINK_TRACE_RELATIONSHIP,
    ATTR_LINK_TYPE,
    ATTR_ORDER_ID,
    ATTR_SOURCE_SERVICE,
    ATTR_WORKER_ID,
    LINK_DIRECTION_BACKWARD,
    LINK_DIRECTION_FORWARD,
)


class TestAttributeConstants:
    """Tests for attribute constant definitions."""

    def test_link_attributes_use_link_prefix(self):
        assert ATTR_LINK_TYPE.startswith("link.")
        assert ATTR_LINK_DIRECTION.startswith("link.")
        assert ATTR_LINK_TRACE_RELATIONSHIP.startswith("link.")

    def test_order_and_worker_keys(self):
        assert ATTR_ORDER_ID == "order.id"
        assert ATTR_WORKER_ID == "worker.id"
        assert ATTR_SOURCE_SERVICE == "source.service"

    def test_link_directions_are_distinct(self):
        assert {LINK_DIRECTION_BACKWARD, LINK_DIRECTION_FORWARD} == {"backward", "forward"}


class TestModuleExports:
    """Tests for the module's __all__ list."""

    def test_all_exports_exist(self):
        for name in attributes.__all__:
            assert hasattr(attributes, name), f"{name} listed in __all__ but not defined"

    def test_all_public_constants_exported(self):
        public = [
            name
            for name in dir(attributes)
            if name.isupper() and (name.startswith("ATTR_") or name.startswith("LINK_"))
        ]
        assert sorted(public) == sorted(attributes.__all__)

    def test_attribute_values_are_unique(self):
        names = [name for name in attributes.__all__ if name.startswith("ATTR_")]
        values = [getattr(attributes, name) for name in names]
        assert len(values) == len(set(values))

    def test_attribute_values_are_non_empty_strings(self):
        for name in attributes.__all__:
            value = getattr(attributes, name)
            assert isinstance(value, str)
            assert value
