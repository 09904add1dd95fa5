"""Tests for request validation and correction."""

import pytest

from admin_agent.catalog.index import CatalogIndex, Endpoint
from admin_agent.catalog.validator import CorrectionPolicy, is_id_like, validate_request


@pytest.fixture
def index() -> CatalogIndex:
    """A small catalog with mixed separators."""
    return CatalogIndex.build(
        [
            Endpoint.create("GET", "/admin/orders", summary="List orders"),
            Endpoint.create("GET", "/admin/orders/{id}", summary="Retrieve an order"),
            Endpoint.create("GET", "/admin/customers", summary="List customers"),
            Endpoint.create("GET", "/admin/customers/{id}", summary="Retrieve a customer"),
            Endpoint.create("GET", "/admin/persons", summary="List persons"),
            Endpoint.create("GET", "/admin/inventory-items", summary="List inventory items"),
            Endpoint.create("GET", "/admin/product_categories", summary="List categories"),
            Endpoint.create("POST", "/admin/designs/{id}", summary="Update a design"),
        ]
    )


class TestValidateRequest:
    """Test the validation steps in order."""

    def test_direct_match_keeps_underscore_ids(self, index: CatalogIndex) -> None:
        """Record ids with underscores are passed through untouched."""
        outcome = validate_request(index, "get", "/admin/orders/order_01ABC")

        assert outcome.allowed
        assert outcome.reason == "direct"
        assert outcome.method == "GET"
        assert outcome.path == "/admin/orders/order_01ABC"
        assert outcome.corrected_from is None

    def test_separator_alias(self, index: CatalogIndex) -> None:
        """A "-" spelling resolves to the declared "_" path."""
        outcome = validate_request(index, "GET", "/admin/product-categories")

        assert outcome.allowed
        assert outcome.reason == "alias"
        assert outcome.path == "/admin/product_categories"
        assert outcome.corrected_from == "/admin/product-categories"

    def test_known_rename(self, index: CatalogIndex) -> None:
        """Known resource renames are applied."""
        outcome = validate_request(index, "GET", "/admin/people")

        assert outcome.reason == "rename"
        assert outcome.path == "/admin/persons"

    def test_singular_to_plural(self, index: CatalogIndex) -> None:
        """A singular resource is pluralized and the id is kept."""
        outcome = validate_request(index, "GET", "/admin/customer/cus_123")

        assert outcome.allowed
        assert outcome.reason == "rename"
        assert outcome.path == "/admin/customers/cus_123"

    def test_nearest_neighbour(self, index: CatalogIndex) -> None:
        """A close lexical match is accepted under the default policy."""
        outcome = validate_request(index, "GET", "/admin/inventory-item-list")

        assert outcome.allowed
        assert outcome.reason == "suggestion"
        assert outcome.path == "/admin/inventory-items"

    def test_nearest_neighbour_disabled(self, index: CatalogIndex) -> None:
        """With corrections disabled the same request is rejected."""
        outcome = validate_request(
            index, "GET", "/admin/inventory-item-list", CorrectionPolicy(enabled=False)
        )
        assert not outcome.allowed
        assert outcome.reason == "rejected"

    def test_unknown_rejected(self, index: CatalogIndex) -> None:
        """Nothing close enough means rejection with the canonical path."""
        outcome = validate_request(index, "GET", "/admin/zebras")

        assert not outcome.allowed
        assert outcome.path == "/admin/zebras"

    def test_write_template(self, index: CatalogIndex) -> None:
        """Write endpoints validate like reads."""
        outcome = validate_request(index, "POST", "/admin/designs/des_1")
        assert outcome.allowed
        assert outcome.endpoint is not None
        assert outcome.endpoint.is_write

    def test_method_mismatch_rejected(self, index: CatalogIndex) -> None:
        """A path known only for another method is not allowed."""
        outcome = validate_request(index, "DELETE", "/admin/orders/order_1")
        assert not outcome.allowed

    def test_degraded_passthrough(self) -> None:
        """An empty catalog allows everything provisionally."""
        outcome = validate_request(CatalogIndex.empty(), "GET", "anything_goes/x_1")

        assert outcome.allowed
        assert outcome.degraded
        assert outcome.path == "/admin/anything_goes/x_1"


def test_is_id_like() -> None:
    """Prefixed ids, numbers and UUIDs look like ids; words do not."""
    assert is_id_like("cus_01HXYZ")
    assert is_id_like("42")
    assert is_id_like("{id}")
    assert is_id_like("123e4567-e89b-12d3-a456-426614174000")
    assert not is_id_like("orders")
    assert not is_id_like("product_categories")
