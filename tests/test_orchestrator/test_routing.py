"""Tests for the intent router, recipes and lookup parsing."""

import pytest

from admin_agent.orchestrator.lookup import (
    LookupIntent,
    find_resource,
    normalize_identifier,
    parse_lookup_intent,
)
from admin_agent.orchestrator.recipes import RECIPE_LIMIT, collection_name, match_recipe
from admin_agent.orchestrator.routing import classify_message, is_greeting, route_message
from admin_agent.orchestrator.types import RouteMode


class TestClassifyMessage:
    """Test routing rules and their order."""

    @pytest.mark.parametrize(
        ("message", "mode", "reason"),
        [
            ("", RouteMode.CHAT, "empty_message"),
            ("hi", RouteMode.CHAT, "greeting"),
            ("thanks!", RouteMode.CHAT, "greeting"),
            ("good morning", RouteMode.CHAT, "greeting"),
            ("GET /admin/orders?limit=5", RouteMode.TOOL, "explicit_request"),
            ("please delete /admin/designs/des_01ABC", RouteMode.TOOL, "explicit_request"),
            ("list approved designs", RouteMode.RECIPE, "recipe_pattern"),
            ("recent orders", RouteMode.RECIPE, "recipe_pattern"),
            ("show orders for Sarah", RouteMode.HITL, "one_to_many_lookup"),
            ("cancel order ord_01H9ZZ", RouteMode.TOOL, "action_verb"),
            ("which endpoint handles refunds?", RouteMode.RAG, "documentation_question"),
            ("what's the weather like", RouteMode.CHAT, "default"),
        ],
    )
    def test_modes(self, message: str, mode: RouteMode, reason: str) -> None:
        """Each rule maps to its mode."""
        plan = classify_message(message)
        assert plan["mode"] == mode
        assert plan["reason"] == reason

    def test_recipe_name_is_reported(self) -> None:
        """A recipe route names the recipe."""
        plan = classify_message("list approved designs")
        assert plan["recipe"] == "approved_designs"
        assert plan["confidence"] == 0.9

    def test_explicit_request_beats_recipe(self) -> None:
        """An explicit request wins over a recipe-looking message."""
        plan = classify_message("GET /admin/designs and show approved designs")
        assert plan["mode"] == RouteMode.TOOL

    @pytest.mark.parametrize(
        "message", ["hi, GET /admin/orders", "thanks! now DELETE /admin/designs/des_1"]
    )
    def test_explicit_request_beats_greeting(self, message: str) -> None:
        """A greeting in front of an explicit call still routes to the tool."""
        plan = classify_message(message)
        assert plan["mode"] == RouteMode.TOOL
        assert plan["reason"] == "explicit_request"

    def test_good_is_not_a_greeting_on_its_own(self) -> None:
        """"good" followed by a request is routed by the other rules."""
        plan = classify_message("good designs list")
        assert plan["mode"] == RouteMode.TOOL
        assert plan["reason"] == "action_verb"

    def test_short_action_message_is_chat(self) -> None:
        """An action verb alone is not enough for the tool loop."""
        assert classify_message("show me")["mode"] == RouteMode.CHAT

    def test_route_message_matches_classify(self) -> None:
        """route_message returns the same decision as the pure classifier."""
        assert route_message("recent orders", trace_id="t-1") == classify_message("recent orders")


class TestIsGreeting:
    """Test greeting detection."""

    def test_long_message_is_not_greeting(self) -> None:
        """Greeting words at the start of a long request do not count."""
        assert not is_greeting("hello can you list all customers for me please")

    def test_thanks(self) -> None:
        """Thanks with a short tail is a greeting."""
        assert is_greeting("thanks, that's all")

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("good morning", True),
            ("Good evening!", True),
            ("good night team", True),
            ("good", False),
            ("good designs list", False),
            ("good job", False),
        ],
    )
    def test_good_needs_time_of_day(self, message: str, expected: bool) -> None:
        """"good" greets only before a time of day."""
        assert is_greeting(message) is expected


class TestRecipes:
    """Test recipe matching."""

    def test_status_recipe(self) -> None:
        """"approved designs" becomes one filtered GET."""
        recipe = match_recipe("list approved designs")
        assert recipe is not None
        assert recipe.name == "approved_designs"
        assert recipe.resource == "designs"
        assert len(recipe.steps) == 1
        step = recipe.steps[0]
        assert step.step == 1
        assert step.method == "api"
        assert step.code == f"GET /admin/designs?status=approved&limit={RECIPE_LIMIT}"

    def test_recent_recipe(self) -> None:
        """"recent orders" sorts by creation date."""
        recipe = match_recipe("show me the latest orders")
        assert recipe is not None
        assert recipe.name == "recent_orders"

        recipe = match_recipe("recent 5 orders")
        assert recipe is not None
        assert recipe.name == "recent_orders"
        assert recipe.steps[0].code == f"GET /admin/orders?order=-created_at&limit={RECIPE_LIMIT}"

    def test_two_word_resource(self) -> None:
        """Multi-word nouns become dashed collection names."""
        recipe = match_recipe("show me pending customer groups")
        assert recipe is not None
        assert recipe.name == "pending_customer_groups"
        assert recipe.steps[0].code.startswith("GET /admin/customer-groups?status=pending")

    @pytest.mark.parametrize(
        "message",
        ["", "show the approved ones", "what is the status of my order", "approved"],
    )
    def test_no_recipe(self, message: str) -> None:
        """Messages without a status/recency noun phrase match nothing."""
        assert match_recipe(message) is None

    @pytest.mark.parametrize(
        ("noun", "expected"),
        [
            ("design", "designs"),
            ("designs", "designs"),
            ("category", "categories"),
            ("Customer Groups", "customer-groups"),
            ("product_tag", "product-tags"),
        ],
    )
    def test_collection_name(self, noun: str, expected: str) -> None:
        """Nouns become plural dashed collection segments."""
        assert collection_name(noun) == expected


class TestLookupIntent:
    """Test lookup request parsing."""

    def test_orders_for_customer(self) -> None:
        """"orders for <name>" searches customers, then their orders."""
        intent = parse_lookup_intent("orders for customer Sarah Smith?")
        assert intent is not None
        assert intent.kind == "orders"
        assert intent.resource == "customers"
        assert intent.identifier == "Sarah Smith"
        assert intent.endpoint == "/admin/customers"
        assert intent.target_endpoint == "/admin/orders"
        assert intent.link_key == "customer_id"
        assert not intent.write_requested

    def test_detail_by_id(self) -> None:
        """A prefixed id token makes a detail lookup."""
        intent = parse_lookup_intent("find customer cus_01H9ABC")
        assert intent is not None
        assert intent.kind == "detail"
        assert intent.identifier == "cus_01H9ABC"
        assert intent.endpoint == "/admin/customers"

    def test_named_search(self) -> None:
        """"named X" searches by free text."""
        intent = parse_lookup_intent("find customer named Bob Stone")
        assert intent is not None
        assert intent.kind == "search"
        assert intent.identifier == "Bob Stone"

    def test_list(self) -> None:
        """"list all designs" lists the collection."""
        intent = parse_lookup_intent("list all designs")
        assert intent is not None
        assert intent.kind == "list"
        assert intent.resource == "designs"
        assert intent.identifier is None

    def test_write_requested(self) -> None:
        """Change verbs mark the lookup as leading to a write."""
        intent = parse_lookup_intent("update the email of customer named Bob")
        assert intent is not None
        assert intent.write_requested

    def test_unknown_resource(self) -> None:
        """Nothing to look up gives None."""
        assert parse_lookup_intent("what's the weather") is None

    def test_round_trip_dict(self) -> None:
        """to_dict/from_dict survive a stored run and ignore unknown keys."""
        intent = parse_lookup_intent("orders for Sarah")
        assert intent is not None
        data = {**intent.to_dict(), "legacy": True}
        assert LookupIntent.from_dict(data) == intent
        assert intent.search_field == "email"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("  'Sarah'  ", "Sarah"),
            ("customer Sarah.", "Sarah"),
            ("the client Bob Stone?", "Bob Stone"),
            ("", None),
            (None, None),
            ("?!", None),
        ],
    )
    def test_normalize_identifier(self, raw: str | None, expected: str | None) -> None:
        """Quotes, punctuation and role words are stripped."""
        assert normalize_identifier(raw) == expected

    def test_find_resource(self) -> None:
        """The first word naming a collection wins."""
        assert find_resource("show me all the people") == "persons"
        assert find_resource("stock levels for product X") == "inventory-items"
        assert find_resource("hello") is None
