"""Tests for orchestrator types."""

from datetime import datetime, timezone

import pydantic
import pytest

from admin_agent.orchestrator.types import (
    AgentResponse,
    RouteMode,
    RunState,
    RunStatus,
    SuspendPayload,
)


class TestSuspendPayload:
    """Test SuspendPayload validation."""

    def test_options_validate_from_json(self) -> None:
        """Options are plain dicts; label and metadata are optional."""
        payload = SuspendPayload.model_validate(
            {
                "reason": "Found 2 customers. Please select one:",
                "options": [
                    {"id": "cus_1", "label": "Sarah Smith", "metadata": {"email": "s@x.io"}},
                    {"id": "cus_2"},
                ],
            }
        )

        assert payload.options[0] == {
            "id": "cus_1",
            "label": "Sarah Smith",
            "metadata": {"email": "s@x.io"},
        }
        assert payload.options[1] == {"id": "cus_2"}

    def test_selection_needs_two_options(self) -> None:
        """A single option is not a choice."""
        with pytest.raises(pydantic.ValidationError):
            SuspendPayload(reason="Pick", options=[{"id": "only"}])

    def test_json_schema(self) -> None:
        """The schema describes the option fields."""
        schema = SuspendPayload.model_json_schema()
        option = schema["$defs"]["SuspendOption"]
        assert set(option["properties"]) == {"id", "label", "metadata"}


class TestAgentResponse:
    """Test AgentResponse construction."""

    def test_completed_with_activations(self) -> None:
        """Activations are kept as given and dumped as dicts."""
        activation = {"name": "admin_api", "arguments": {"path": "/admin/orders"}, "result": []}

        response = AgentResponse.completed("Done.", [activation], trace_id="t-1")

        assert response.model_dump(exclude_none=True) == {
            "status": "completed",
            "reply": "Done.",
            "activations": [activation],
            "trace_id": "t-1",
        }

    def test_activation_needs_every_field(self) -> None:
        """An activation missing its result is rejected."""
        with pytest.raises(pydantic.ValidationError):
            AgentResponse.model_validate(
                {"status": "completed", "activations": [{"name": "admin_api", "arguments": {}}]}
            )

    def test_suspended_round_trip_through_json(self) -> None:
        """A suspended response survives a JSON dump and reload."""
        payload = SuspendPayload(reason="Pick", options=[{"id": "a"}, {"id": "b"}])
        response = AgentResponse.suspended("run_1", payload, trace_id="t-2")

        reloaded = AgentResponse.model_validate_json(response.model_dump_json())

        assert reloaded == response
        assert "SuspendPayload" in AgentResponse.model_json_schema()["$defs"]


class TestRunState:
    """Test RunState invariants."""

    def test_suspended_needs_payload(self) -> None:
        """A suspended run without a payload is invalid."""
        with pytest.raises(pydantic.ValidationError):
            RunState(
                run_id="run_1", mode=RouteMode.HITL, message="hi", status=RunStatus.SUSPENDED
            )

    def test_stored_form_reloads(self) -> None:
        """The JSON form used for storage rebuilds an equal state."""
        now = datetime(2024, 6, 1, tzinfo=timezone.utc)
        state = RunState(
            run_id="run_1",
            mode=RouteMode.HITL,
            message="orders for Sarah",
            status=RunStatus.SUSPENDED,
            suspend_payload=SuspendPayload(
                reason="Pick", options=[{"id": "a", "label": "A"}, {"id": "b", "label": "B"}]
            ),
            created_at=now,
            updated_at=now,
        )

        assert RunState.model_validate(state.model_dump(mode="json")) == state
