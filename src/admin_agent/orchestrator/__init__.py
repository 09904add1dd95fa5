"""Orchestrator: routing, execution, disambiguation and reply synthesis.

This module coordinates one operator request end to end: the intent router
picks a mode, the action executor plans and runs admin API calls, the
disambiguation controller suspends ambiguous lookups, and the synthesizer
writes the reply.
"""

from admin_agent.orchestrator.disambiguation import DisambiguationController
from admin_agent.orchestrator.entity_extraction import ExtractedEntities, extract_entities
from admin_agent.orchestrator.executor import ActionExecutor
from admin_agent.orchestrator.expressions import evaluate_expression
from admin_agent.orchestrator.lookup import LookupIntent, parse_lookup_intent
from admin_agent.orchestrator.orchestrator import Orchestrator
from admin_agent.orchestrator.recipes import Recipe, match_recipe
from admin_agent.orchestrator.routing import classify_message, route_message
from admin_agent.orchestrator.run_store import InMemoryRunStore, RunStore, SqlRunStore
from admin_agent.orchestrator.synthesizer import ResponseSynthesizer, heuristic_summary
from admin_agent.orchestrator.types import (
    Activation,
    AgentResponse,
    ExecutionStep,
    PlanResult,
    RouteMode,
    RoutingPlan,
    RunState,
    RunStatus,
    StepResult,
    SuspendOption,
    SuspendPayload,
    ToolLoopResult,
)

__all__ = [
    # Public API
    "Orchestrator",
    "ActionExecutor",
    "DisambiguationController",
    "ResponseSynthesizer",
    # Routing and recipes
    "classify_message",
    "route_message",
    "Recipe",
    "match_recipe",
    # Lookups
    "ExtractedEntities",
    "extract_entities",
    "LookupIntent",
    "parse_lookup_intent",
    # Run storage
    "RunStore",
    "InMemoryRunStore",
    "SqlRunStore",
    # Helpers
    "evaluate_expression",
    "heuristic_summary",
    # Types
    "Activation",
    "AgentResponse",
    "ExecutionStep",
    "PlanResult",
    "RouteMode",
    "RoutingPlan",
    "RunState",
    "RunStatus",
    "StepResult",
    "SuspendOption",
    "SuspendPayload",
    "ToolLoopResult",
]
