"""Semantic event constants for structured logging.

All log events should use these constants rather than magic strings to ensure
consistency and enable reliable querying and analysis.
"""

# Orchestrator events
REQUEST_RECEIVED = "request_received"
REPLY_READY = "reply_ready"
ROUTING_DECISION = "routing_decision"
RECIPE_MATCHED = "recipe_matched"
ENTITIES_EXTRACTED = "entities_extracted"

# Executor events
TOOL_LOOP_ROUND = "tool_loop_round"
TOOL_LOOP_FINISHED = "tool_loop_finished"
STEP_STARTED = "step_started"
STEP_EXECUTED = "step_executed"
STEP_FAILED = "step_failed"
WRITE_DEFERRED = "write_deferred"

# Run lifecycle (suspend/resume)
RUN_CREATED = "run_created"
RUN_SUSPENDED = "run_suspended"
RUN_RESUMED = "run_resumed"
RUN_COMPLETED = "run_completed"
RUN_FAILED = "run_failed"
RUN_EXPIRED = "run_expired"
RUN_CLAIM_LOST = "run_claim_lost"
RUNS_PURGED = "runs_purged"

# LLM Client events
MODEL_CALL_STARTED = "model_call_started"
MODEL_CALL_COMPLETED = "model_call_completed"
MODEL_CALL_ERROR = "model_call_error"

# Model rotation guard
MODEL_COOLDOWN_STARTED = "model_cooldown_started"
MODEL_PROMOTED = "model_promoted"
MODEL_ROTATED = "model_rotated"
PROVIDERS_EXHAUSTED = "providers_exhausted"

# Catalog events
CATALOG_REFRESHED = "catalog_refreshed"
CATALOG_REFRESH_FAILED = "catalog_refresh_failed"
CATALOG_DEGRADED_PASSTHROUGH = "catalog_degraded_passthrough"
ENDPOINT_CORRECTED = "endpoint_corrected"
ENDPOINT_REJECTED = "endpoint_rejected"

# Backend calls
BACKEND_CALL_COMPLETED = "backend_call_completed"
BACKEND_CALL_FAILED = "backend_call_failed"

# Synthesis
SYNTHESIS_FALLBACK = "synthesis_fallback"
