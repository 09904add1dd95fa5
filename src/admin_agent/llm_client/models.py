"""Pydantic models for model-rotation configuration.

This module defines the schema of config/models.yaml: one ordered list of
candidate model ids per pipeline stage, plus a shared fallback list.
"""

from pydantic import BaseModel, Field, field_validator

DEFAULT_FALLBACK_MODELS: list[str] = [
    "meta-llama/llama-3.3-70b-instruct:free",
    "google/gemma-3-27b-it:free",
    "google/gemma-3-12b-it:free",
    "mistralai/mistral-7b-instruct:free",
    "google/gemini-2.0-flash-exp:free",
]


class StageDefinition(BaseModel):
    """Configuration for one pipeline stage.

    Attributes:
        candidates: Model ids in preference order.
        max_tokens: Completion token budget for calls in this stage.
        temperature: Sampling temperature (None uses the provider default).
        timeout_seconds: Read timeout for a single completion.
    """

    candidates: list[str] = Field(default_factory=list, description="Preferred model ids")
    max_tokens: int = Field(1024, ge=1, description="Completion token budget")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    timeout_seconds: int = Field(60, ge=1, description="Read timeout in seconds")

    @field_validator("candidates")
    @classmethod
    def dedupe_candidates(cls, v: list[str]) -> list[str]:
        """Drop blanks and duplicates while keeping order."""
        seen: list[str] = []
        for model_id in v:
            model_id = model_id.strip()
            if model_id and model_id not in seen:
                seen.append(model_id)
        return seen


class ModelConfig(BaseModel):
    """Complete model-rotation configuration.

    Attributes:
        stages: Stage name to stage definition.
        fallback_models: Appended to every stage's candidates (after its own).
    """

    stages: dict[str, StageDefinition] = Field(default_factory=dict)
    fallback_models: list[str] = Field(default_factory=lambda: list(DEFAULT_FALLBACK_MODELS))

    def candidates_for(self, stage: str) -> list[str]:
        """Return the full ordered candidate list for a stage."""
        definition = self.stages.get(stage)
        ordered = list(definition.candidates) if definition else []
        for model_id in self.fallback_models:
            if model_id not in ordered:
                ordered.append(model_id)
        return ordered

    def stage(self, stage: str) -> StageDefinition:
        """Return the stage definition, or defaults when the stage is not configured."""
        return self.stages.get(stage) or StageDefinition()
