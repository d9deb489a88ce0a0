"""Prompt builders for generation requests."""

from pev.prompts.patient_education import (
    OnScreenText,
    PatientPromptResult,
    PromptAudit,
    PromptParams,
    ProviderNote,
    note_to_prompt,
    parse_provider_note,
    validate_prompt_result,
)

__all__ = [
    "OnScreenText",
    "PatientPromptResult",
    "PromptAudit",
    "PromptParams",
    "ProviderNote",
    "note_to_prompt",
    "parse_provider_note",
    "validate_prompt_result",
]
