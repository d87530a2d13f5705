"""Structured LLM calls with schema-aware retries.

Both external consumers in npcmind (the decision provider and the memory
summarizer) ask a model for a JSON object matching a pydantic schema. When
the model's output fails validation, the pydantic errors are rendered back
into the next prompt so the model can correct itself.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from npcmind.logging_utils import log_error, log_llm


ModelT = TypeVar("ModelT", bound=BaseModel)
LLM_TIMEOUT_SECONDS = 30.0


@dataclass(slots=True)
class ValidationFeedback:
    """Correction text for the model plus the raw issues for logging."""

    llm_text: str
    issues: Sequence[str]


def _preview(value: Any, *, limit: int = 60) -> str:
    if value is None:
        return "null"
    text = repr(value)
    return text if len(text) <= limit else text[: limit - 3] + "..."


def describe_validation_error(error: ValidationError) -> ValidationFeedback:
    """Turn a pydantic ``ValidationError`` into retry guidance.

    Each issue is rendered as ``field.path: message [type=...] | received=...``
    so the model sees which field was wrong and what it sent.
    """

    issues: List[str] = []
    for err in error.errors(include_url=False):
        path = ".".join(str(part) for part in err.get("loc", ())) or "root"
        line = f"{path}: {err.get('msg', 'invalid value')}"
        if err.get("type"):
            line += f" [type={err['type']}]"
        if "input" in err:
            line += f" | received={_preview(err['input'])}"
        issues.append(line)

    if not issues:
        issues.append("root: response did not match the expected schema")

    text = "\n".join(
        [
            "The previous reply could not be parsed into the required JSON object.",
            "Reply again with only a JSON object that matches the schema.",
            "Problems found:",
            *(f"- {issue}" for issue in issues),
        ]
    )
    return ValidationFeedback(llm_text=text, issues=issues)


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    timeout_seconds: float = LLM_TIMEOUT_SECONDS,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = describe_validation_error,
) -> ModelT:
    """Call ``llm_provider``/``llm_model`` and parse the reply as ``response_model``.

    Only ``ValidationError`` is retried (up to ``max_attempts`` calls). Timeouts
    and provider errors propagate to the caller on the first occurrence.
    """

    base_prompt = "\n\n".join(part for part in (system_prompt.strip(), user_prompt.strip()) if part)
    feedback: ValidationFeedback | None = None

    @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
    async def _invoke(prompt: str) -> str:
        return prompt

    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_llm(
                    f"Retry {attempt_number}/{max_attempts} for {response_model.__name__} "
                    "with schema feedback"
                )
            prompt = base_prompt if feedback is None else f"{base_prompt}\n\n{feedback.llm_text}"
            try:
                return await asyncio.wait_for(_invoke(prompt), timeout=timeout_seconds)
            except ValidationError as exc:
                feedback = feedback_builder(exc)
                log_error(
                    f"{response_model.__name__} failed validation "
                    f"(attempt {attempt_number}/{max_attempts})"
                )
                for issue in feedback.issues:
                    log_error(f"    {issue}")
                raise
            except asyncio.TimeoutError:
                log_error(
                    f"LLM call timed out after {timeout_seconds:g}s for {response_model.__name__}"
                )
                raise

    raise RuntimeError("LLM retry loop exited without a result")
