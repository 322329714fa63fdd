"""LLM reasoning adapter — curated evidence in, strictly validated hypotheses out."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from investigator.config import Settings
from investigator.hypothesis.catalog import is_catalog_id
from investigator.reasoning.errors import ReasoningError, ReasoningErrorCode
from investigator.reasoning.models import ReasoningRequest, ReasoningResponse, ReasoningResult
from investigator.reasoning.prompt import PROMPT_VERSION, build_reasoning_prompt

logger = logging.getLogger("investigator.reasoning")


class Reasoner(Protocol):
    async def reason(self, request: ReasoningRequest) -> ReasoningResult: ...


def _strip_fences(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1] if "\n" in raw else ""
        raw = raw.rsplit("```", 1)[0]
    return raw.strip()


def validate_response(parsed: dict, request: ReasoningRequest) -> ReasoningResponse:
    """Schema-check the model output, then enforce catalog and candidate membership."""
    try:
        response = ReasoningResponse.model_validate(parsed)
    except ValidationError as exc:
        raise ReasoningError(
            "Model output failed schema validation",
            ReasoningErrorCode.MODEL_OUTPUT_INVALID,
            {"issues": exc.errors(include_url=False)},
        ) from exc

    candidates = set(request.candidates)
    for hypothesis in response.hypotheses:
        if not is_catalog_id(hypothesis.id):
            raise ReasoningError(
                f"Invalid hypothesis id: {hypothesis.id} (not in catalog)",
                ReasoningErrorCode.MODEL_OUTPUT_INVALID,
                {"hypothesisId": hypothesis.id, "candidates": request.candidates},
            )
        if hypothesis.id not in candidates:
            raise ReasoningError(
                f"Hypothesis id {hypothesis.id} not in candidate set",
                ReasoningErrorCode.MODEL_OUTPUT_INVALID,
                {"hypothesisId": hypothesis.id, "candidates": request.candidates},
            )
    return response


class LLMReasoner:
    """Runs one bounded chat-model call per request."""

    def __init__(self, llm: BaseChatModel, model_name: str, timeout_seconds: float = 30.0) -> None:
        self._llm = llm
        self._model_name = model_name
        self._timeout = timeout_seconds

    async def reason(self, request: ReasoningRequest) -> ReasoningResult:
        try:
            system, user = build_reasoning_prompt(request)
        except Exception as exc:
            raise ReasoningError(
                "Prompt build failed", ReasoningErrorCode.PROMPT_BUILD_FAILED, {"cause": str(exc)}
            ) from exc

        try:
            response = await asyncio.wait_for(
                self._llm.ainvoke([SystemMessage(content=system), HumanMessage(content=user)]),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ReasoningError(
                f"Model call timed out after {self._timeout:g}s", ReasoningErrorCode.MODEL_CALL_FAILED
            ) from exc
        except Exception as exc:
            raise ReasoningError(
                "Model call failed", ReasoningErrorCode.MODEL_CALL_FAILED, {"cause": str(exc)}
            ) from exc

        content = response.content if isinstance(response.content, str) else str(response.content)
        raw = _strip_fences(content or "")
        if not raw:
            raise ReasoningError("Empty model output", ReasoningErrorCode.MODEL_OUTPUT_EMPTY)

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ReasoningError(
                "Model output was not valid JSON",
                ReasoningErrorCode.MODEL_OUTPUT_INVALID,
                {"rawText": raw[:2000]},
            ) from exc
        if not isinstance(parsed, dict):
            raise ReasoningError("Model output was not a JSON object", ReasoningErrorCode.MODEL_OUTPUT_INVALID)

        parsed.setdefault("model", self._model_name)
        parsed.setdefault("promptVersion", PROMPT_VERSION)
        validated = validate_response(parsed, request)

        logger.info(
            "Reasoning complete: incident=%s hypotheses=%d confidence=%.2f",
            request.incident_id, len(validated.hypotheses), validated.overall_confidence,
        )
        return ReasoningResult(response=validated, request=request, system_prompt=system, user_prompt=user)


def build_llm(settings: Settings) -> BaseChatModel:
    if settings.llm_provider == "anthropic":
        from langchain_anthropic import ChatAnthropic
        return ChatAnthropic(
            model=settings.llm_model,
            api_key=settings.anthropic_api_key,
            temperature=settings.llm_temperature,
            max_tokens=4096,
        )
    elif settings.llm_provider == "openai":
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=settings.llm_model,
            api_key=settings.openai_api_key,
            temperature=settings.llm_temperature,
        )
    else:
        raise ValueError(f"Unsupported LLM provider: {settings.llm_provider}")
