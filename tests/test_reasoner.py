"""Tests for the LLM reasoning adapter and its output validation."""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from conftest import make_artifact
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from investigator.config import Settings
from investigator.hypothesis.catalog import CATALOG_VERSION
from investigator.reasoning.errors import ReasoningError, ReasoningErrorCode
from investigator.reasoning.prompt import PROMPT_VERSION, build_reasoning_prompt, build_reasoning_request
from investigator.reasoning.reasoner import LLMReasoner, build_llm
from investigator.reasoning.trace_hash import hash_prompt_parts, hash_request
from investigator.schema import SourceType

CANDIDATES = ["DB_QUERY_REGRESSION", "UNKNOWN"]


def reasoning_request(artifacts=None):
    return build_reasoning_request(
        incident_id="inc-1",
        evidence_bundle_id="b" * 64,
        source_type=SourceType.SCENARIO,
        incident_summary="Checkout latency spike",
        timeline_start=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        timeline_end=datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc),
        artifacts=artifacts or [make_artifact("metrics_summary", payload={"secret": "never sent"})],
        candidates=CANDIDATES,
        completeness_score=25,
        missing_evidence=["TRACES"],
    )


def model_output(hypothesis_id="DB_QUERY_REGRESSION", **extra):
    body = {
        "hypotheses": [{
            "id": hypothesis_id,
            "title": "Slow query after deploy",
            "confidence": 0.7,
            "rationale": "p95 rose right after the deploy.",
            "evidenceRefs": ["metrics_summary:v1:test"],
        }],
        "explainability": {
            "primarySignal": "LATENCY", "latencyFactor": 0.8, "errorFactor": 0.1, "rationale": "Latency dominates.",
        },
        "missingEvidenceRequests": [{"need": "TRACES", "priority": "P0", "reason": "Confirm slow spans"}],
        "overallConfidence": 0.7,
    }
    body.update(extra)
    return json.dumps(body)


def reasoner_for(*responses):
    return LLMReasoner(FakeListChatModel(responses=list(responses)), model_name="test-model")


async def expect_code(reasoner, code):
    with pytest.raises(ReasoningError) as info:
        await reasoner.reason(reasoning_request())
    assert info.value.code == code
    return info.value


class TestValidOutput:
    @pytest.mark.asyncio
    async def test_fenced_json_is_accepted(self):
        result = await reasoner_for(f"```json\n{model_output()}\n```").reason(reasoning_request())
        response = result.response
        assert response.hypotheses[0].id == "DB_QUERY_REGRESSION"
        assert response.model == "test-model"
        assert response.prompt_version == PROMPT_VERSION
        assert response.missing_evidence_requests[0]["need"] == "TRACES"
        assert "DB_QUERY_REGRESSION, UNKNOWN" in result.system_prompt

    @pytest.mark.asyncio
    async def test_model_name_from_output_is_kept(self):
        result = await reasoner_for(model_output(model="gpt-x")).reason(reasoning_request())
        assert result.response.model == "gpt-x"


class TestInvalidOutput:
    @pytest.mark.asyncio
    async def test_hypothesis_outside_candidates(self):
        error = await expect_code(reasoner_for(model_output("DEPLOY_BUG")), ReasoningErrorCode.MODEL_OUTPUT_INVALID)
        assert "not in candidate set" in str(error)

    @pytest.mark.asyncio
    async def test_hypothesis_outside_catalog(self):
        error = await expect_code(reasoner_for(model_output("ALIENS")), ReasoningErrorCode.MODEL_OUTPUT_INVALID)
        assert "not in catalog" in str(error)

    @pytest.mark.asyncio
    async def test_not_json(self):
        error = await expect_code(reasoner_for("I think it is the database."), ReasoningErrorCode.MODEL_OUTPUT_INVALID)
        assert error.details["rawText"] == "I think it is the database."

    @pytest.mark.asyncio
    async def test_json_array(self):
        await expect_code(reasoner_for("[1, 2]"), ReasoningErrorCode.MODEL_OUTPUT_INVALID)

    @pytest.mark.asyncio
    async def test_schema_violation(self):
        error = await expect_code(
            reasoner_for(model_output(overallConfidence=1.5)), ReasoningErrorCode.MODEL_OUTPUT_INVALID
        )
        assert error.details["issues"]

    @pytest.mark.asyncio
    async def test_empty_output(self):
        await expect_code(reasoner_for("```json\n```"), ReasoningErrorCode.MODEL_OUTPUT_EMPTY)


class TestModelCallFailures:
    @pytest.mark.asyncio
    async def test_provider_error(self):
        llm = Mock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("rate limited"))
        error = await expect_code(LLMReasoner(llm, "test-model"), ReasoningErrorCode.MODEL_CALL_FAILED)
        assert error.details["cause"] == "rate limited"

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(messages):
            await asyncio.sleep(1)

        llm = Mock()
        llm.ainvoke = slow
        error = await expect_code(
            LLMReasoner(llm, "test-model", timeout_seconds=0.01), ReasoningErrorCode.MODEL_CALL_FAILED
        )
        assert "timed out" in str(error)


class TestPrompt:
    def test_payloads_never_reach_the_model(self):
        system, user = build_reasoning_prompt(reasoning_request())
        assert "never sent" not in user
        assert "metrics_summary:v1:test" in user

    def test_artifacts_are_capped(self):
        artifacts = [make_artifact("logs_summary", artifact_id=f"logs:{i}") for i in range(60)]
        assert len(reasoning_request(artifacts).context.evidence_artifacts) == 50

    def test_request_pins_catalog_version(self):
        request = reasoning_request()
        assert request.catalog_version == CATALOG_VERSION
        assert request.wire()["catalogVersion"] == CATALOG_VERSION

    def test_hashes_are_stable(self):
        first, second = reasoning_request(), reasoning_request()
        assert hash_request(first) == hash_request(second)
        assert hash_prompt_parts(*build_reasoning_prompt(first)) == hash_prompt_parts(*build_reasoning_prompt(second))


class TestBuildLlm:
    def test_unsupported_provider(self):
        with pytest.raises(ValueError):
            build_llm(Settings(llm_provider="carrier-pigeon"))
