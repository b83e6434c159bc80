"""Tests for cosmic_extractor.core.llm_client module.

Tests the ProviderClient with litellm mocked out:
- Chat and single-prompt call shapes
- Failover, shrinking and the attempt budget
- Structured replies from single-prompt providers and through Instructor
- Cancellation and usage recording
"""

import asyncio
import json

import pytest
from litellm import ModelResponse

from cosmic_extractor.core.cancellation import CancellationToken
from cosmic_extractor.core.errors import (
    ConfigurationError,
    ErrorKind,
    ExhaustedAllModelsError,
    MalformedOutputError,
    RunCancelledError,
)
from cosmic_extractor.core.llm_client import ProviderClient, generative_prompt
from cosmic_extractor.core.provider_registry import ProviderConfig, ProviderKind
from cosmic_extractor.core.retry_policy import RetryPolicy
from cosmic_extractor.pydantic_models.understanding_models import DocumentUnderstanding


# =============================================================================
# Chat-style calls
# =============================================================================


class TestChatCalls:
    """Tests for complete() against a chat-style provider."""

    @pytest.mark.asyncio
    async def test_returns_reply_text(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response("你好")

        completion = await chat_client.complete("系统", "用户", stage="round")

        assert completion.text == "你好"
        assert completion.model == "test-model"
        assert completion.provider == "openai"
        assert not completion.used_fallback
        assert completion.attempts == 1

    @pytest.mark.asyncio
    async def test_sends_messages_with_prefixed_model(self, chat_client, mock_acompletion):
        await chat_client.complete("系统", "用户")

        kwargs = mock_acompletion.call_args.kwargs
        assert kwargs["model"] == "openai/test-model"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["messages"] == [
            {"role": "system", "content": "系统"},
            {"role": "user", "content": "用户"},
        ]

    @pytest.mark.asyncio
    async def test_none_content_becomes_empty(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.return_value = make_chat_response(None)
        completion = await chat_client.complete("s", "u")
        assert completion.text == ""

    @pytest.mark.asyncio
    async def test_records_usage(self, chat_client, mock_acompletion, cost_tracker):
        await chat_client.complete("s", "u", stage="round")

        assert cost_tracker.call_count == 1
        call = cost_tracker.calls[0]
        assert call.model == "openai/test-model"
        assert call.stage == "round"
        assert call.prompt_tokens == 100
        assert not call.used_fallback


# =============================================================================
# Failover
# =============================================================================


class TestFailover:
    """Tests for retries and model failover."""

    @pytest.mark.asyncio
    async def test_rate_limit_switches_model(self, chat_client, mock_acompletion, make_chat_response, cost_tracker):
        mock_acompletion.side_effect = [Exception("429 rate limit"), make_chat_response("ok")]

        completion = await chat_client.complete("s", "u")

        assert completion.text == "ok"
        assert completion.used_fallback
        assert completion.model == "backup-model"
        assert mock_acompletion.call_count == 2
        assert mock_acompletion.call_args_list[1].kwargs["model"] == "openai/backup-model"
        assert cost_tracker.fallback_count == 1

    @pytest.mark.asyncio
    async def test_server_error_retries_same_model(self, chat_client, mock_acompletion, make_chat_response):
        mock_acompletion.side_effect = [Exception("503 Service Unavailable"), make_chat_response("ok")]

        completion = await chat_client.complete("s", "u")

        assert completion.model == "test-model"
        assert completion.attempts == 2
        assert not completion.used_fallback

    @pytest.mark.asyncio
    async def test_token_limit_shrinks_prompt(self, chat_client, mock_acompletion, make_chat_response, prompt_of):
        mock_acompletion.side_effect = [
            Exception("maximum context length exceeded"),
            make_chat_response("ok"),
        ]
        user_prompt = "需求" * 500

        completion = await chat_client.complete("s", user_prompt)

        first, second = mock_acompletion.call_args_list
        assert prompt_of(first) == user_prompt
        assert len(prompt_of(second)) < len(user_prompt)
        assert prompt_of(second).endswith(chat_client.retry_policy.truncation_marker)
        assert completion.prompt_truncated

    @pytest.mark.asyncio
    async def test_exhaustion_bounded_by_budget(self, chat_client, mock_acompletion):
        mock_acompletion.side_effect = Exception("503 Service Unavailable")

        with pytest.raises(ExhaustedAllModelsError) as exc_info:
            await chat_client.complete("s", "u")

        error = exc_info.value
        assert mock_acompletion.call_count == 4
        assert error.attempts == 4
        assert error.models_tried == ["test-model", "backup-model"]
        assert error.classification == ErrorKind.SERVER
        assert error.to_dict()["remediation"]

    @pytest.mark.asyncio
    async def test_auth_error_aborts(self, chat_client, mock_acompletion):
        mock_acompletion.side_effect = Exception("401 Unauthorized")

        with pytest.raises(ExhaustedAllModelsError) as exc_info:
            await chat_client.complete("s", "u")

        assert mock_acompletion.call_count == 1
        assert exc_info.value.classification == ErrorKind.AUTH

    @pytest.mark.asyncio
    async def test_explicit_models_override_candidates(self, chat_client, mock_acompletion):
        await chat_client.complete("s", "u", models=["other-model"])
        assert mock_acompletion.call_args.kwargs["model"] == "openai/other-model"

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self, chat_provider, mock_acompletion):
        client = ProviderClient(chat_provider, retry_policy=RetryPolicy(max_attempts_per_model=1, backoff_seconds=0))
        mock_acompletion.side_effect = Exception("502 Bad Gateway")

        with pytest.raises(ExhaustedAllModelsError):
            await client.complete("s", "u")
        assert mock_acompletion.call_count == 2


# =============================================================================
# Single-prompt providers
# =============================================================================


class TestGenerativeCalls:
    """Tests for the single-prompt call shape."""

    @pytest.mark.asyncio
    async def test_uses_text_completion(self, generative_client, mock_atext_completion, make_text_response):
        mock_atext_completion.return_value = make_text_response("答复")

        completion = await generative_client.complete("系统", "用户")

        assert completion.text == "答复"
        kwargs = mock_atext_completion.call_args.kwargs
        assert kwargs["prompt"] == "SYSTEM: 系统\n\nUSER: 用户"
        assert kwargs["model"] == "gemini/gemini-test"

    def test_generative_prompt(self):
        assert generative_prompt("a", "b") == "SYSTEM: a\n\nUSER: b"

    @pytest.mark.asyncio
    async def test_structured_reply_from_json(self, generative_client, mock_atext_completion, make_text_response):
        payload = {"projectName": "网优平台", "userRoles": ["运维人员"], "totalEstimatedFunctions": "12"}
        mock_atext_completion.return_value = make_text_response(
            f"```json\n{json.dumps(payload, ensure_ascii=False)}\n```"
        )

        understanding = await generative_client.complete_structured(
            "s", "u", response_model=DocumentUnderstanding, stage="understanding",
        )

        assert isinstance(understanding, DocumentUnderstanding)
        assert understanding.project_name == "网优平台"
        assert understanding.user_roles == ["运维人员"]
        assert understanding.total_estimated_functions == 12

    @pytest.mark.asyncio
    async def test_structured_reply_without_json(self, generative_client, mock_atext_completion, make_text_response):
        mock_atext_completion.return_value = make_text_response("抱歉，我无法完成。")

        with pytest.raises(MalformedOutputError) as exc_info:
            await generative_client.complete_structured("s", "u", response_model=DocumentUnderstanding)
        assert exc_info.value.raw_text == "抱歉，我无法完成。"


# =============================================================================
# Structured calls through Instructor
# =============================================================================


def _tool_call_response(arguments: str) -> ModelResponse:
    return ModelResponse(
        model="test-model",
        choices=[{
            "index": 0,
            "finish_reason": "tool_calls",
            "message": {
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "DocumentUnderstanding", "arguments": arguments},
                }],
            },
        }],
        usage={"prompt_tokens": 120, "completion_tokens": 40, "total_tokens": 160},
    )


@pytest.fixture
def instructor_acompletion(monkeypatch, mock_acompletion):
    """Routes Instructor through mock_acompletion via a real coroutine function."""

    async def acompletion(*args, **kwargs):
        return await mock_acompletion(*args, **kwargs)

    monkeypatch.setattr("cosmic_extractor.core.llm_client.acompletion", acompletion)
    return mock_acompletion


class TestInstructorCalls:
    """Tests for complete_structured() against a chat-style provider."""

    @pytest.mark.asyncio
    async def test_tool_reply_validates(self, chat_client, instructor_acompletion, cost_tracker):
        arguments = json.dumps(
            {
                "project_name": "网优平台",
                "user_roles": ["运维人员"],
                "core_modules": [{"module_name": "告警管理", "estimated_functions": 6}],
                "total_estimated_functions": 12,
            },
            ensure_ascii=False,
        )
        instructor_acompletion.return_value = _tool_call_response(arguments)

        understanding = await chat_client.complete_structured(
            "系统", "用户", response_model=DocumentUnderstanding, stage="understanding",
        )

        assert isinstance(understanding, DocumentUnderstanding)
        assert understanding.project_name == "网优平台"
        assert understanding.user_roles == ["运维人员"]
        assert understanding.core_modules[0].module_name == "告警管理"
        assert understanding.total_estimated_functions == 12
        kwargs = instructor_acompletion.call_args.kwargs
        assert kwargs["model"] == "openai/test-model"
        assert kwargs["messages"][0] == {"role": "system", "content": "系统"}
        assert kwargs["tools"][0]["function"]["name"] == "DocumentUnderstanding"
        assert cost_tracker.call_count == 1
        assert cost_tracker.calls[0].stage == "understanding"
        assert cost_tracker.calls[0].prompt_tokens == 120

    @pytest.mark.asyncio
    async def test_invalid_tool_reply_is_malformed(self, chat_client, instructor_acompletion):
        instructor_acompletion.return_value = _tool_call_response('{"total_estimated_functions": "很多"')

        with pytest.raises(MalformedOutputError):
            await chat_client.complete_structured(
                "系统", "用户", response_model=DocumentUnderstanding, max_retries=1,
            )

        # Validation failures do not fail over to the backup model.
        models = {c.kwargs["model"] for c in instructor_acompletion.call_args_list}
        assert models == {"openai/test-model"}


# =============================================================================
# Cancellation and configuration
# =============================================================================


class TestCancellationAndConfig:
    """Tests for cancellation and provider validation."""

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_before_call(self, chat_client, mock_acompletion):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RunCancelledError):
            await chat_client.complete("s", "u", cancel=token)
        mock_acompletion.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_call(self, chat_client, mock_acompletion):
        token = CancellationToken()

        async def hang(**kwargs):
            token.cancel()
            await asyncio.sleep(30)

        mock_acompletion.side_effect = hang

        with pytest.raises(RunCancelledError):
            await chat_client.complete("s", "u", cancel=token)
        assert mock_acompletion.call_count == 1

    def test_missing_key_rejected(self):
        provider = ProviderConfig(provider_kind=ProviderKind.OPENAI, api_key="", model="m")
        with pytest.raises(ConfigurationError):
            ProviderClient(provider)

    def test_missing_model_rejected(self):
        provider = ProviderConfig(provider_kind=ProviderKind.OPENAI, api_key="k", model=" ")
        with pytest.raises(ConfigurationError):
            ProviderClient(provider)
