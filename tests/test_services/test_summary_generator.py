"""Tests for summary generation and its retry policy."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from ad_report_summarizer.services.kpi_extractor import KpiRecord
from ad_report_summarizer.services.summary_generator import (
    DEFAULT_GOAL,
    SYSTEM_INSTRUCTION,
    AiContext,
    GeminiBackend,
    OpenAIBackend,
    SummaryGenerator,
    build_backend,
    build_summary_messages,
    extract_candidate_text,
)
from ad_report_summarizer.utils.exceptions import LLMConfigurationError, LLMError

RECORD = KpiRecord(
    achievement="120%",
    total_conversions="5",
    conversion_rate="1.23%",
    cost_per_acquisition="3,400円",
    click_through_rate="1.5%",
    goal_conversions="3",
    conversion_breakdown="検索3件・リマーケティング2件",
)


class ScriptedBackend:
    """Backend that fails a fixed number of times before succeeding."""

    service = "scripted"
    model = "scripted-model"

    def __init__(self, failures: int, text: str = "・好調です") -> None:
        self.failures = failures
        self.text = text
        self.calls = 0

    async def generate(self, messages: list[BaseMessage], api_key: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise LLMError(f"API Error: 503 (call {self.calls})", status_code=503)
        return self.text


class TestBuildSummaryMessages:
    """Tests for prompt assembly."""

    def test_system_and_user_messages(self) -> None:
        messages = build_summary_messages(RECORD, AiContext())

        assert isinstance(messages[0], SystemMessage)
        assert isinstance(messages[1], HumanMessage)
        assert messages[0].content == SYSTEM_INSTRUCTION

    def test_record_fields_are_interpolated(self) -> None:
        messages = build_summary_messages(RECORD, AiContext())
        user = str(messages[1].content)

        assert "・目標達成率: 120%％" in user
        assert "・当月合計CV: 5 (内訳: 検索3件・リマーケティング2件)" in user
        assert "・当月CPA: 3,400円円" in user
        assert "・目標CV数: 3" in user

    def test_context_is_interpolated(self) -> None:
        context = AiContext(goal="CV10件", issues="CPA高騰", tasks="{除外KW}の追加")
        user = str(build_summary_messages(RECORD, context)[1].content)

        assert "・目標: CV10件" in user
        assert "・課題: CPA高騰" in user
        assert "・タスク: {除外KW}の追加" in user

    def test_default_goal(self) -> None:
        assert AiContext().goal == DEFAULT_GOAL == "Google広告の目標3件の達成"


class TestExtractCandidateText:
    def test_happy_path(self) -> None:
        payload = {"candidates": [{"content": {"parts": [{"text": "・a"}]}}]}
        assert extract_candidate_text(payload) == "・a"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"candidates": []}, {"candidates": [{"content": {}}]}, None, "text"],
    )
    def test_missing_text(self, payload: object) -> None:
        assert extract_candidate_text(payload) is None


class TestRetryPolicy:
    """Tests for SummaryGenerator's exponential backoff."""

    async def test_default_delays(self) -> None:
        generator = SummaryGenerator(backend=ScriptedBackend(0), sleep=AsyncMock())
        assert generator.delays == [1.0, 2.0, 4.0, 8.0, 16.0]

    async def test_success_on_first_attempt(self) -> None:
        sleep = AsyncMock()
        backend = ScriptedBackend(failures=0)
        generator = SummaryGenerator(backend=backend, sleep=sleep)

        result = await generator.generate(RECORD, AiContext(), "key")

        assert result.text == "・好調です"
        assert result.attempts == 1
        assert result.model == "scripted-model"
        sleep.assert_not_awaited()

    async def test_succeeds_on_sixth_attempt(self) -> None:
        """Five failures wait 1+2+4+8+16 seconds before the sixth call succeeds."""
        sleep = AsyncMock()
        backend = ScriptedBackend(failures=5)
        generator = SummaryGenerator(backend=backend, sleep=sleep)

        result = await generator.generate(RECORD, AiContext(), "key")

        assert result.attempts == 6
        assert backend.calls == 6
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2, 4, 8, 16]
        assert sum(c.args[0] for c in sleep.await_args_list) == 31

    async def test_sixth_failure_propagates(self) -> None:
        sleep = AsyncMock()
        backend = ScriptedBackend(failures=100)
        generator = SummaryGenerator(backend=backend, sleep=sleep)

        with pytest.raises(LLMError, match=r"call 6\)"):
            await generator.generate(RECORD, AiContext(), "key")

        assert backend.calls == 6
        assert sleep.await_count == 5

    async def test_custom_retry_budget(self) -> None:
        sleep = AsyncMock()
        backend = ScriptedBackend(failures=100)
        generator = SummaryGenerator(
            backend=backend, max_retries=2, base_delay_seconds=0.5, sleep=sleep
        )

        with pytest.raises(LLMError):
            await generator.generate(RECORD, AiContext(), "key")

        assert backend.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    async def test_attempts_recorded_in_performance_metrics(self) -> None:
        generator = SummaryGenerator(backend=ScriptedBackend(failures=2), sleep=AsyncMock())

        with patch(
            "ad_report_summarizer.services.summary_generator.logger.log_performance"
        ) as log_performance:
            await generator.generate(RECORD, AiContext(), "key")

        metrics = log_performance.call_args.args[0]
        assert metrics.operation == "summary_generation"
        assert metrics.attempts == 3
        assert metrics.to_dict()["attempts"] == 3

    async def test_attempts_recorded_when_retries_exhausted(self) -> None:
        generator = SummaryGenerator(
            backend=ScriptedBackend(failures=100), max_retries=1, sleep=AsyncMock()
        )

        with patch(
            "ad_report_summarizer.services.summary_generator.logger.log_performance"
        ) as log_performance, pytest.raises(LLMError):
            await generator.generate(RECORD, AiContext(), "key")

        assert log_performance.call_args.args[0].attempts == 2

    async def test_missing_key_fails_before_any_attempt(self) -> None:
        backend = ScriptedBackend(failures=0)
        generator = SummaryGenerator(backend=backend, sleep=AsyncMock())

        with pytest.raises(LLMConfigurationError):
            await generator.generate(RECORD, AiContext(), "")

        assert backend.calls == 0

    async def test_non_llm_errors_are_not_retried(self) -> None:
        backend = MagicMock(service="x", model="y")
        backend.generate = AsyncMock(side_effect=RuntimeError("bug"))
        sleep = AsyncMock()
        generator = SummaryGenerator(backend=backend, sleep=sleep)

        with pytest.raises(RuntimeError):
            await generator.generate(RECORD, AiContext(), "key")

        assert backend.generate.await_count == 1
        sleep.assert_not_awaited()


class TestGeminiBackend:
    """Tests for the Gemini HTTP backend using httpx.MockTransport."""

    async def test_request_shape(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "・OK"}]}}]}
            )

        backend = GeminiBackend(
            model="gemini-2.5-flash",
            base_url="https://gemini.test/v1beta/",
            temperature=0.7,
            transport=httpx.MockTransport(handler),
        )
        messages = build_summary_messages(RECORD, AiContext())

        text = await backend.generate(messages, "secret")

        assert text == "・OK"
        request = seen[0]
        assert str(request.url) == (
            "https://gemini.test/v1beta/models/gemini-2.5-flash:generateContent"
        )
        assert request.headers["x-goog-api-key"] == "secret"
        body = json.loads(request.content)
        assert body["systemInstruction"]["parts"][0]["text"] == SYSTEM_INSTRUCTION
        assert "目標達成率: 120%" in body["contents"][0]["parts"][0]["text"]
        assert body["generationConfig"]["temperature"] == 0.7

    async def test_error_status_raises(self) -> None:
        backend = GeminiBackend(
            transport=httpx.MockTransport(lambda r: httpx.Response(429, json={}))
        )

        with pytest.raises(LLMError) as exc_info:
            await backend.generate([HumanMessage("hi")], "k")

        assert exc_info.value.message == "API Error: 429"
        assert exc_info.value.status_code == 429

    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        backend = GeminiBackend(transport=httpx.MockTransport(handler))

        with pytest.raises(LLMError, match="Transport error"):
            await backend.generate([HumanMessage("hi")], "k")

    async def test_invalid_json_raises(self) -> None:
        backend = GeminiBackend(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))
        )

        with pytest.raises(LLMError, match="not valid JSON"):
            await backend.generate([HumanMessage("hi")], "k")

    async def test_missing_candidate_text_is_empty(self) -> None:
        backend = GeminiBackend(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"candidates": []})
            )
        )

        assert await backend.generate([HumanMessage("hi")], "k") == ""

    async def test_retried_through_generator(self) -> None:
        statuses = iter([500, 503, 200])

        def handler(request: httpx.Request) -> httpx.Response:
            status = next(statuses)
            if status != 200:
                return httpx.Response(status)
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "・3"}]}}]}
            )

        sleep = AsyncMock()
        generator = SummaryGenerator(
            backend=GeminiBackend(transport=httpx.MockTransport(handler)), sleep=sleep
        )

        result = await generator.generate(RECORD, AiContext(), "k")

        assert result.text == "・3"
        assert result.attempts == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1, 2]


class TestOpenAIBackend:
    """Tests for the LangChain-backed OpenAI backend."""

    async def test_generate(self) -> None:
        backend = OpenAIBackend(model="gpt-4o")
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="・好調"))

        with patch.object(OpenAIBackend, "build_llm", return_value=llm) as build:
            text = await backend.generate([HumanMessage("hi")], "sk-test")

        assert text == "・好調"
        build.assert_called_once_with("sk-test")

    async def test_client_errors_become_llm_errors(self) -> None:
        backend = OpenAIBackend(model="gpt-4o")
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=RuntimeError("rate limited"))

        with (
            patch.object(OpenAIBackend, "build_llm", return_value=llm),
            pytest.raises(LLMError, match="rate limited"),
        ):
            await backend.generate([HumanMessage("hi")], "sk-test")

    def test_llm_does_not_retry_on_its_own(self) -> None:
        llm = OpenAIBackend(model="gpt-4o").build_llm("sk-test")
        assert llm.max_retries == 0


class TestBuildBackend:
    def test_providers(self) -> None:
        assert isinstance(build_backend("gemini"), GeminiBackend)
        assert isinstance(build_backend("openai"), OpenAIBackend)

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            build_backend("other")
