"""Three-line client summary generation with exponential backoff.

The prompt is assembled from the extracted KPI record and the account
manager's free-text context, then sent to the configured text-generation
backend. Generation is a read-like call with no remote side effects, so any
failure is retried unconditionally: with the defaults the delays between
attempts are 1, 2, 4, 8 and 16 seconds, and the sixth failure is raised to
the caller unchanged.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI

from ad_report_summarizer.config import settings
from ad_report_summarizer.services.kpi_extractor import KpiRecord
from ad_report_summarizer.utils.exceptions import LLMConfigurationError, LLMError
from ad_report_summarizer.utils.logging import get_logger, timed_operation

logger = get_logger(__name__)

DEFAULT_GOAL = "Google広告の目標3件の達成"

SYSTEM_INSTRUCTION = """あなたはプロの広告運用コンサルタントです。提供された数値データを元に、クライアントへ提出する質の高いレポートサマリーを「・」から始まる3行で作成してください。

【出力の基本方針】
・単に数値を並べるのではなく、それらが何を意味するのか（好調なのか、改善が必要なのか、どのような施策が効いているのか）をプロフェッショナルな表現で記述してください。
・目標、課題、タスクの各項目が提供されている場合は、それらを自然に要約に組み込んでください。
・不要な小数点は省略してください。

【出力形式の絶対ルール】
・必ず「・」で始まる箇条書きで3行出力してください。
・「*」や「**」などのマークダウン装飾、および「1.」「2.」のような番号は一切使用しないでください。

【良い回答（お手本）】
・今月はCV○件（△△○件・××○件）を獲得し、目標達成率○％と大幅に目標を達成しております。
・CVRが○％と向上したことで、CPAも○円まで改善されており、獲得効率が非常に良くなっています。
・クリック率(CTR)も○％と上昇傾向にあるため、現在の広告文を軸にしつつ、今後はキーワードを調整し、予算に応じた獲得数の最大化を目指します。"""

USER_TEMPLATE = """以下の広告配信データを元に、クライアント向けのレポートサマリーを「3行の箇条書き」で作成してください。
不要な小数点は削除してください（例：100.00% → 100%）。

【データ】
・目標達成率: {achievement}％
・当月合計CV: {total_conversions} (内訳: {conversion_breakdown})
・当月CVR: {conversion_rate}％
・当月CPA: {cost_per_acquisition}円
・当月CTR: {click_through_rate}％
・目標CV数: {goal_conversions}

【追加コンテキスト】
・目標: {goal}
・課題: {issues}
・タスク: {tasks}
"""


@dataclass(frozen=True)
class AiContext:
    """Free-text business context supplied alongside the workbook."""

    goal: str = DEFAULT_GOAL
    issues: str = ""
    tasks: str = ""


@dataclass(frozen=True)
class SummaryResult:
    """Generated summary text plus call metadata."""

    text: str
    model: str
    attempts: int
    processing_time_seconds: float


def build_summary_messages(record: KpiRecord, context: AiContext) -> list[BaseMessage]:
    """Render the system instruction and user prompt for one summary."""
    prompt = ChatPromptTemplate.from_messages(
        [("system", SYSTEM_INSTRUCTION), ("human", USER_TEMPLATE)]
    )
    return prompt.format_messages(
        **record.to_dict(),
        goal=context.goal,
        issues=context.issues,
        tasks=context.tasks,
    )


def extract_candidate_text(payload: Any) -> str | None:
    """Pull ``candidates[0].content.parts[0].text`` out of a Gemini response."""
    try:
        text = payload["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


class TextGenerationBackend(Protocol):
    """A text-generation service taking a system + user message pair."""

    service: str
    model: str

    async def generate(self, messages: list[BaseMessage], api_key: str) -> str: ...


class GeminiBackend:
    """Gemini ``generateContent`` over plain HTTP."""

    service = "gemini"

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model or settings.gemini_model
        self.base_url = (base_url or settings.gemini_base_url).rstrip("/")
        self.temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    def build_payload(self, messages: list[BaseMessage]) -> dict[str, Any]:
        system = "\n\n".join(
            str(m.content) for m in messages if isinstance(m, SystemMessage)
        )
        user = "\n\n".join(
            str(m.content) for m in messages if isinstance(m, HumanMessage)
        )
        payload: dict[str, Any] = {
            "contents": [{"parts": [{"text": user}]}],
            "generationConfig": {"temperature": self.temperature},
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    async def generate(self, messages: list[BaseMessage], api_key: str) -> str:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    self.endpoint,
                    json=self.build_payload(messages),
                    headers={"x-goog-api-key": api_key},
                )
        except httpx.HTTPError as e:
            raise LLMError(
                f"Transport error: {type(e).__name__}: {e}", model=self.model
            ) from e

        if response.is_error:
            raise LLMError(
                f"API Error: {response.status_code}",
                model=self.model,
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise LLMError("Response was not valid JSON", model=self.model) from e

        text = extract_candidate_text(payload)
        if text is None:
            logger.warning("Response carried no candidate text", model=self.model)
            return ""
        return text


class OpenAIBackend:
    """Chat completion through LangChain's ChatOpenAI."""

    service = "openai"

    def __init__(
        self,
        model: str | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.model = model or settings.openai_model
        self.temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

    def build_llm(self, api_key: str) -> ChatOpenAI:
        return ChatOpenAI(
            api_key=api_key,  # type: ignore[arg-type]
            model=self.model,
            temperature=self.temperature,
            timeout=self.timeout_seconds,
            max_retries=0,
        )

    async def generate(self, messages: list[BaseMessage], api_key: str) -> str:
        try:
            response = await self.build_llm(api_key).ainvoke(messages)
        except Exception as e:
            raise LLMError(
                f"API Error: {type(e).__name__}: {e}",
                model=self.model,
                status_code=getattr(e, "status_code", None),
            ) from e

        content = response.content
        return content if isinstance(content, str) else str(content)


def build_backend(provider: str | None = None) -> TextGenerationBackend:
    """Instantiate the backend for ``provider`` (defaults to settings)."""
    name = provider or settings.llm_provider
    if name == "gemini":
        return GeminiBackend()
    if name == "openai":
        return OpenAIBackend()
    raise ValueError(f"Unknown LLM provider: {name}")


class SummaryGenerator:
    """Generate client summaries, retrying failed calls with backoff."""

    def __init__(
        self,
        backend: TextGenerationBackend | None = None,
        max_retries: int | None = None,
        base_delay_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the generator.

        Args:
            backend: Text-generation backend. Defaults to the configured provider.
            max_retries: Retries after the first attempt. Defaults to settings.
            base_delay_seconds: First backoff delay, doubled for each retry.
            sleep: Awaitable sleep used between attempts.
        """
        self.backend = backend or build_backend()
        self.max_retries = (
            max_retries if max_retries is not None else settings.llm_max_retries
        )
        self.base_delay_seconds = (
            base_delay_seconds
            if base_delay_seconds is not None
            else settings.llm_retry_base_delay_seconds
        )
        self._sleep = sleep

    @property
    def delays(self) -> list[float]:
        return [self.base_delay_seconds * (2**n) for n in range(self.max_retries)]

    async def generate(
        self,
        record: KpiRecord,
        context: AiContext,
        api_key: str,
    ) -> SummaryResult:
        """Generate the three-line summary for one extraction.

        Raises:
            LLMConfigurationError: If no API key is supplied.
            LLMError: The final attempt's failure once retries are exhausted.
        """
        if not api_key:
            raise LLMConfigurationError(model=self.backend.model)

        messages = build_summary_messages(record, context)
        return await self.call_with_retry(messages, api_key)

    async def call_with_retry(
        self, messages: list[BaseMessage], api_key: str
    ) -> SummaryResult:
        start_time = time.time()
        pending_delays = list(self.delays)
        attempt = 0

        with timed_operation(logger, "summary_generation") as metrics:
            while True:
                attempt += 1
                metrics.attempts = attempt
                call_start = time.time()
                try:
                    text = await self.backend.generate(messages, api_key)
                except LLMError as e:
                    logger.log_api_call(
                        service=self.backend.service,
                        operation="generate_summary",
                        duration_seconds=time.time() - call_start,
                        attempt=attempt,
                        success=False,
                        error_message=e.message,
                    )
                    if not pending_delays:
                        logger.error(
                            "Summary generation failed after retries",
                            attempts=attempt,
                            model=self.backend.model,
                        )
                        raise
                    await self._sleep(pending_delays.pop(0))
                    continue

                logger.log_api_call(
                    service=self.backend.service,
                    operation="generate_summary",
                    duration_seconds=time.time() - call_start,
                    attempt=attempt,
                )
                return SummaryResult(
                    text=text,
                    model=self.backend.model,
                    attempts=attempt,
                    processing_time_seconds=time.time() - start_time,
                )
