"""JSON-producing LLM client - LangChain transport + retrying parse cycle"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from eatwhat.core.config import Settings
from eatwhat.core.errors import GenerationParseError
from eatwhat.utils.json_extract import parse_json_payload

logger = logging.getLogger(__name__)

STRICT_JSON_INSTRUCTION = "必须输出严格 JSON 对象，不要 markdown，不要额外解释。"
DEFAULT_MAX_OUTPUT_TOKENS = 900


@dataclass(frozen=True)
class ResponseContract:
    """Example shape appended to the prompt plus the keys a valid answer must carry."""

    example: str
    expected_keys: Tuple[str, ...]


class ModelTransport(Protocol):
    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        timeout: Optional[float],
        max_output_tokens: Optional[int],
        tools: Optional[Sequence[Dict[str, Any]]],
    ) -> Any:
        ...


class LangChainTransport:
    """ChatOpenAI-backed transport.

    ``responses`` style talks to the Responses API (and can bind provider-side
    tools such as web search); ``chat`` style uses chat completions in JSON mode.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.style = settings.openai_api_style
        self._llms: Dict[Tuple[str, Optional[float], Optional[int]], ChatOpenAI] = {}

    def _get_llm(self, model: str, timeout: Optional[float], max_output_tokens: Optional[int]) -> ChatOpenAI:
        key = (model, timeout, max_output_tokens)
        llm = self._llms.get(key)
        if llm is None:
            kwargs: Dict[str, Any] = {
                "api_key": self.settings.openai_api_key,
                "model": model,
                "temperature": self.settings.llm_temperature,
                "timeout": timeout,
                "max_retries": 0,
                "max_tokens": max_output_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
            }
            if self.settings.openai_base_url:
                kwargs["base_url"] = self.settings.openai_base_url
            if self.style == "responses":
                kwargs["use_responses_api"] = True
            llm = ChatOpenAI(**kwargs)
            self._llms[key] = llm
        return llm

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        model: str,
        timeout: Optional[float],
        max_output_tokens: Optional[int],
        tools: Optional[Sequence[Dict[str, Any]]],
    ) -> Any:
        llm = self._get_llm(model, timeout, max_output_tokens)
        if self.style == "responses":
            runnable = llm.bind_tools(list(tools)) if tools else llm
        else:
            if tools:
                logger.debug("chat transport ignores provider tools: %s", tools)
            runnable = llm.bind(response_format={"type": "json_object"})
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        return await runnable.ainvoke(messages)


class GenerationClient:
    """Thin retrying wrapper: call the model, then coerce its output to a JSON object."""

    def __init__(self, transport: ModelTransport, default_model: str):
        self.transport = transport
        self.default_model = default_model

    @staticmethod
    def build_system_prompt(system_prompt: str, contract: ResponseContract) -> str:
        return f"{system_prompt}\n\n{STRICT_JSON_INSTRUCTION}\nJSON模板：\n{contract.example}"

    async def generate_json(
        self,
        *,
        system_prompt: str,
        user_prompt: str,
        contract: ResponseContract,
        retries: int = 1,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
        tools: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Run the call-and-parse cycle up to ``retries + 1`` times.

        Args:
            system_prompt: task instructions; the strict-JSON rule and the
                contract example are appended here
            user_prompt: request-specific content
            contract: example shape and expected top-level keys
            retries: additional attempts after the first one
            model: overrides the client's default model
            timeout: per-attempt budget in seconds
            max_output_tokens: provider output cap
            tools: provider-side tools (responses transport only)

        Returns:
            The first JSON object whose keys overlap ``contract.expected_keys``.

        Raises:
            GenerationParseError: every attempt failed; ``last_error`` holds the
                final underlying exception.
        """
        system = self.build_system_prompt(system_prompt, contract)
        target_model = model or self.default_model
        last_error: Optional[BaseException] = None
        attempts = max(retries, 0) + 1

        for attempt in range(1, attempts + 1):
            try:
                call = self.transport.invoke(
                    system,
                    user_prompt,
                    model=target_model,
                    timeout=timeout,
                    max_output_tokens=max_output_tokens,
                    tools=tools,
                )
                payload = await asyncio.wait_for(call, timeout=timeout) if timeout else await call
                return parse_json_payload(payload, contract.expected_keys)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "generation attempt %s/%s failed (model=%s): %s: %s",
                    attempt,
                    attempts,
                    target_model,
                    type(exc).__name__,
                    exc,
                )

        raise GenerationParseError(f"LLM JSON parse failed: {last_error}", last_error=last_error)


def as_list(value: Any) -> List[Any]:
    """Model output helper: coerce a maybe-missing field into a list."""
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]
