"""Chat model client with pacing, retries and reply parsing."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from typing import Any, Protocol

import tiktoken
from cuid2 import cuid_wrapper
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool
from langchain_groq import ChatGroq
from limits import RateLimitItem, parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import ValidationError

from chatloop.config import ModelConfig
from chatloop.exceptions import MalformedReply, ModelTimeout, ModelUnavailable
from chatloop.models.llm import TokenUsage
from chatloop.models.messages import Message, ToolInvocation
from chatloop.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class ModelService(Protocol):
    """Interface for the model collaborator used by the turn controller."""

    async def ainvoke(self, messages: Sequence[Message]) -> Message:
        """Send the full history and return one assistant message."""
        ...


class ModelRateLimiter:
    """Moving-window pacing for requests and estimated tokens."""

    def __init__(self, requests_per_minute: int = 30, tokens_per_minute: int = 60_000):
        """Initialize rate limiter. A limit of zero disables that check.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum estimated tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute") if requests_per_minute else None
        self.token_limit = parse(f"{tokens_per_minute}/minute") if tokens_per_minute else None

    async def acquire(self, estimated_tokens: int, identifier: str = "model") -> None:
        """Wait until the request fits within both budgets."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if self.request_limit is not None:
            await self._wait_for(self.request_limit, identifier, 1)

        if self.token_limit is not None:
            await self._wait_for(self.token_limit, f"{identifier}_tokens", estimated_tokens)

    async def _wait_for(self, limit: RateLimitItem, identifier: str, cost: int) -> None:
        # A single request larger than the whole window could never fit
        cost = max(1, min(cost, limit.amount))

        while not self.limiter.hit(limit, identifier, cost=cost):
            window_stats = self.limiter.get_window_stats(limit, identifier)
            wait_time = max(0.0, window_stats.reset_time - time.time())
            logger.warning(f"Rate limit {limit} reached for {identifier}, waiting {wait_time:.2f}s")
            await asyncio.sleep(wait_time or 0.1)


def build_chat_model(config: ModelConfig) -> BaseChatModel:
    """Construct the provider chat model.

    Provider-side retries are disabled; ``ChatModelClient`` owns the retry budget.

    Raises:
        ValueError: If the provider's API key is missing
    """
    api_key = config.resolve_api_key()

    if config.provider == "anthropic":
        return ChatAnthropic(
            model=config.model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            api_key=api_key,
            max_retries=0,
        )

    return ChatGroq(
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        api_key=api_key,
        max_retries=0,
    )


def get_system_prompt(tool_names: Sequence[str] = ()) -> str:
    """Generate the system prompt sent ahead of every model call."""
    prompt = """You are a helpful assistant chatting with a user in a terminal.

Answer clearly and concisely. When a question depends on recent events or facts
you are unsure about, use the available tools instead of guessing, then answer
from the tool results."""

    if tool_names:
        prompt += f"\n\nAvailable tools: {', '.join(tool_names)}"

    prompt += f"\nCurrent date and time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
    return prompt


class ChatModelClient:
    """Model service over a LangChain chat model."""

    def __init__(
        self,
        config: ModelConfig | None = None,
        tools: Sequence[BaseTool] = (),
        chat_model: BaseChatModel | None = None,
        rate_limiter: ModelRateLimiter | None = None,
    ):
        """Initialize the client.

        Args:
            config: Client configuration
            tools: Tools the model may request (bound with ``bind_tools``)
            chat_model: Prebuilt chat model (defaults to the configured provider)
            rate_limiter: Pacing in front of the provider
        """
        self.config = config or ModelConfig()
        self.tool_names = [tool.name for tool in tools]

        model = chat_model or build_chat_model(self.config)
        self.runnable = model.bind_tools(list(tools)) if tools else model

        self.rate_limiter = rate_limiter or ModelRateLimiter(
            self.config.requests_per_minute, self.config.tokens_per_minute
        )

        try:
            # Close enough approximation across providers
            self.tokenizer: tiktoken.Encoding | None = tiktoken.get_encoding("cl100k_base")
        except Exception as e:
            logger.warning(f"Tokenizer unavailable, falling back to character estimate: {e}")
            self.tokenizer = None

    async def ainvoke(self, messages: Sequence[Message]) -> Message:
        """Call the model with the full history.

        Raises:
            ModelUnavailable: If every attempt failed
            MalformedReply: If the reply cannot be turned into a message
        """
        system_prompt = get_system_prompt(self.tool_names)
        lc_messages = [SystemMessage(content=system_prompt), *to_langchain_messages(messages)]

        estimated_tokens = self.estimate_tokens(system_prompt + "".join(m.content for m in messages))
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.acquire(estimated_tokens)

        logger.debug(f"Calling {self.config.provider}:{self.config.model} with {len(lc_messages)} messages")
        response = await self._request_with_retries(lambda: self.runnable.ainvoke(lc_messages))

        return parse_reply(response)

    async def _request_with_retries[T](self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute a model request with retry logic."""
        attempts = self.config.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(call(), timeout=self.config.request_timeout)

            except TimeoutError as e:
                logger.warning(f"Model request timed out after {self.config.request_timeout}s (attempt {attempt + 1})")
                last_error = e
                delay = self.config.retry_delay * (2**attempt)

            except Exception as e:
                status_code = getattr(e, "status_code", None)
                if isinstance(status_code, int) and 400 <= status_code < 500 and status_code != 429:
                    # Client errors will not succeed on retry
                    raise ModelUnavailable(f"Model request rejected: {e}", attempts=attempt + 1) from e

                logger.warning(f"Model request failed (attempt {attempt + 1}/{attempts}): {e}")
                last_error = e
                delay = _retry_after(e) if status_code == 429 else None
                if delay is None:
                    delay = self.config.retry_delay * (2**attempt)

            if attempt < attempts - 1:
                await asyncio.sleep(delay)

        if isinstance(last_error, TimeoutError):
            raise ModelTimeout("Model request timed out", attempts=attempts) from last_error
        raise ModelUnavailable(f"Model request failed: {last_error}", attempts=attempts) from last_error

    def estimate_tokens(self, text: str) -> int:
        """Estimate token count for a piece of text."""
        tokenizer = self.tokenizer
        if tokenizer is None:
            return len(text) // 4
        try:
            return len(tokenizer.encode(text))
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(text) // 4


def to_langchain_messages(messages: Sequence[Message]) -> list[BaseMessage]:
    """Convert conversation messages to LangChain messages."""
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == "user":
            converted.append(HumanMessage(content=message.content))
        elif message.role == "assistant":
            converted.append(
                AIMessage(
                    content=message.content,
                    tool_calls=[
                        {"id": call.id, "name": call.name, "args": call.arguments_dict(), "type": "tool_call"}
                        for call in message.tool_calls
                    ],
                )
            )
        else:
            converted.append(
                ToolMessage(
                    content=message.content,
                    tool_call_id=message.tool_call_id,
                    name=message.name,
                    status="error" if message.is_error else "success",
                )
            )
    return converted


def parse_reply(response: Any) -> Message:
    """Turn a LangChain model reply into an assistant message.

    Raises:
        MalformedReply: If the reply does not have the assistant message shape
    """
    if not isinstance(response, AIMessage):
        raise MalformedReply(f"Expected an AI message, got {type(response).__name__}")

    if response.invalid_tool_calls:
        names = ", ".join(str(call.get("name")) for call in response.invalid_tool_calls)
        raise MalformedReply(f"Model produced unparseable tool calls: {names}")

    tool_calls: list[ToolInvocation] = []
    for call in response.tool_calls:
        if not call.get("name"):
            raise MalformedReply("Model produced a tool call without a name")
        tool_calls.append(
            ToolInvocation(id=call.get("id") or f"call_{cuid()}", name=call["name"], arguments=call.get("args") or {})
        )

    try:
        return Message.assistant(
            content=_content_text(response.content),
            tool_calls=tool_calls,
            usage=TokenUsage.from_metadata(response.usage_metadata),
        )
    except ValidationError as e:
        raise MalformedReply(f"Model reply is not a valid message: {e}") from e


def _content_text(content: str | list[Any] | None) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content

    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
    return "".join(parts)


def _retry_after(error: Exception) -> float | None:
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    try:
        retry_after = float(headers.get("retry-after", ""))
    except ValueError:
        return None
    return retry_after if retry_after < 120 else None
