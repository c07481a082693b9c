import asyncio
import logging
from collections.abc import Iterable
from typing import Any

from openai import AsyncOpenAI, OpenAI
from openai.types.chat import ChatCompletion, ChatCompletionMessageParam

__all__ = ["safe_chat_completion", "first_message_content"]


async def safe_chat_completion(
    client: AsyncOpenAI | OpenAI | None,
    *,
    model: str,
    messages: Iterable[dict[str, Any]],
    logger: logging.Logger | None = None,
    retry_attempts: int = 1,
    retry_backoff: float = 0.5,
    attempt_timeout: float | None = None,
    **kwargs,
) -> ChatCompletion:
    """Invoke the OpenAI chat completion endpoint with bounded retries.

    Parameters
    ----------
    client:
        An initialised ``openai.AsyncOpenAI`` client.
    model:
        The model name to call (e.g. ``"gpt-4o-mini"``).
    messages:
        The messages for the chat completion endpoint.
    logger:
        Optional logger for diagnostics; if omitted a module-level logger is used.
    retry_attempts:
        Total number of attempts. Advisory callers keep this low because a
        deterministic fallback exists.
    retry_backoff:
        Base back-off in seconds; grows as ``backoff * 2**(attempt-1)``.
    attempt_timeout:
        Deadline for each individual attempt, in seconds.
    **kwargs:
        Forwarded to ``client.chat.completions.create``.

    Raises
    ------
    Exception
        The last encountered exception once every attempt failed.
    """
    if client is None:
        raise RuntimeError("OpenAI client is not initialised.")
    if not isinstance(client, AsyncOpenAI):
        raise TypeError("Sync OpenAI client provided to async safe_chat_completion.")
    if retry_attempts < 1:
        raise ValueError("retry_attempts must be at least 1.")

    logger = logger or logging.getLogger(__name__)
    last_exc: Exception | None = None
    typed_messages: Iterable[ChatCompletionMessageParam] = messages  # type: ignore[assignment]

    for attempt in range(1, retry_attempts + 1):
        try:
            loop = asyncio.get_running_loop()
            start_ts = loop.time()
            completion = await asyncio.wait_for(
                client.chat.completions.create(model=model, messages=typed_messages, **kwargs),
                timeout=attempt_timeout,
            )
            logger.debug(
                "OpenAI completions.create call succeeded | model=%s | latency=%.2fs",
                model,
                loop.time() - start_ts,
            )
            return completion
        except Exception as exc:  # noqa: BLE001
            last_exc = exc
            logger.warning("OpenAI call failed (attempt %s/%s): %s", attempt, retry_attempts, exc)
            if attempt < retry_attempts:
                await asyncio.sleep(retry_backoff * (2 ** (attempt - 1)))

    if last_exc is None:
        raise RuntimeError("OpenAI call was not attempted.")
    raise last_exc


def first_message_content(completion: ChatCompletion) -> str:
    """Return the text of the first choice, or raise ValueError when it is empty."""
    if not completion.choices:
        raise ValueError("Completion returned no choices.")
    content = completion.choices[0].message.content
    if not content:
        raise ValueError("Completion returned empty content.")
    return content
