"""Thin async adapter over the configured LangChain chat model.

Every enrichment step goes through :func:`complete`, so provider selection,
timeouts and error translation live in one place.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from sitelens.config import settings
from sitelens.errors import ProviderError

logger = logging.getLogger(__name__)


def _get_llm(temperature: float, max_tokens: int) -> Any:
    """Return a LangChain chat model for ``settings.llm_provider``."""
    if settings.llm_provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=settings.openai_chat_model,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    from langchain_ollama import ChatOllama

    return ChatOllama(
        model=settings.ollama_chat_model,
        base_url=settings.ollama_base_url,
        temperature=temperature,
        num_predict=max_tokens,
    )


def _content_text(response: Any) -> str:
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        # Multi-part messages: keep only the text parts.
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content)


async def complete(
    prompt: str,
    system_prompt: str,
    temperature: float = 0.7,
    max_tokens: int = 4096,
    timeout: Optional[float] = None,
) -> str:
    """Send one system + user turn to the model and return its text reply.

    Args:
        prompt: User message.
        system_prompt: System instruction.
        temperature: Sampling temperature.
        max_tokens: Upper bound on generated tokens.
        timeout: Seconds before the call is abandoned
            (default ``settings.llm_timeout``).

    Raises:
        ProviderError: On timeout, transport failure or any provider error.
    """
    timeout = settings.llm_timeout if timeout is None else timeout
    messages = [SystemMessage(content=system_prompt), HumanMessage(content=prompt)]

    try:
        llm = _get_llm(temperature, max_tokens)
        response = await asyncio.wait_for(llm.ainvoke(messages), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ProviderError(f"LLM call timed out after {timeout:.0f}s") from exc
    except Exception as exc:  # noqa: BLE001
        raise ProviderError(f"LLM call failed: {exc}") from exc

    text = _content_text(response)
    logger.debug("[llm] %s reply: %d chars", settings.llm_provider, len(text))
    return text
