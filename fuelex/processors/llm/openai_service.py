"""
OpenAI LLM Service

Thin async wrapper around the chat-completions API used for invoice
extraction. Works against OpenAI itself or any OpenAI-compatible gateway
through base_url.
"""

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

API_KEY_ENV_VARS = ('FUELEX_LLM_API_KEY', 'OPENAI_API_KEY')


def clean_json_response(content: str) -> str:
    """Remove markdown code blocks from a model response"""
    content = content.strip()
    if content.startswith('```json'):
        content = content[7:]
    if content.startswith('```'):
        content = content[3:]
    if content.endswith('```'):
        content = content[:-3]
    return content.strip()


def parse_json_loose(response: Optional[str]) -> Optional[Any]:
    """
    Parse JSON out of free-form model output.

    Tries, in order: the whole string, a fenced code block, the first
    {...} span. Returns None when nothing parses.
    """
    if not response or not response.strip():
        return None

    try:
        return json.loads(clean_json_response(response))
    except json.JSONDecodeError:
        pass

    match = re.search(r'```(?:json)?\s*([\s\S]*?)\s*```', response)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    match = re.search(r'\{[\s\S]*\}', response)
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    return None


def resolve_api_key(api_key: Optional[str] = None) -> Optional[str]:
    if api_key:
        return api_key
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


class OpenAILLMService:
    """Reusable OpenAI LLM service for fuelex extraction"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "google/gemini-2.5-flash",
        base_url: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None
    ):
        """
        Initialize OpenAI LLM service

        Args:
            api_key: API key; falls back to FUELEX_LLM_API_KEY / OPENAI_API_KEY
            model: Model identifier understood by the endpoint
            base_url: Optional OpenAI-compatible gateway URL
            client: Pre-built client (mainly for tests)
        """
        self.client = client or AsyncOpenAI(api_key=resolve_api_key(api_key), base_url=base_url)
        self.model = model

    async def extract_with_tool(
        self,
        messages: List[Dict[str, Any]],
        tool: Dict[str, Any],
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> Dict[str, Any]:
        """
        Run one chat completion with a forced function tool call

        Args:
            messages: Chat messages (content may be multimodal parts)
            tool: Tool definition in chat-completions format
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            **kwargs: Additional parameters for the API

        Returns:
            Dictionary with 'arguments' (raw tool-call JSON or None),
            'content' (message text or None), 'finish_reason' and 'usage'

        Raises:
            openai.APIError subclasses; callers classify them
        """
        function_name = tool['function']['name']
        logger.debug(f"Calling {self.model} with forced tool {function_name}")

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            tools=[tool],
            tool_choice={"type": "function", "function": {"name": function_name}},
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )

        if not response.choices:
            return {'arguments': None, 'content': None, 'finish_reason': None, 'usage': None}

        choice = response.choices[0]
        message = choice.message
        arguments = None
        for call in message.tool_calls or []:
            if call.function and call.function.name == function_name:
                arguments = call.function.arguments
                break

        return {
            'arguments': arguments,
            'content': message.content,
            'finish_reason': choice.finish_reason,
            'usage': response.usage.model_dump() if response.usage else None,
        }
