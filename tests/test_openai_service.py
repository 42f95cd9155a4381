"""
Tests for the OpenAI service wrapper and loose JSON parsing
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from fuelex.processors.invoice.extractor import FUEL_INVOICE_TOOL, TOOL_NAME
from fuelex.processors.llm.openai_service import (
    OpenAILLMService,
    clean_json_response,
    parse_json_loose,
    resolve_api_key,
)


def tool_call(name, arguments):
    call = Mock()
    call.function = Mock()
    # Mock reserves the `name` keyword
    call.function.name = name
    call.function.arguments = arguments
    return call


def completion(tool_calls=None, content=None):
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message = Mock()
    response.choices[0].message.tool_calls = tool_calls
    response.choices[0].message.content = content
    response.choices[0].finish_reason = 'tool_calls' if tool_calls else 'stop'
    response.usage = None
    return response


class TestOpenAILLMService:
    """Tests for OpenAILLMService"""

    @pytest.mark.asyncio
    async def test_forces_the_tool_and_returns_arguments(self):
        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=completion(
            tool_calls=[tool_call('other_tool', '{}'), tool_call(TOOL_NAME, '{"lineItems": []}')]
        ))
        service = OpenAILLMService(api_key='test-key', model='gpt-4o', client=mock_client)

        result = await service.extract_with_tool(
            [{'role': 'user', 'content': 'hi'}], FUEL_INVOICE_TOOL, max_tokens=512
        )

        assert result['arguments'] == '{"lineItems": []}'
        assert result['finish_reason'] == 'tool_calls'
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs['model'] == 'gpt-4o'
        assert kwargs['tools'] == [FUEL_INVOICE_TOOL]
        assert kwargs['tool_choice'] == {'type': 'function', 'function': {'name': TOOL_NAME}}
        assert kwargs['max_tokens'] == 512

    @pytest.mark.asyncio
    async def test_content_only_response(self):
        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=completion(content='{"lineItems": []}'))
        service = OpenAILLMService(api_key='test-key', client=mock_client)

        result = await service.extract_with_tool([], FUEL_INVOICE_TOOL)

        assert result['arguments'] is None
        assert result['content'] == '{"lineItems": []}'

    @pytest.mark.asyncio
    async def test_no_choices(self):
        response = Mock()
        response.choices = []
        mock_client = AsyncMock()
        mock_client.chat.completions.create = AsyncMock(return_value=response)
        service = OpenAILLMService(api_key='test-key', client=mock_client)

        result = await service.extract_with_tool([], FUEL_INVOICE_TOOL)

        assert result == {'arguments': None, 'content': None, 'finish_reason': None, 'usage': None}


class TestJsonHelpers:

    def test_clean_json_response(self):
        assert clean_json_response('```json\n{"a": 1}\n```') == '{"a": 1}'

    @pytest.mark.parametrize('text', [
        '{"a": 1}',
        'Here you go:\n```json\n{"a": 1}\n```\nThanks',
        'The invoice is {"a": 1} as requested',
    ])
    def test_parse_json_loose(self, text):
        assert parse_json_loose(text) == {'a': 1}

    @pytest.mark.parametrize('text', [None, '', '   ', 'no json here', '{broken'])
    def test_parse_json_loose_gives_up(self, text):
        assert parse_json_loose(text) is None

    def test_resolve_api_key(self):
        with patch.dict('os.environ', {'FUELEX_LLM_API_KEY': 'from-env', 'OPENAI_API_KEY': 'other'}):
            assert resolve_api_key('explicit') == 'explicit'
            assert resolve_api_key() == 'from-env'
        with patch.dict('os.environ', {}, clear=True):
            assert resolve_api_key() is None
