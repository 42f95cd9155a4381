"""
Shared helpers for fuelex tests
"""

import asyncio
import json
from datetime import date
from typing import Any, Dict, List, Optional

from fuelex.config.config_manager import ConfigManager
from fuelex.jobs.batch import BatchOrchestrator
from fuelex.models.fuel_invoice import RawDocument

TODAY = date(2025, 10, 20)


def fixed_clock() -> date:
    return TODAY


def make_row(**overrides) -> Dict[str, Any]:
    """A plausible fuel-card row: 50L at £1.40 = £70.00"""
    row = {
        'transactionDate': '2025-10-06',
        'registration': 'AB12 CDE',
        'litres': 50.0,
        'costPerLitre': 1.40,
        'totalCost': 70.0,
        'station': 'Leeds Services',
    }
    row.update(overrides)
    return {k: v for k, v in row.items() if v is not None}


def tool_response(line_items: List[Dict[str, Any]], invoice_date: Optional[str] = '2025-10-10', **extra) -> Dict[str, Any]:
    arguments = {'lineItems': line_items, **extra}
    if invoice_date is not None:
        arguments['invoiceDate'] = invoice_date
    return {'arguments': json.dumps(arguments), 'content': None}


def text_document(name: str, text: str = 'Fuel card statement') -> RawDocument:
    return RawDocument(name=name, content=text.encode('utf-8'), media_type='text/plain')


class FakeLLMService:
    """
    Stands in for OpenAILLMService.

    Responses are keyed by document name, which the rendered user prompt
    always contains. A value may be a response dict, an exception to raise
    or a callable returning the response.
    """

    def __init__(self, responses: Dict[str, Any], delay: float = 0.0):
        self.responses = responses
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def _name_for(self, messages) -> str:
        content = messages[-1]['content']
        text = content if isinstance(content, str) else content[0]['text']
        # Longest names first so 'bravo.txt' never matches 'xbravo.txt'
        for name in sorted(self.responses, key=len, reverse=True):
            if f"({name})" in text:
                return name
        raise AssertionError(f"No canned response for prompt: {text[:80]}")

    async def extract_with_tool(self, messages, tool, temperature=0.0, max_tokens=None):
        name = self._name_for(messages)
        self.calls.append(name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses[name]
            if isinstance(response, BaseException):
                raise response
            if callable(response):
                return response()
            return response
        finally:
            self.in_flight -= 1


def make_orchestrator(llm_service, config: Optional[ConfigManager] = None, **batch) -> BatchOrchestrator:
    config = config or ConfigManager({'batch': {'window_delay': 0}})
    for key, value in batch.items():
        config.set(f'batch.{key}', value)
    return BatchOrchestrator.from_config(config, llm_service=llm_service, clock=fixed_clock)
