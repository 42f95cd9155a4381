"""
Tests for caller-level rate-limit retries
"""

import httpx
import openai
import pytest

from fuelex.jobs.retry import backoff_delay, retry_rate_limited
from fuelex.models.batch import FailureKind
from fuelex.models.fuel_invoice import MatchKind

from tests.helpers import FakeLLMService, make_orchestrator, make_row, text_document, tool_response


def rate_limit_error():
    request = httpx.Request('POST', 'https://gateway.test/v1/chat/completions')
    return openai.RateLimitError('Rate limit reached', response=httpx.Response(429, request=request), body=None)


class FlakyResponse:
    """Raises a rate-limit error for the first `failures` calls"""

    def __init__(self, response, failures=1):
        self.response = response
        self.failures = failures
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise rate_limit_error()
        return self.response


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def test_backoff_delay():
    assert backoff_delay(0, 5.0, 300.0) == 5.0
    assert backoff_delay(3, 5.0, 300.0) == 40.0
    assert backoff_delay(10, 5.0, 300.0) == 300.0


class TestRetryRateLimited:

    @pytest.mark.asyncio
    async def test_rate_limited_file_is_retried_and_merged(self, vehicles):
        responses = {
            'alpha.txt': tool_response([make_row()]),
            'bravo.txt': FlakyResponse(tool_response([make_row(litres=50.1, totalCost=70.14)])),
        }
        service = FakeLLMService(responses)
        orchestrator = make_orchestrator(service)
        documents = [text_document('alpha.txt'), text_document('bravo.txt')]
        sleep = RecordingSleep()

        first = await orchestrator.run_batch(documents, vehicles)
        assert first.rate_limited_names == ['bravo.txt']

        result = await retry_rate_limited(orchestrator, documents, first, vehicles, sleep=sleep)

        assert sleep.delays == [5.0]
        assert service.calls == ['alpha.txt', 'bravo.txt', 'bravo.txt']
        assert [o.succeeded for o in result.per_file] == [True, True]
        assert result.per_file[1].file_index == 1
        # the retried row is still compared against the first file
        assert result.merged_candidates[1].duplicate.match_kind == MatchKind.WITHIN_BATCH

    @pytest.mark.asyncio
    async def test_backoff_grows_until_retries_run_out(self, vehicles):
        responses = {'alpha.txt': FlakyResponse(tool_response([make_row()]), failures=10)}
        orchestrator = make_orchestrator(FakeLLMService(responses))
        documents = [text_document('alpha.txt')]
        sleep = RecordingSleep()

        first = await orchestrator.run_batch(documents, vehicles)
        result = await retry_rate_limited(orchestrator, documents, first, vehicles, max_retries=3, sleep=sleep)

        assert sleep.delays == [5.0, 10.0, 20.0]
        assert result.per_file[0].failure.kind == FailureKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_nothing_to_retry(self, vehicles):
        orchestrator = make_orchestrator(FakeLLMService({'alpha.txt': tool_response([make_row()])}))
        documents = [text_document('alpha.txt')]
        sleep = RecordingSleep()

        first = await orchestrator.run_batch(documents, vehicles)
        result = await retry_rate_limited(orchestrator, documents, first, vehicles, sleep=sleep)

        assert sleep.delays == []
        assert [c.to_record() for c in result.merged_candidates] == [c.to_record() for c in first.merged_candidates]
