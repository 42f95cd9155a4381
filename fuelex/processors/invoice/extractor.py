"""
Invoice Extractor

Sends a normalized payload to the LLM with a forced extract_fuel_invoice
tool call and turns the untrusted response into an ExtractedInvoice.
"""

import json
import logging
import math
import re
import time
from typing import Any, Dict, List, Optional

import openai

from fuelex.config.settings import ExtractionConfig
from fuelex.exceptions import ExtractionError, ExtractionErrorKind
from fuelex.models.fuel_invoice import (
    DateSource,
    ExtractedInvoice,
    ExtractedLineItem,
    ExtractionContext,
    NormalizedPayload,
    PayloadKind,
)
from fuelex.processors.base import BaseProcessor, ProcessingResult
from fuelex.processors.llm.openai_service import OpenAILLMService, parse_json_loose
from fuelex.processors.llm.prompt_manager import PromptManager

logger = logging.getLogger(__name__)

TOOL_NAME = "extract_fuel_invoice"

FUEL_INVOICE_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": TOOL_NAME,
        "description": "Extract fuel purchase line items from a fuel invoice",
        "parameters": {
            "type": "object",
            "properties": {
                "invoiceDate": {"type": "string", "description": "Invoice date in YYYY-MM-DD format"},
                "invoiceTotal": {"type": "number", "description": "Gross invoice total including VAT"},
                "station": {"type": "string", "description": "Station name if the invoice is from one site"},
                "lineItems": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "transactionDate": {"type": "string", "description": "Row date in YYYY-MM-DD format"},
                            "registration": {"type": "string", "description": "Vehicle registration"},
                            "litres": {"type": "number", "description": "Litres of fuel"},
                            "costPerLitre": {"type": "number", "description": "Price per litre including VAT"},
                            "totalCost": {"type": "number", "description": "Total cost including VAT"},
                            "mileage": {"type": "number", "description": "Odometer reading if shown"},
                            "station": {"type": "string", "description": "Station name for this row"},
                        },
                        "required": ["transactionDate", "registration", "litres", "costPerLitre", "totalCost"],
                    },
                },
            },
            "required": ["lineItems"],
        },
    },
}

# Substrings of provider error messages
_QUOTA_MARKERS = ('insufficient_quota', 'exceeded your current quota', 'usage limit', 'payment required')
_TOO_LARGE_MARKERS = ('context length', 'context_length', 'too many tokens', 'maximum context', 'request too large')

_NUMBER_NOISE = re.compile(r'[£$€,\s]')


def classify_error(error: BaseException) -> ExtractionError:
    """
    Map a service exception onto an ExtractionErrorKind.

    402 and exhausted-quota errors are QuotaExceeded even when the
    provider reports them with a 429 status.
    """
    if isinstance(error, ExtractionError):
        return error

    status = getattr(error, 'status_code', None) if isinstance(error, openai.APIStatusError) else None
    code = getattr(error, 'code', None)
    message = str(error) or error.__class__.__name__
    lowered = message.lower()

    if status == 402 or code == 'insufficient_quota' or any(m in lowered for m in _QUOTA_MARKERS):
        kind = ExtractionErrorKind.QUOTA_EXCEEDED
    elif status == 429 or isinstance(error, openai.RateLimitError):
        kind = ExtractionErrorKind.RATE_LIMITED
    elif status == 413 or code == 'context_length_exceeded' or any(m in lowered for m in _TOO_LARGE_MARKERS):
        kind = ExtractionErrorKind.PAYLOAD_TOO_LARGE
    else:
        kind = ExtractionErrorKind.UNKNOWN

    return ExtractionError(kind, message, status_code=status)


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _number(value: Any) -> Optional[float]:
    """Coerce a JSON value to a finite float, or None"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = _NUMBER_NOISE.sub('', value)
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _integer(value: Any) -> Optional[int]:
    number = _number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def parse_extracted_invoice(raw: Any) -> ExtractedInvoice:
    """
    Type-check an untrusted tool response.

    Absent or malformed values become None, never zero. A row without its
    own transaction date borrows the invoice date and is marked as such.
    """
    if not isinstance(raw, dict):
        logger.warning(f"Extraction response is a {type(raw).__name__}, not an object")
        return ExtractedInvoice(degraded=True)

    invoice_date = _text(raw.get('invoiceDate'))
    station = _text(raw.get('station'))
    degraded = False

    rows = raw.get('lineItems')
    if rows is None:
        rows = []
    elif not isinstance(rows, list):
        logger.warning(f"lineItems is a {type(rows).__name__}, discarding it")
        rows = []
        degraded = True

    line_items: List[ExtractedLineItem] = []
    for line_number, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            logger.warning(f"Skipping line item {line_number}: not an object")
            continue

        transaction_date = _text(row.get('transactionDate'))
        if transaction_date:
            date_source = DateSource.LINE
        elif invoice_date:
            transaction_date = invoice_date
            date_source = DateSource.INVOICE
        else:
            date_source = DateSource.NONE

        line_items.append(ExtractedLineItem(
            transaction_date=transaction_date,
            registration=_text(row.get('registration')),
            litres=_number(row.get('litres')),
            cost_per_litre=_number(row.get('costPerLitre')),
            total_cost=_number(row.get('totalCost')),
            mileage=_integer(row.get('mileage')),
            station=_text(row.get('station')) or station,
            date_source=date_source,
            line_number=line_number
        ))

    return ExtractedInvoice(
        invoice_date=invoice_date,
        invoice_total=_number(raw.get('invoiceTotal')),
        station=station,
        line_items=line_items,
        degraded=degraded
    )


class InvoiceExtractor(BaseProcessor):
    """
    Extracts fuel purchase rows from a NormalizedPayload using an LLM.

    The LLM service is any object with an async
    extract_with_tool(messages, tool, temperature=..., max_tokens=...)
    method returning {'arguments': ..., 'content': ...}.
    """

    def __init__(
        self,
        llm_service: Any = None,
        config: Optional[ExtractionConfig] = None,
        prompt_manager: Optional[PromptManager] = None,
        currency_symbol: str = "£"
    ):
        super().__init__(config or ExtractionConfig())
        self._llm_service = llm_service
        self.prompt_manager = prompt_manager or PromptManager(self.config.prompts_dir)
        self.currency_symbol = currency_symbol

    @property
    def llm_service(self):
        if self._llm_service is None:
            self._llm_service = OpenAILLMService(
                api_key=self.config.api_key,
                model=self.config.model,
                base_url=self.config.base_url
            )
        return self._llm_service

    def can_process(self, payload: NormalizedPayload) -> bool:
        return isinstance(payload, NormalizedPayload)

    async def process(
        self,
        payload: NormalizedPayload,
        context: Optional[ExtractionContext] = None
    ) -> ProcessingResult:
        """
        Extract an invoice from a payload.

        Returns:
            ProcessingResult with an ExtractedInvoice, or error_kind set to
            an ExtractionErrorKind value
        """
        start_time = time.time()
        try:
            invoice = await self.extract(payload, context)
        except ExtractionError as e:
            logger.error(f"Extraction failed for {payload.source_name} ({e.kind.value}): {e.message}")
            return ProcessingResult.failed(e.kind.value, e.message, status_code=e.status_code)

        extraction_time_ms = int((time.time() - start_time) * 1000)
        return ProcessingResult.ok(
            invoice,
            line_items=len(invoice.line_items),
            degraded=invoice.degraded,
            extraction_time_ms=extraction_time_ms
        )

    async def extract(
        self,
        payload: NormalizedPayload,
        context: Optional[ExtractionContext] = None
    ) -> ExtractedInvoice:
        """Run one extraction call, raising ExtractionError on service failure"""
        context = context or ExtractionContext()

        if payload.kind == PayloadKind.IMAGE and payload.char_count > self.config.max_image_payload_chars:
            raise ExtractionError(
                ExtractionErrorKind.PAYLOAD_TOO_LARGE,
                f"Image payload of {payload.char_count} characters exceeds "
                f"{self.config.max_image_payload_chars}"
            )

        messages = self.build_messages(payload, context)
        logger.info(f"Extracting {payload.source_name} ({payload.kind.value}, {payload.char_count} chars)")

        try:
            response = await self.llm_service.extract_with_tool(
                messages,
                FUEL_INVOICE_TOOL,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens
            )
        except (openai.OpenAIError, ExtractionError) as e:
            raise classify_error(e) from e

        invoice = self._parse_response(response or {}, payload.source_name)
        logger.info(f"Extracted {len(invoice.line_items)} line item(s) from {payload.source_name}")
        return invoice

    def build_messages(self, payload: NormalizedPayload, context: ExtractionContext) -> List[Dict[str, Any]]:
        prompt_name = self.config.prompt_name
        system_prompt = self.prompt_manager.get_system_prompt(
            prompt_name,
            known_registrations=context.known_registrations,
            date_hint=context.expected_date_hint.isoformat() if context.expected_date_hint else None,
            currency_symbol=self.currency_symbol
        )

        if payload.kind == PayloadKind.IMAGE:
            user_content: Any = [
                {
                    "type": "text",
                    "text": self.prompt_manager.render(
                        prompt_name, 'image_prompt_template', source_name=payload.source_name
                    ),
                },
                {"type": "image_url", "image_url": {"url": payload.image_data_url}},
            ]
        else:
            user_content = self.prompt_manager.get_user_prompt(
                prompt_name, source_name=payload.source_name, content=payload.text
            )

        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ]

    def _parse_response(self, response: Dict[str, Any], source_name: str) -> ExtractedInvoice:
        raw = None
        arguments = response.get('arguments')
        if arguments:
            try:
                raw = json.loads(arguments) if isinstance(arguments, str) else arguments
            except json.JSONDecodeError as e:
                logger.warning(f"Tool arguments for {source_name} are not valid JSON: {e}")

        if not isinstance(raw, dict):
            raw = parse_json_loose(response.get('content'))
            if isinstance(raw, dict):
                logger.warning(f"No usable tool call for {source_name}, parsed message content instead")

        if not isinstance(raw, dict):
            logger.warning(f"Could not parse an extraction response for {source_name}")
            return ExtractedInvoice(degraded=True)

        return parse_extracted_invoice(raw)
