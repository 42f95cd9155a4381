"""
Fuel Invoice Processing Module

Processors for turning fuel invoices into reconciled purchase candidates.

Components:
- ContentNormalizer: Uploaded file -> bounded text or image payload
- InvoiceExtractor: LLM extraction through a forced tool call
- LineItemValidator: Plausibility rules per line item
- VehicleMatcher: Exact registration lookup
- DuplicateReconciler: Duplicate detection against records and the batch
- FuelInvoicePipeline: Per-file state machine over all of the above
"""

from .normalizer import ContentNormalizer
from .extractor import FUEL_INVOICE_TOOL, InvoiceExtractor, classify_error, parse_extracted_invoice
from .validator import LineItemValidator, parse_iso_date
from .vehicle_matcher import VehicleMatcher, normalize_registration
from .reconciler import DuplicateReconciler, ReconcileState
from .pipeline import FuelInvoicePipeline, PipelineContext, StageFailure

__all__ = [
    # Processors
    'ContentNormalizer',
    'InvoiceExtractor',
    'LineItemValidator',
    'VehicleMatcher',
    'DuplicateReconciler',
    'FuelInvoicePipeline',

    # Utilities
    'classify_error',
    'normalize_registration',
    'parse_extracted_invoice',
    'parse_iso_date',

    # Types
    'FUEL_INVOICE_TOOL',
    'PipelineContext',
    'ReconcileState',
    'StageFailure'
]
