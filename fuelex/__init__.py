"""
Fuelex - Fuel Invoice Ingestion Library

Turns uploaded fuel invoices (images, PDFs, text exports) into reviewed,
de-duplicated fuel purchase candidates.

Basic usage:
    from fuelex import BatchOrchestrator, ConfigManager, RawDocument

    orchestrator = BatchOrchestrator.from_config(ConfigManager.load())
    result = await orchestrator.run_batch(
        [RawDocument.from_path('invoice-2025-10-06.pdf')],
        known_vehicles=[{'id': 'v1', 'registration': 'AB12 CDE'}],
        existing_index=[{'vehicle_id': 'v1', 'fill_date': '2025-10-01', 'litres': 54.2}]
    )

    for candidate in result.selected:
        print(candidate.to_record())
"""

from fuelex.config.config_manager import ConfigManager
from fuelex.jobs.batch import BatchOrchestrator
from fuelex.models.batch import BatchResult
from fuelex.models.fuel_invoice import RawDocument

__all__ = ['BatchOrchestrator', 'BatchResult', 'ConfigManager', 'RawDocument']

__version__ = '0.1.0'
