"""
Typed configuration views

Each component reads its own section of the merged configuration through
one of these models, so bad values fail loudly at start-up.
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class NormalizerConfig(BaseModel):
    """Content normalizer limits"""
    max_file_bytes: int = Field(10 * 1024 * 1024, gt=0)
    max_image_width: int = Field(1200, gt=0)
    jpeg_quality: int = Field(70, ge=1, le=95)
    max_text_chars: int = Field(500000, gt=0)
    truncation_marker: str = "\n\n[Content truncated due to length...]"


class ExtractionConfig(BaseModel):
    """Extraction service settings"""
    model: str = "google/gemini-2.5-flash"
    base_url: Optional[str] = None
    api_key: Optional[str] = Field(None, repr=False)
    temperature: float = Field(0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(4096, gt=0)
    max_image_payload_chars: int = Field(1000000, gt=0)
    prompt_name: str = "fuel_invoice_extraction"
    prompts_dir: Optional[str] = None


class ValidationRules(BaseModel):
    """Plausibility rules applied to every extracted line item"""
    currency_symbol: str = "£"

    arithmetic_abs_tolerance: float = Field(2.0, ge=0.0)
    arithmetic_rel_tolerance: float = Field(0.05, ge=0.0, lt=1.0)

    min_cost_per_litre: float = Field(1.10, gt=0.0)
    max_cost_per_litre: float = Field(2.50, gt=0.0)
    min_litres: float = Field(1.0, gt=0.0)
    max_litres: float = Field(150.0, gt=0.0)
    min_total_cost: float = Field(1.0, gt=0.0)
    max_total_cost: float = Field(500.0, gt=0.0)

    max_lookback_days: int = Field(730, gt=0)
    anchor_window_days: int = Field(60, gt=0)

    @model_validator(mode='after')
    def check_bands(self) -> 'ValidationRules':
        for low, high in (
            ('min_cost_per_litre', 'max_cost_per_litre'),
            ('min_litres', 'max_litres'),
            ('min_total_cost', 'max_total_cost'),
        ):
            if getattr(self, low) >= getattr(self, high):
                raise ValueError(f"{low} must be below {high}")
        return self


class ReconcileConfig(BaseModel):
    """Duplicate detection tolerance"""
    litres_tolerance: float = Field(0.5, gt=0.0)


@dataclass
class BatchConfig:
    """Batch orchestration settings"""
    # Concurrency
    window_size: int = 2
    window_delay: float = 0.1  # seconds

    # Timeouts
    extraction_timeout: float = 120.0  # seconds

    # Caller-level retries of rate-limited files
    max_retries: int = 3
    retry_delay_base: float = 5.0  # seconds
    retry_delay_max: float = 300.0  # seconds

    def __post_init__(self):
        # Values may arrive straight from YAML
        for name in ('window_size', 'max_retries'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        for name in ('window_delay', 'extraction_timeout', 'retry_delay_base', 'retry_delay_max'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{name} must be a number, got {value!r}")
            setattr(self, name, float(value))

        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")
        if self.window_delay < 0:
            raise ValueError("window_delay must not be negative")
        if self.extraction_timeout <= 0:
            raise ValueError("extraction_timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
