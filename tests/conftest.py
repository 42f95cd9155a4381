"""
Shared fixtures for fuelex tests
"""

from typing import List

import pytest

from fuelex.models.fuel_invoice import KnownVehicle


@pytest.fixture
def vehicles() -> List[KnownVehicle]:
    return [
        KnownVehicle(id='v1', registration='AB12 CDE'),
        KnownVehicle(id='v2', registration='XY99 ZZZ'),
    ]
