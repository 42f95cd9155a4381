"""
Vehicle Matcher

Maps a registration string from an invoice onto a known vehicle. Only exact
matches after whitespace removal and case folding count; anything else is
left for manual resolution.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Union

from fuelex.models.fuel_invoice import KnownVehicle

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


def normalize_registration(text: Optional[str]) -> str:
    """'ab12 cde' -> 'AB12CDE'"""
    if not text:
        return ''
    return _WHITESPACE.sub('', text).upper()


class VehicleMatcher:
    """Registration lookup built once per run from the vehicle roster"""

    def __init__(self, known_vehicles: Iterable[Union[KnownVehicle, Dict[str, str]]] = ()):
        self.vehicles: List[KnownVehicle] = [
            v if isinstance(v, KnownVehicle) else KnownVehicle(**v)
            for v in known_vehicles
        ]
        self._by_registration: Dict[str, List[str]] = {}
        for vehicle in self.vehicles:
            key = normalize_registration(vehicle.registration)
            if not key:
                continue
            ids = self._by_registration.setdefault(key, [])
            if vehicle.id not in ids:
                ids.append(vehicle.id)

        self._ambiguous = {k for k, ids in self._by_registration.items() if len(ids) > 1}
        for key in sorted(self._ambiguous):
            logger.warning(f"Registration {key} belongs to several vehicles: {', '.join(self._by_registration[key])}")

    @property
    def registrations(self) -> List[str]:
        """Roster registrations as given, for extraction hints"""
        return [v.registration for v in self.vehicles]

    def resolve(self, registration_text: Optional[str]) -> Optional[str]:
        """
        Resolve a registration to a vehicle id.

        Returns:
            The vehicle id, or None when there is no unique exact match
        """
        key = normalize_registration(registration_text)
        if not key:
            return None
        ids = self._by_registration.get(key)
        if not ids:
            logger.debug(f"No vehicle for registration {registration_text!r}")
            return None
        if key in self._ambiguous:
            logger.info(f"Registration {registration_text!r} is ambiguous, leaving unresolved")
            return None
        return ids[0]


def resolve(
    registration_text: Optional[str],
    known_vehicles: Iterable[Union[KnownVehicle, Dict[str, str]]]
) -> Optional[str]:
    """Convenience function for a one-off lookup"""
    return VehicleMatcher(known_vehicles).resolve(registration_text)
