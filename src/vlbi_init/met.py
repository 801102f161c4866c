"""met: Meteorological data validation.

Station met sensors fail independently. Each quantity is validated on its
own, and anything missing or out of range becomes None so troposphere
modelling downstream can tell a reading from its absence.
"""

from dataclasses import dataclass

import numpy as np
import xarray as xp

# fmt: off
TEMP_MIN = -99.0        # deg C, readings at or below are invalid
PRES_MIN = 0.0          # hPa, readings below are invalid
# fmt: on


@dataclass(frozen=True)
class MetReadings:
    """Validated met readings for one station in one scan (None = unavailable)."""

    temp: float = None      # Temperature (deg C)
    pres: float = None      # Pressure (hPa)
    e: float = None         # Water vapour partial pressure (hPa)


def _as_float(val) -> float:
    """Convert to float, mapping None / NaN / non-numeric to None."""
    if val is None:
        return None
    try:
        val = float(val)
    except (TypeError, ValueError):
        return None
    if not np.isfinite(val):
        return None
    return val


def water_vapour_pressure(temp: float, rel_hum: float) -> float:
    """Partial water vapour pressure from temperature and relative humidity (Magnus).

    Args:
        temp (float): Temperature (deg C), or None
        rel_hum (float): Relative humidity, or None

    Returns:
        e (float): 6.1078 * exp(17.1 T / (235 + T)) * RH, or None if T invalid or RH <= 0
    """
    temp = _as_float(temp)
    rel_hum = _as_float(rel_hum)
    if temp is None or rel_hum is None:
        return None
    if temp <= TEMP_MIN or rel_hum <= 0:
        return None
    return 6.1078 * np.exp((17.1 * temp) / (235 + temp)) * rel_hum


def validate_met(temp: float = None, pres: float = None, rel_hum: float = None) -> MetReadings:
    """Validate raw met readings.

    Args:
        temp (float): Temperature (deg C), None if missing
        pres (float): Pressure (hPa), None if missing
        rel_hum (float): Relative humidity, None if missing

    Returns:
        met (MetReadings): temp is None if missing or <= -99 deg C; pres is None if
                           missing or < 0 hPa; e is None unless temp is valid and rel_hum > 0.
    """
    temp = _as_float(temp)
    if temp is not None and temp <= TEMP_MIN:
        temp = None

    pres = _as_float(pres)
    if pres is not None and pres < PRES_MIN:
        pres = None

    return MetReadings(temp=temp, pres=pres, e=water_vapour_pressure(temp, rel_hum))


def _table_value(table: xp.Dataset, name: str, counter: int):
    if table is None or name not in table.variables:
        return None
    values = np.atleast_1d(table[name].values).ravel()
    if not 0 <= counter < len(values):
        return None
    return values[counter]


def station_met(table: xp.Dataset, counter: int) -> MetReadings:
    """Look up and validate met readings of a station for one scan.

    Args:
        table (xp.Dataset): Station met table with TempC, AtmPres, RelHum (or None if absent)
        counter (int): 0-based row of the scan in the station table

    Returns:
        met (MetReadings): Validated readings
    """
    return validate_met(
        temp=_table_value(table, 'TempC', counter),
        pres=_table_value(table, 'AtmPres', counter),
        rel_hum=_table_value(table, 'RelHum', counter),
    )
