"""
Parameter catalogue for forecast layers.

ParameterSlot is the closed set of quantities a Snapshot can hold. Each
incoming grid is tagged with a DataType and a LevelType/level pair; the
lookup in ``slot_for`` decides which slot (if any) it lands in.

Vector pairs (wind and current U/V) are static metadata here so the rest
of the engine never does index arithmetic on slot numbers.
"""

import logging
from enum import Enum, IntEnum
from typing import Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class ParameterSlot(IntEnum):
    """Closed catalogue of meteorological quantities and levels."""
    WIND_VX = 0
    WIND_VX850 = 1
    WIND_VX700 = 2
    WIND_VX500 = 3
    WIND_VX300 = 4
    WIND_VY = 5
    WIND_VY850 = 6
    WIND_VY700 = 7
    WIND_VY500 = 8
    WIND_VY300 = 9
    WIND_GUST = 10
    PRESSURE = 11
    HTSIGW = 12
    WVDIR = 13
    WVPER = 14
    SEACURRENT_VX = 15
    SEACURRENT_VY = 16
    PRECIP_TOT = 17
    CLOUD_TOT = 18
    AIR_TEMP = 19
    AIR_TEMP850 = 20
    AIR_TEMP700 = 21
    AIR_TEMP500 = 22
    AIR_TEMP300 = 23
    SEA_TEMP = 24
    CAPE = 25
    COMP_REFL = 26
    HUMID_RE = 27
    HUMID_RE850 = 28
    HUMID_RE700 = 29
    HUMID_RE500 = 30
    HUMID_RE300 = 31
    GEOP_HGT = 32
    GEOP_HGT850 = 33
    GEOP_HGT700 = 34
    GEOP_HGT500 = 35
    GEOP_HGT300 = 36

    @classmethod
    def coerce(cls, value: Union["ParameterSlot", int, str, None]) -> Optional["ParameterSlot"]:
        """Turn an int, name or slot into a ParameterSlot; None if out of range."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            if key.lstrip("-").isdigit():
                value = int(key)
            else:
                return None
        if isinstance(value, bool):
            return None
        try:
            return cls(int(value))
        except (ValueError, TypeError):
            return None


class DataType(str, Enum):
    """Physical parameter of a single grid, independent of level."""
    WIND_VX = "wind_vx"
    WIND_VY = "wind_vy"
    WIND_DIR = "wind_dir"
    WIND_SPEED = "wind_speed"
    WIND_GUST = "wind_gust"
    PRESSURE = "pressure"
    WAVE_HEIGHT_SIG = "htsgw"
    WAVE_HEIGHT_WIND = "wvhgt"
    WAVE_DIR_SIG = "dirpw"
    WAVE_DIR_WIND = "wvdir"
    WAVE_PERIOD_SIG = "perpw"
    WAVE_PERIOD_WIND = "wvper"
    CURRENT_VX = "uogrd"
    CURRENT_VY = "vogrd"
    CURRENT_DIR = "cur_dir"
    CURRENT_SPEED = "cur_speed"
    PRECIP_RATE = "prate"
    PRECIP_TOT = "apcp"
    CLOUD_TOT = "tcdc"
    TEMP = "tmp"
    WATER_TEMP = "wtmp"
    CAPE = "cape"
    COMP_REFL = "refc"
    HUMID_REL = "rh"
    GEOPOT_HGT = "hgt"


class LevelType(str, Enum):
    SURFACE = "surface"
    ABOVE_GROUND = "above_ground"
    MSL = "msl"
    ISOBARIC = "isobaric"
    ATMOSPHERE = "atmosphere"
    UNKNOWN = "unknown"


class SourceModel(str, Enum):
    """Producing model or centre, used by the merge strategy quality table."""
    GFS = "GFS"
    HRRR = "HRRR"
    NAM = "NAM"
    ECMWF = "ECMWF"
    ERA5 = "ERA5"
    KNMI_HIRLAM = "KNMI_HIRLAM"
    KNMI_HARMONIE_AROME = "KNMI_HARMONIE_AROME"
    NOAA_NCEP_WW3 = "NOAA_NCEP_WW3"
    FNMOC_WW3_GLB = "FNMOC_WW3_GLB"
    FNMOC_WW3_MED = "FNMOC_WW3_MED"
    NOAA_RTOFS = "NOAA_RTOFS"
    METNO = "METNO"
    OTHER = "OTHER"


# Period-average flag carried on averaged records (GRIB time range indicator)
TIME_RANGE_AVERAGE = 3

# Isobaric levels with a dedicated slot
PRESSURE_LEVELS = (850, 700, 500, 300)

# X component -> Y component
VECTOR_PAIRS: Dict[ParameterSlot, ParameterSlot] = {
    ParameterSlot.WIND_VX: ParameterSlot.WIND_VY,
    ParameterSlot.WIND_VX850: ParameterSlot.WIND_VY850,
    ParameterSlot.WIND_VX700: ParameterSlot.WIND_VY700,
    ParameterSlot.WIND_VX500: ParameterSlot.WIND_VY500,
    ParameterSlot.WIND_VX300: ParameterSlot.WIND_VY300,
    ParameterSlot.SEACURRENT_VX: ParameterSlot.SEACURRENT_VY,
}
_VECTOR_Y = {y: x for x, y in VECTOR_PAIRS.items()}

CIRCULAR_SLOTS = frozenset({ParameterSlot.WVDIR})

WAVE_SLOTS = (ParameterSlot.HTSIGW, ParameterSlot.WVDIR, ParameterSlot.WVPER)
CUMULATIVE_SLOTS = (ParameterSlot.PRECIP_TOT, ParameterSlot.CLOUD_TOT)


def is_vector_x(slot: ParameterSlot) -> bool:
    return slot in VECTOR_PAIRS


def is_vector_y(slot: ParameterSlot) -> bool:
    return slot in _VECTOR_Y


def is_vector(slot: ParameterSlot) -> bool:
    return slot in VECTOR_PAIRS or slot in _VECTOR_Y


def paired_slot(slot: ParameterSlot) -> Optional[ParameterSlot]:
    """Other component of a vector pair, or None for scalar slots."""
    if slot in VECTOR_PAIRS:
        return VECTOR_PAIRS[slot]
    return _VECTOR_Y.get(slot)


def is_circular(slot: ParameterSlot) -> bool:
    return slot in CIRCULAR_SLOTS


# ============================================================================
# Record -> slot lookup
# ============================================================================

# Multi-level parameters: surface slot followed by the 850/700/500/300 slots
_LEVELLED: Dict[DataType, Tuple[ParameterSlot, ...]] = {
    DataType.WIND_VX: (
        ParameterSlot.WIND_VX, ParameterSlot.WIND_VX850, ParameterSlot.WIND_VX700,
        ParameterSlot.WIND_VX500, ParameterSlot.WIND_VX300,
    ),
    DataType.WIND_VY: (
        ParameterSlot.WIND_VY, ParameterSlot.WIND_VY850, ParameterSlot.WIND_VY700,
        ParameterSlot.WIND_VY500, ParameterSlot.WIND_VY300,
    ),
    DataType.TEMP: (
        ParameterSlot.AIR_TEMP, ParameterSlot.AIR_TEMP850, ParameterSlot.AIR_TEMP700,
        ParameterSlot.AIR_TEMP500, ParameterSlot.AIR_TEMP300,
    ),
    DataType.HUMID_REL: (
        ParameterSlot.HUMID_RE, ParameterSlot.HUMID_RE850, ParameterSlot.HUMID_RE700,
        ParameterSlot.HUMID_RE500, ParameterSlot.HUMID_RE300,
    ),
    DataType.GEOPOT_HGT: (
        ParameterSlot.GEOP_HGT, ParameterSlot.GEOP_HGT850, ParameterSlot.GEOP_HGT700,
        ParameterSlot.GEOP_HGT500, ParameterSlot.GEOP_HGT300,
    ),
}
# Polar wind lands in the U/V slots and is converted after precedence
_LEVELLED[DataType.WIND_DIR] = _LEVELLED[DataType.WIND_VX]
_LEVELLED[DataType.WIND_SPEED] = _LEVELLED[DataType.WIND_VY]

_SINGLE_LEVEL: Dict[DataType, ParameterSlot] = {
    DataType.WIND_GUST: ParameterSlot.WIND_GUST,
    DataType.PRESSURE: ParameterSlot.PRESSURE,
    DataType.WAVE_HEIGHT_SIG: ParameterSlot.HTSIGW,
    DataType.WAVE_HEIGHT_WIND: ParameterSlot.HTSIGW,
    DataType.WAVE_DIR_SIG: ParameterSlot.WVDIR,
    DataType.WAVE_DIR_WIND: ParameterSlot.WVDIR,
    DataType.WAVE_PERIOD_SIG: ParameterSlot.WVPER,
    DataType.WAVE_PERIOD_WIND: ParameterSlot.WVPER,
    DataType.CURRENT_VX: ParameterSlot.SEACURRENT_VX,
    DataType.CURRENT_DIR: ParameterSlot.SEACURRENT_VX,
    DataType.CURRENT_VY: ParameterSlot.SEACURRENT_VY,
    DataType.CURRENT_SPEED: ParameterSlot.SEACURRENT_VY,
    DataType.PRECIP_RATE: ParameterSlot.PRECIP_TOT,
    DataType.PRECIP_TOT: ParameterSlot.PRECIP_TOT,
    DataType.CLOUD_TOT: ParameterSlot.CLOUD_TOT,
    DataType.WATER_TEMP: ParameterSlot.SEA_TEMP,
    DataType.CAPE: ParameterSlot.CAPE,
    DataType.COMP_REFL: ParameterSlot.COMP_REFL,
}

POLAR_TYPES = frozenset({
    DataType.WIND_DIR, DataType.WIND_SPEED,
    DataType.CURRENT_DIR, DataType.CURRENT_SPEED,
})
SIGNIFICANT_WAVE_TYPES = frozenset({
    DataType.WAVE_HEIGHT_SIG, DataType.WAVE_DIR_SIG, DataType.WAVE_PERIOD_SIG,
})


def slot_for(data_type: DataType, level_type: LevelType, level_value: int = 0) -> Optional[ParameterSlot]:
    """
    Map a record's (type, level) to its ParameterSlot.

    Multi-level parameters go to the surface slot unless they sit on one of
    the tracked isobaric levels; other isobaric levels are dropped.
    Single-level parameters are dropped when they sit on an isobaric level.

    Returns:
        The slot, or None when the record has no place in a Snapshot.
    """
    if data_type in _LEVELLED:
        slots = _LEVELLED[data_type]
        if level_type != LevelType.ISOBARIC:
            return slots[0]
        if level_value in PRESSURE_LEVELS:
            return slots[1 + PRESSURE_LEVELS.index(level_value)]
        return None

    slot = _SINGLE_LEVEL.get(data_type)
    if slot is None or level_type == LevelType.ISOBARIC:
        return None
    return slot
