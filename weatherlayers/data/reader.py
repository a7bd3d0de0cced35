"""
Forecast file readers.

A reader turns a group of file paths into a flat stream of single-parameter
Grids. Byte-level GRIB decoding is delegated to pygrib; InMemoryReader
serves grids that were already built (tests, programmatic loading).
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

import numpy as np

from weatherlayers.data.grid import Grid, ensure_utc
from weatherlayers.data.parameters import (
    TIME_RANGE_AVERAGE,
    DataType,
    LevelType,
    SourceModel,
)
from weatherlayers.exceptions import SourceLoadError

logger = logging.getLogger(__name__)


class GribReader:
    """Base reader contract."""

    def parse(self, paths: Sequence[str]) -> Iterator[Grid]:
        """Yield every record in ``paths``. Raises SourceLoadError on unreadable input."""
        raise NotImplementedError

    def list_distinct_valid_times(self, paths: Sequence[str]) -> List[datetime]:
        return sorted({grid.valid_time for grid in self.parse(paths)})

    @staticmethod
    def check_exists(paths: Sequence[str]) -> None:
        missing = [p for p in paths if not os.path.exists(p)]
        if missing:
            raise SourceLoadError(f"Files don't exist: {', '.join(missing)}")


class InMemoryReader(GribReader):
    """Reader backed by a mapping of path -> list of Grids."""

    def __init__(self, files: Optional[Mapping[str, Iterable[Grid]]] = None):
        self._files: Dict[str, List[Grid]] = {}
        for path, grids in (files or {}).items():
            self.add_file(path, grids)

    def add_file(self, path: str, grids: Iterable[Grid]) -> None:
        self._files[str(path)] = list(grids)

    def exists(self, path: str) -> bool:
        return str(path) in self._files

    def parse(self, paths: Sequence[str]) -> Iterator[Grid]:
        missing = [p for p in paths if str(p) not in self._files]
        if missing:
            raise SourceLoadError(f"Files don't exist: {', '.join(missing)}")
        for path in paths:
            for grid in self._files[str(path)]:
                if grid.file_name is None:
                    grid.file_name = str(path)
                yield grid


# ============================================================================
# pygrib adapter
# ============================================================================

SHORT_NAME_TYPES: Dict[str, DataType] = {
    "10u": DataType.WIND_VX, "u": DataType.WIND_VX, "100u": DataType.WIND_VX,
    "10v": DataType.WIND_VY, "v": DataType.WIND_VY, "100v": DataType.WIND_VY,
    "wdir": DataType.WIND_DIR, "10wdir": DataType.WIND_DIR,
    "ws": DataType.WIND_SPEED, "10si": DataType.WIND_SPEED, "wind": DataType.WIND_SPEED,
    "gust": DataType.WIND_GUST, "i10fg": DataType.WIND_GUST, "10fg": DataType.WIND_GUST,
    "prmsl": DataType.PRESSURE, "msl": DataType.PRESSURE, "sp": DataType.PRESSURE,
    "pres": DataType.PRESSURE,
    "swh": DataType.WAVE_HEIGHT_SIG, "htsgw": DataType.WAVE_HEIGHT_SIG,
    "shww": DataType.WAVE_HEIGHT_WIND, "wvhgt": DataType.WAVE_HEIGHT_WIND,
    "mwd": DataType.WAVE_DIR_SIG, "dirpw": DataType.WAVE_DIR_SIG,
    "mdww": DataType.WAVE_DIR_WIND, "wvdir": DataType.WAVE_DIR_WIND,
    "mwp": DataType.WAVE_PERIOD_SIG, "perpw": DataType.WAVE_PERIOD_SIG,
    "mpww": DataType.WAVE_PERIOD_WIND, "wvper": DataType.WAVE_PERIOD_WIND,
    "ucurr": DataType.CURRENT_VX, "uogrd": DataType.CURRENT_VX,
    "vcurr": DataType.CURRENT_VY, "vogrd": DataType.CURRENT_VY,
    "dirc": DataType.CURRENT_DIR, "spc": DataType.CURRENT_SPEED,
    "prate": DataType.PRECIP_RATE,
    "tp": DataType.PRECIP_TOT, "apcp": DataType.PRECIP_TOT,
    "tcc": DataType.CLOUD_TOT, "tcdc": DataType.CLOUD_TOT,
    "2t": DataType.TEMP, "t": DataType.TEMP, "tmp": DataType.TEMP,
    "sst": DataType.WATER_TEMP, "wtmp": DataType.WATER_TEMP,
    "cape": DataType.CAPE,
    "refc": DataType.COMP_REFL,
    "r": DataType.HUMID_REL, "2r": DataType.HUMID_REL, "rh": DataType.HUMID_REL,
    "gh": DataType.GEOPOT_HGT, "hgt": DataType.GEOPOT_HGT,
}

LEVEL_TYPES: Dict[str, LevelType] = {
    "surface": LevelType.SURFACE,
    "heightAboveGround": LevelType.ABOVE_GROUND,
    "meanSea": LevelType.MSL,
    "isobaricInhPa": LevelType.ISOBARIC,
    "entireAtmosphere": LevelType.ATMOSPHERE,
    "atmosphere": LevelType.ATMOSPHERE,
    "atmosphereSingleLayer": LevelType.ATMOSPHERE,
}

CENTRE_MODELS: Dict[str, SourceModel] = {
    "ecmf": SourceModel.ECMWF,
    "kwbc": SourceModel.GFS,
    "fnmo": SourceModel.FNMOC_WW3_GLB,
    "enmi": SourceModel.METNO,
    "ehdb": SourceModel.KNMI_HARMONIE_AROME,
}

# Substrings of the file name that identify the producing model
FILE_NAME_MODELS = (
    ("hrrr", SourceModel.HRRR),
    ("era5", SourceModel.ERA5),
    ("harmonie", SourceModel.KNMI_HARMONIE_AROME),
    ("hirlam", SourceModel.KNMI_HIRLAM),
    ("rtofs", SourceModel.NOAA_RTOFS),
    ("ww3_med", SourceModel.FNMOC_WW3_MED),
    ("fnmoc", SourceModel.FNMOC_WW3_GLB),
    ("ww3", SourceModel.NOAA_NCEP_WW3),
    ("nam", SourceModel.NAM),
    ("metno", SourceModel.METNO),
    ("ecmwf", SourceModel.ECMWF),
    ("gfs", SourceModel.GFS),
)


def model_from_file_name(path: str) -> Optional[SourceModel]:
    name = Path(path).name.lower()
    for token, model in FILE_NAME_MODELS:
        if token in name:
            return model
    return None


class PygribReader(GribReader):
    """
    GRIB1/GRIB2 reader built on pygrib.

    Messages whose short name is not in SHORT_NAME_TYPES are skipped.
    The producing model comes from ``model`` when given, then from the file
    name, then from the originating centre.
    """

    def __init__(self, model: Optional[SourceModel] = None):
        self.model = model

    def parse(self, paths: Sequence[str]) -> Iterator[Grid]:
        try:
            import pygrib
        except ImportError:
            raise SourceLoadError("pygrib not installed, GRIB files can't be read")

        self.check_exists(paths)
        for path in paths:
            try:
                grbs = pygrib.open(str(path))
            except (OSError, RuntimeError) as e:
                raise SourceLoadError(f"File {path} can't be read: {e}")
            try:
                for msg in grbs:
                    grid = self._to_grid(msg, str(path))
                    if grid is not None:
                        yield grid
            finally:
                grbs.close()

    def _to_grid(self, msg, path: str) -> Optional[Grid]:
        short_name = str(getattr(msg, "shortName", "")).lower()
        data_type = SHORT_NAME_TYPES.get(short_name)
        if data_type is None:
            logger.debug(f"Skipping unsupported GRIB message {short_name!r} in {path}")
            return None

        level_type = LEVEL_TYPES.get(str(getattr(msg, "typeOfLevel", "")), LevelType.UNKNOWN)
        level_value = int(getattr(msg, "level", 0) or 0)

        values = msg.values
        if np.ma.isMaskedArray(values):
            values = values.filled(np.nan)
        lats_2d, lons_2d = msg.latlons()
        lats = np.asarray(lats_2d[:, 0], dtype=np.float64)
        lons = np.asarray(lons_2d[0, :], dtype=np.float64)
        values = np.asarray(values, dtype=np.float64)

        if lons.size > 1 and lons[0] > lons[-1]:
            order = np.argsort(lons)
            lons = lons[order]
            values = values[:, order]

        step_type = str(getattr(msg, "stepType", ""))
        time_range = TIME_RANGE_AVERAGE if step_type == "avg" else 0

        return Grid(
            data_type=data_type,
            lats=lats,
            lons=lons,
            values=values,
            valid_time=ensure_utc(msg.validDate),
            level_type=level_type,
            level_value=level_value,
            reference_time=ensure_utc(msg.analDate),
            source_model=self._model_for(msg, path),
            time_range=time_range,
            file_name=path,
        )

    def _model_for(self, msg, path: str) -> SourceModel:
        if self.model is not None:
            return self.model
        by_name = model_from_file_name(path)
        if by_name is not None:
            return by_name
        centre = str(getattr(msg, "centre", "")).lower()
        return CENTRE_MODELS.get(centre, SourceModel.OTHER)
