"""
Input validation for FK analysis.

All parameter and record checks run here, before any numerical work, and
produce a `ValidatedInput` that the beamforming engine consumes. Errors:

- ConfigurationError: bad grid/frequency/centering parameters
- InputValidationError: too few or inconsistent station records
- NyquistViolationError: a frequency band reaches the Nyquist frequency
"""

import enum
import json
import logging
import numbers
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from obspy import UTCDateTime

from ..io.records import station_table, stream_to_matrix

logger = logging.getLogger(__name__)


class ConfigurationError(ValueError):
    """Malformed grid, frequency or centering parameters."""


class InputValidationError(ValueError):
    """Station records are insufficient or mutually inconsistent."""


class NyquistViolationError(ValueError):
    """A requested frequency is at or above the Nyquist frequency."""


class EmptyBandWarning(UserWarning):
    """A frequency band contains no FFT bins."""


class CenterMode(enum.Enum):
    COARRAY = 'coarray'
    FULL = 'full'
    CENTER = 'center'
    USER = 'user'


@dataclass(frozen=True)
class Center:
    """Array centering strategy.

    Only the USER mode carries a reference point.
    """
    mode: CenterMode
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @property
    def centerless(self):
        return self.mode in (CenterMode.COARRAY, CenterMode.FULL)

    def describe(self):
        if self.mode is CenterMode.USER:
            return [self.latitude, self.longitude]
        return self.mode.value


def parse_center(value) -> Center:
    """
    Resolve a user centering value into a `Center`.

    Parameters
    ----------
    value : str, Center or sequence
        'coarray', 'full', 'center' (case-insensitive) or [lat, lon]

    Returns
    -------
    center : Center
    """
    if isinstance(value, Center):
        return value
    if value is None:
        return Center(CenterMode.COARRAY)

    if isinstance(value, str):
        key = value.strip().lower()
        if key in ('coarray', 'full', 'center'):
            return Center(CenterMode(key))
        raise ConfigurationError(
            f"center must be [lat, lon], 'center', 'coarray' or 'full', got '{value}'")

    try:
        latlon = np.asarray(value)
    except Exception as e:
        raise ConfigurationError(f"could not interpret center {value!r}: {e}") from e

    if latlon.size != 2 or not np.isrealobj(latlon) or latlon.dtype.kind not in 'iuf':
        raise ConfigurationError(
            f"center must be [lat, lon], 'center', 'coarray' or 'full', got {value!r}")

    lat, lon = (float(v) for v in latlon.ravel())
    if not (np.isfinite(lat) and np.isfinite(lon)):
        raise ConfigurationError("center latitude/longitude must be finite")
    if not -90.0 <= lat <= 90.0:
        raise ConfigurationError(f"center latitude {lat} is outside [-90, 90]")

    return Center(CenterMode.USER, latitude=lat, longitude=lon)


def _is_integer(value):
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


def _is_whole(value):
    if _is_integer(value):
        return True
    # 41.0 (e.g. from JSON) counts as an integer
    return (isinstance(value, numbers.Real) and not isinstance(value, bool)
            and np.isfinite(value) and float(value).is_integer())


def _check_smax(smax):
    if (isinstance(smax, bool) or not isinstance(smax, numbers.Real)
            or not np.isfinite(smax) or smax <= 0):
        raise ConfigurationError(f"smax must be a positive real scalar in s/deg, got {smax!r}")
    return float(smax)


def _check_spts(spts):
    values = list(spts) if isinstance(spts, (list, tuple, np.ndarray)) else [spts]
    values = [v.item() if isinstance(v, np.generic) else v for v in values]

    if len(values) not in (1, 2):
        raise ConfigurationError(f"spts must be an integer >2 or a pair of them, got {spts!r}")
    for v in values:
        if not _is_whole(v) or v <= 2:
            raise ConfigurationError(f"spts values must be integers >2, got {spts!r}")

    return tuple(int(v) for v in values)


def _check_frng(frng):
    try:
        bands = np.atleast_2d(np.asarray(frng, dtype=float))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"frng must be an Nx2 array of [FREQLOW FREQHIGH] in Hz: {e}") from e

    if bands.ndim != 2 or bands.shape[1] != 2 or bands.shape[0] == 0:
        raise ConfigurationError(
            f"frng must be an Nx2 array of [FREQLOW FREQHIGH] in Hz, got shape {bands.shape}")
    if not np.all(np.isfinite(bands)) or np.any(bands <= 0):
        raise ConfigurationError("frng frequencies must be positive and finite")

    return bands


def _check_polar(polar):
    if isinstance(polar, (bool, np.bool_)):
        return bool(polar)
    if _is_integer(polar) and polar in (0, 1):
        return bool(polar)
    raise ConfigurationError(f"polar must be True or False, got {polar!r}")


@dataclass(frozen=True, eq=False)
class FKConfig:
    """Validated FK analysis parameters."""
    smax: float
    spts: Tuple[int, ...]
    frng: np.ndarray
    polar: bool = False
    center: Center = field(default_factory=lambda: Center(CenterMode.COARRAY))

    @property
    def nbands(self):
        return self.frng.shape[0]

    @property
    def bazpts(self):
        return self.spts[1] if len(self.spts) == 2 else 181

    @classmethod
    def from_dict(cls, cfg):
        """Build a config from a plain dict (e.g. loaded from JSON)."""
        missing = [k for k in ('smax', 'spts', 'frng') if k not in cfg]
        if missing:
            raise ConfigurationError(f"config is missing required keys: {missing}")
        return validate_config(cfg['smax'], cfg['spts'], cfg['frng'],
                               polar=cfg.get('polar', False),
                               center=cfg.get('center', 'coarray'))


def validate_config(smax, spts, frng, polar=False, center='coarray') -> FKConfig:
    """Check FK parameters for domain errors and return an `FKConfig`."""
    smax = _check_smax(smax)
    spts = _check_spts(spts)
    bands = _check_frng(frng)
    polar = _check_polar(polar)
    center = parse_center(center)

    if len(spts) == 2 and not polar:
        logger.debug(f"Ignoring backazimuth count {spts[1]} for cartesian grid")
        spts = spts[:1]

    return FKConfig(smax=smax, spts=spts, frng=bands, polar=polar, center=center)


def load_config(path) -> FKConfig:
    """Read FK parameters from a JSON file."""
    with open(path) as fh:
        cfg = json.load(fh)
    logger.debug(f"Loaded FK config from {path}")
    return FKConfig.from_dict(cfg)


@dataclass(frozen=True, eq=False)
class ValidatedInput:
    """Records and parameters that passed every check.

    `data` is the (nsta, npts) sample matrix in station order of `stations`.
    """
    config: FKConfig
    stations: pd.DataFrame
    data: np.ndarray
    delta: float
    npts: int
    starttime: UTCDateTime
    endtime: UTCDateTime

    @property
    def nsta(self):
        return len(self.stations)

    @property
    def nyquist(self):
        return 1.0 / (2.0 * self.delta)


def _check_records(stream):
    if stream is None or len(stream) < 2:
        n = 0 if stream is None else len(stream)
        raise InputValidationError(f"FK analysis needs 2+ records, got {n}")

    for tr in stream:
        if np.ma.is_masked(tr.data):
            raise InputValidationError(f"{tr.id}: record contains gaps (masked samples)")
        if not np.any(tr.data):
            raise InputValidationError(f"{tr.id}: record is all zeros")

    npts = {int(tr.stats.npts) for tr in stream}
    if len(npts) != 1:
        raise InputValidationError(f"records must have equal npts, got {sorted(npts)}")

    deltas = {float(tr.stats.delta) for tr in stream}
    if len(deltas) != 1:
        raise InputValidationError(f"records must have equal sample interval, got {sorted(deltas)}")

    t0 = stream[0].stats.starttime
    for tr in stream[1:]:
        if tr.stats.starttime != t0:
            raise InputValidationError(
                f"records must have equal start time: {tr.id} starts at "
                f"{tr.stats.starttime}, {stream[0].id} at {t0}")

    try:
        stations = station_table(stream)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise InputValidationError(f"records must carry station coordinates: {e}") from e

    latlon = stations[['latitude', 'longitude']].to_numpy(dtype=float)
    if not np.all(np.isfinite(latlon)):
        bad = stations.loc[~np.isfinite(latlon).all(axis=1), 'code'].tolist()
        raise InputValidationError(f"station latitude/longitude not set for {bad}")

    return stations


def validate(stream, smax, spts, frng, polar=False, center='coarray') -> ValidatedInput:
    """
    Validate FK parameters and records together.

    Parameters
    ----------
    stream : obspy.Stream
        Synchronised records with `stats.coordinates` set on every trace
    smax : float
        Maximum slowness in s/deg
    spts : int or (int, int)
        Grid points per axis, or (radial, backazimuth) points for polar grids
    frng : array-like
        [FREQLOW FREQHIGH] or Nx2 array of bands in Hz
    polar : bool
        Sample slowness space in polar coordinates
    center : str or [lat, lon]
        'coarray' (default), 'full', 'center' or an explicit array center

    Returns
    -------
    validated : ValidatedInput

    Raises
    ------
    ConfigurationError, InputValidationError, NyquistViolationError
    """
    config = validate_config(smax, spts, frng, polar=polar, center=center)
    stations = _check_records(stream)

    first = stream[0].stats
    delta = float(first.delta)
    fnyq = 1.0 / (2.0 * delta)
    if np.any(config.frng >= fnyq):
        raise NyquistViolationError(
            f"frng frequencies must be under the nyquist frequency ({fnyq:g} Hz)")

    validated = ValidatedInput(
        config=config,
        stations=stations,
        data=stream_to_matrix(stream),
        delta=delta,
        npts=int(first.npts),
        starttime=first.starttime,
        endtime=first.endtime,
    )
    logger.debug(f"Validated {validated.nsta} records: npts={validated.npts} "
                 f"delta={delta:g}s, {config.nbands} band(s)")
    return validated
