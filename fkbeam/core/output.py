"""
FK result records.

Converts beam responses to decibels, normalizes them to a 0 dB peak and
packages them with the station and grid metadata. Also provides peak
picking and collapsing a frequency-slowness volume into a single map.
"""

from dataclasses import dataclass, replace
import logging
from typing import Any, Optional

import numpy as np
import pandas as pd
from obspy import UTCDateTime

from .geometry import slowness_to_backazimuth, backazimuth_to_slowness

logger = logging.getLogger(__name__)


def power_to_db(response, npairs, centerless):
    """
    Beam power in dB.

    Centerless geometries (coarray, full) keep only the real part of the
    response: 10*log10(|Re(R)|/npairs). Centered geometries use the squared
    magnitude: 10*log10(|R|^2/npairs).
    """
    with np.errstate(divide='ignore'):
        if centerless:
            return 10.0 * np.log10(np.abs(np.real(response)) / npairs)
        return 10.0 * np.log10(np.abs(response) ** 2 / npairs)


def normalize_db(response):
    """Shift a dB array so its maximum is 0 dB; returns (normalized, normdb).

    A response without any finite value (no power anywhere) is returned
    unshifted with normdb = -inf.
    """
    normdb = float(np.max(response))
    if not np.isfinite(normdb):
        logger.warning("Beam response has no finite power, not normalizing")
        return response, normdb
    return response - normdb, normdb


@dataclass(frozen=True, eq=False)
class FKVolume:
    """
    Frequency-slowness response for one frequency band.

    Attributes
    ----------
    response : ndarray
        dB, 0 at the peak. Shape (ny, nx, nfreq), or (ny, nx) for a map
    stations : pandas.DataFrame
        network, code, latitude, longitude, elevation, depth per station
    starttime, endtime : UTCDateTime
        Common record start/end time
    npts : int
    delta : float
        Sample interval in seconds
    x : ndarray
        East slowness (s/deg), or backazimuth (deg) when polar
    y : ndarray
        North slowness (s/deg), or radial slowness (s/deg) when polar
    freqs : ndarray
        Frequencies (Hz) of the response slices
    polar : bool
    center : str or [lat, lon]
        'coarray', 'full', 'center' or the user array center
    normdb : float
        dB value that 0 dB corresponds to
    volume : bool
        False for a frequency-collapsed map
    frange : tuple
        Requested (low, high) band in Hz
    """
    response: np.ndarray
    stations: pd.DataFrame
    starttime: UTCDateTime
    endtime: UTCDateTime
    npts: int
    delta: float
    x: np.ndarray
    y: np.ndarray
    freqs: np.ndarray
    polar: bool
    center: Any
    normdb: float
    volume: bool = True
    frange: Optional[tuple] = None

    @property
    def nsta(self):
        return len(self.stations)

    @property
    def latitudes(self):
        return self.stations['latitude'].to_numpy()

    @property
    def longitudes(self):
        return self.stations['longitude'].to_numpy()

    @property
    def elevations(self):
        return self.stations['elevation'].to_numpy()

    @property
    def depths(self):
        return self.stations['depth'].to_numpy()

    @property
    def empty(self):
        return self.volume and self.response.shape[-1] == 0


def _cell_slowness(vol, row, col):
    """East/north slowness (s/deg), magnitude and backazimuth of a grid cell."""
    if vol.polar:
        smag, baz = float(vol.y[row]), float(vol.x[col])
        sx, sy = backazimuth_to_slowness(smag, baz)
        return float(sx), float(sy), smag, baz
    sx, sy = float(vol.x[col]), float(vol.y[row])
    smag, baz = slowness_to_backazimuth(sx, sy)
    return sx, sy, smag, baz


def fk_peak(vol):
    """
    Locate the strongest cell of a volume or map.

    Returns
    -------
    peak : dict
        sx, sy, slowness (s/deg), backazimuth (deg), frequency (Hz, None
        for maps) and power (dB relative to the normalization)
    """
    if vol.response.size == 0:
        raise ValueError("cannot pick a peak in an empty response")

    idx = np.unravel_index(np.argmax(vol.response), vol.response.shape)
    row, col = idx[0], idx[1]
    sx, sy, smag, baz = _cell_slowness(vol, row, col)

    frequency = None
    if vol.response.ndim == 3:
        frequency = float(vol.freqs[idx[2]])

    return {
        'sx': sx,
        'sy': sy,
        'slowness': smag,
        'backazimuth': baz,
        'frequency': frequency,
        'power': float(vol.response[idx]),
    }


def fkvol2map(vol):
    """
    Collapse a frequency-slowness volume into a slowness map.

    Power is averaged in linear units across frequencies, converted back
    to dB and renormalized to a 0 dB peak. `normdb` of the map is relative
    to the absolute dB scale of the volume.
    """
    if not vol.volume:
        return vol
    if vol.empty:
        raise ValueError("cannot collapse a volume without frequencies")

    power = np.mean(10.0 ** (vol.response / 10.0), axis=2)
    with np.errstate(divide='ignore'):
        response = 10.0 * np.log10(power)
    response, normdb = normalize_db(response)

    logger.debug(f"Collapsed {vol.response.shape[2]} frequencies into a "
                 f"{response.shape} map")
    return replace(vol, response=response, normdb=vol.normdb + normdb, volume=False)
