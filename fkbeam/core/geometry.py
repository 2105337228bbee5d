"""
Array geometry module for fkbeam.

Provides the relative station positions used by FK analysis:
- Station pairings for the centerless (coarray/full) methods
- Array center estimation
- Pairwise/center-relative distance and azimuth (WGS84 inverse geodesic)
- Position vectors in local east/north kilometers
- Slowness <-> backazimuth conversions
"""

import logging
import numpy as np
from obspy.geodetics import gps2dist_azimuth

from .validation import CenterMode

logger = logging.getLogger(__name__)


def wrap_azimuth(az):
    """Wrap azimuths in degrees into [0, 360)."""
    az = np.mod(np.asarray(az, dtype=float), 360.0)
    # mod of tiny negative values rounds up to exactly 360
    return np.where(az >= 360.0, 0.0, az)


def pair_indices(nsta, mode):
    """
    Station index pairs for a centerless geometry.

    Parameters
    ----------
    nsta : int
        Number of stations
    mode : CenterMode
        COARRAY for unique pairs i < j, FULL for every ordered pair
        including self pairs

    Returns
    -------
    i, j : ndarray
        Index arrays; pair k is station i[k] to station j[k]
    """
    if mode is CenterMode.COARRAY:
        i, j = np.triu_indices(nsta, k=1)
    elif mode is CenterMode.FULL:
        i, j = np.indices((nsta, nsta))
        i, j = i.ravel(), j.ravel()
    else:
        raise ValueError(f"pair_indices needs a centerless mode, got {mode}")
    return i, j


def array_center(latitudes, longitudes):
    """
    Geographic center of an array.

    Station positions are averaged as unit vectors on the sphere so the
    result is well behaved across the dateline and near the poles.

    Returns
    -------
    center_lat, center_lon : float
        Degrees
    """
    lat = np.radians(np.asarray(latitudes, dtype=float))
    lon = np.radians(np.asarray(longitudes, dtype=float))

    x = np.mean(np.cos(lat) * np.cos(lon))
    y = np.mean(np.cos(lat) * np.sin(lon))
    z = np.mean(np.sin(lat))

    center_lat = np.degrees(np.arctan2(z, np.hypot(x, y)))
    center_lon = np.degrees(np.arctan2(y, x))
    return float(center_lat), float(center_lon)


def _dist_az(lat1, lon1, lat2, lon2):
    """Distance (km), azimuth 1->2 and azimuth 2->1 in degrees."""
    dist_m, az, baz = gps2dist_azimuth(lat1, lon1, lat2, lon2)
    if dist_m == 0.0:
        az = baz = 0.0
    return dist_m / 1000.0, az, baz


def pair_geometry(latitudes, longitudes, center):
    """
    Distance and azimuth for the position vectors of a centering strategy.

    Parameters
    ----------
    latitudes, longitudes : array-like
        Station coordinates in degrees
    center : Center
        Centering strategy

    Returns
    -------
    geometry : dict
        Dictionary containing:
        - 'i', 'j': station index arrays (j is None for centered modes)
        - 'distance': km
        - 'azimuth': degrees in [0, 360); from station i toward station j,
          or from each station toward the array center
        - 'center_lat', 'center_lon': reference point (None if centerless)
    """
    lats = np.asarray(latitudes, dtype=float)
    lons = np.asarray(longitudes, dtype=float)
    nsta = len(lats)

    if center.centerless:
        i, j = pair_indices(nsta, center.mode)
        # one inverse per unordered pair; j->i reuses the back azimuth
        solved = {}
        dist = np.zeros(len(i))
        az = np.zeros(len(i))
        for k, (a, b) in enumerate(zip(i, j)):
            lo, hi = min(a, b), max(a, b)
            if (lo, hi) not in solved:
                solved[(lo, hi)] = _dist_az(lats[lo], lons[lo], lats[hi], lons[hi])
            d, az_lo_hi, az_hi_lo = solved[(lo, hi)]
            dist[k] = d
            az[k] = az_lo_hi if a == lo else az_hi_lo
        center_lat = center_lon = None
    else:
        if center.mode is CenterMode.CENTER:
            center_lat, center_lon = array_center(lats, lons)
        else:
            center_lat, center_lon = center.latitude, center.longitude
        i, j = np.arange(nsta), None
        dist = np.zeros(nsta)
        az = np.zeros(nsta)
        for k in range(nsta):
            dist[k], az[k], _ = _dist_az(lats[k], lons[k], center_lat, center_lon)

    logger.debug(f"{center.mode.value}: {len(dist)} position vectors from {nsta} stations")

    return {
        'i': i,
        'j': j,
        'distance': dist,
        'azimuth': wrap_azimuth(az),
        'center_lat': center_lat,
        'center_lon': center_lon,
    }


def position_vectors(distance, azimuth):
    """
    Convert distance/azimuth into east/north offsets.

    Returns
    -------
    r : ndarray
        Shape (2, n): row 0 is km east, row 1 is km north
    """
    az = np.radians(np.asarray(azimuth, dtype=float))
    d = np.asarray(distance, dtype=float)
    return np.vstack([d * np.sin(az), d * np.cos(az)])


def slowness_to_backazimuth(slowness_x, slowness_y):
    """
    Convert east/north slowness components to magnitude and backazimuth.

    Works on scalars or arrays; units of the magnitude follow the input.

    Returns
    -------
    slowness : float or ndarray
    backazimuth : float or ndarray
        Degrees in [0, 360), clockwise from North. 0 for zero slowness.
    """
    sx = np.asarray(slowness_x, dtype=float)
    sy = np.asarray(slowness_y, dtype=float)

    slowness = np.hypot(sx, sy)
    backazimuth = wrap_azimuth(np.degrees(np.arctan2(sx, sy)))

    if slowness.ndim == 0:
        return float(slowness), float(backazimuth)
    return slowness, backazimuth


def backazimuth_to_slowness(slowness, backazimuth):
    """Inverse of slowness_to_backazimuth, returns (slowness_x, slowness_y)."""
    baz = np.radians(np.asarray(backazimuth, dtype=float))
    s = np.asarray(slowness, dtype=float)
    return s * np.sin(baz), s * np.cos(baz)


def slowness_to_velocity_azimuth(slowness_x, slowness_y):
    """
    Convert slowness components (s/km) to velocity and back-azimuth.

    Returns
    -------
    velocity : float
        Apparent velocity in km/s (inf for zero slowness)
    backazimuth : float
        Back-azimuth in degrees (0-360, measured clockwise from North)
    """
    slowness, backazimuth = slowness_to_backazimuth(slowness_x, slowness_y)

    if np.ndim(slowness) == 0:
        velocity = np.inf if slowness == 0 else 1.0 / slowness
        return velocity, backazimuth

    with np.errstate(divide='ignore'):
        velocity = 1.0 / slowness
    return velocity, backazimuth
