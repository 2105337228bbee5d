"""
Station record handling for fkbeam.

Provides functionality to:
- Attach station coordinates to stream traces (dict or obspy Inventory)
- Extract per-station metadata as a table
- Extract the sample matrix from a stream
"""

import logging
import numpy as np
import pandas as pd

from obspy import Inventory
from obspy.core.util import AttribDict

logger = logging.getLogger(__name__)


def get_station_coords_dict(inventory):
    """
    Get station coordinates as a dictionary.

    Parameters
    ----------
    inventory : obspy.Inventory
        Station inventory

    Returns
    -------
    coords : dict
        Dictionary with station codes as keys and (lat, lon, elev, depth)
        tuples as values. Station-level metadata has no burial depth, so
        depth is 0.
    """
    coords = {}

    for net in inventory:
        for sta in net:
            coords[sta.code] = (sta.latitude, sta.longitude, sta.elevation, 0.0)

    return coords


def _coords_from_tuple(values):
    values = tuple(values)
    if len(values) not in (3, 4):
        raise ValueError(f"expected (lat, lon, elev[, depth]), got {values!r}")
    lat, lon, elev = values[:3]
    depth = values[3] if len(values) == 4 else 0.0
    return AttribDict({
        'latitude': float(lat),
        'longitude': float(lon),
        'elevation': float(elev),
        'local_depth': float(depth),
    })


def attach_coordinates(stream, coords):
    """
    Set `tr.stats.coordinates` on every trace of a stream.

    Parameters
    ----------
    stream : obspy.Stream
        Stream of waveforms (modified in place)
    coords : dict or obspy.Inventory
        Either a dict mapping station codes to (lat, lon, elev[, depth])
        tuples, or an inventory. Channel-level inventory metadata is used
        when available, station-level otherwise.

    Returns
    -------
    stream : obspy.Stream
        The same stream
    unmatched : list
        Trace ids no coordinates were found for
    """
    unmatched = []

    if isinstance(coords, Inventory):
        station_coords = get_station_coords_dict(coords)
        for tr in stream:
            try:
                c = coords.get_coordinates(tr.id, tr.stats.starttime)
                tr.stats.coordinates = AttribDict({
                    'latitude': c['latitude'],
                    'longitude': c['longitude'],
                    'elevation': c['elevation'],
                    'local_depth': c.get('local_depth', 0.0),
                })
            except Exception:
                if tr.stats.station in station_coords:
                    tr.stats.coordinates = _coords_from_tuple(station_coords[tr.stats.station])
                else:
                    unmatched.append(tr.id)
    else:
        for tr in stream:
            if tr.stats.station in coords:
                tr.stats.coordinates = _coords_from_tuple(coords[tr.stats.station])
            else:
                unmatched.append(tr.id)

    if unmatched:
        logger.warning(f"No coordinates for: {unmatched}")

    return stream, unmatched


def station_table(stream):
    """
    Extract per-station metadata from a stream.

    Parameters
    ----------
    stream : obspy.Stream
        Stream whose traces carry `stats.coordinates`

    Returns
    -------
    df : pandas.DataFrame
        One row per trace, in stream order, with columns: network, code,
        latitude, longitude, elevation, depth
    """
    stations = []

    for tr in stream:
        c = tr.stats.coordinates
        stations.append({
            'network': tr.stats.network,
            'code': tr.stats.station,
            'latitude': float(c['latitude']),
            'longitude': float(c['longitude']),
            'elevation': float(c.get('elevation', 0.0)),
            'depth': float(c.get('local_depth', 0.0)),
        })

    df = pd.DataFrame(stations, columns=['network', 'code', 'latitude', 'longitude',
                                         'elevation', 'depth'])
    return df


def stream_to_matrix(stream):
    """
    Stack trace samples into a (n_stations, n_samples) float64 array.

    All traces must have the same number of samples.
    """
    npts = {len(tr.data) for tr in stream}
    if len(npts) != 1:
        raise ValueError(f"traces have differing sample counts: {sorted(npts)}")
    return np.vstack([np.asarray(tr.data, dtype=np.float64) for tr in stream])
