"""
I/O helpers for station records.

Provides a unified interface for preparing obspy streams for FK analysis:
- Attaching station coordinates from a dict or an obspy Inventory
- Extracting station metadata and sample matrices
"""

from .records import attach_coordinates, station_table, stream_to_matrix, get_station_coords_dict

__all__ = [
    'attach_coordinates',
    'station_table',
    'stream_to_matrix',
    'get_station_coords_dict',
]
