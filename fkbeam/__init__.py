"""
fkbeam - Frequency-wavenumber beamforming for seismic arrays

Maps the energy crossing a seismic array into frequency-slowness space.
For each requested frequency band the records are transformed, whitened
and projected onto a grid of horizontal slownesses, giving a beam power
volume in dB normalized to its peak.

This package provides:
- Validation of FK parameters and synchronised station records
- Array geometry for coarray, full and centered strategies
- Cartesian and polar slowness grids
- FK volumes, peak picking and frequency-collapsed maps
- Helpers to attach station coordinates to obspy streams
"""

__version__ = "0.1.0"
__author__ = "fkbeam Development Team"

from . import io
from . import core
from .core import fk_volume, fk_peak, fkvol2map

__all__ = ['core', 'io', 'fk_volume', 'fk_peak', 'fkvol2map']
