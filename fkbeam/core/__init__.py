"""
Core algorithms for frequency-wavenumber array analysis.

This module provides:
- Parameter and record validation
- Array geometry (pairwise and center-relative position vectors)
- Slowness grids and projection matrices
- Spectral preprocessing (zero-padded FFT, whitening, cross spectra)
- FK volume computation and result records
"""

from .validation import (
    ConfigurationError,
    InputValidationError,
    NyquistViolationError,
    EmptyBandWarning,
    CenterMode,
    Center,
    FKConfig,
    ValidatedInput,
    parse_center,
    validate_config,
    load_config,
    validate,
)
from .geometry import pair_geometry, position_vectors, array_center, slowness_to_backazimuth
from .grid import SlownessGrid, make_grid, projection_matrix
from .fk import fk_volume, fk_volume_from_input, array_response
from .output import FKVolume, fk_peak, fkvol2map

__all__ = [
    'ConfigurationError',
    'InputValidationError',
    'NyquistViolationError',
    'EmptyBandWarning',
    'CenterMode',
    'Center',
    'FKConfig',
    'ValidatedInput',
    'parse_center',
    'validate_config',
    'load_config',
    'validate',
    'pair_geometry',
    'position_vectors',
    'array_center',
    'slowness_to_backazimuth',
    'SlownessGrid',
    'make_grid',
    'projection_matrix',
    'fk_volume',
    'fk_volume_from_input',
    'array_response',
    'FKVolume',
    'fk_peak',
    'fkvol2map',
]
