"""Frequency-wavenumber beamforming (CPU with optional CuPy)

For every requested frequency band this module maps the energy crossing
the array into frequency-slowness space and returns one `FKVolume` per
band.

Design notes
- The slowness/position projection p = 2*pi*i*(s . r) is built once per
  call. Each frequency bin f only needs exp(f * p) @ cs, so the bins are
  computed independently and stacked along the last axis of the volume.
- Memory is dominated by the (grid points x pairs) steering matrix. With
  `chunk_size` set the steering matrix is formed for that many grid
  points at a time instead of all at once.
- CuPy is used when requested and importable; otherwise NumPy.
"""

import logging
import warnings
import numpy as np

try:
    import cupy as cp
    CUPY_AVAILABLE = True
except Exception:
    cp = None
    CUPY_AVAILABLE = False

from .validation import validate, validate_config, EmptyBandWarning
from .geometry import pair_geometry, position_vectors
from .grid import make_grid, projection_matrix
from .spectra import compute_spectra, band_indices, whiten, cross_spectra
from .output import FKVolume, power_to_db, normalize_db

logger = logging.getLogger(__name__)


def _beam_response(xp, p, f, cs, chunk_size=None):
    """
    Complex beam response at one frequency.

    Parameters
    ----------
    p : array
        (npoints, npairs) projection matrix
    f : float
        Frequency in Hz
    cs : array
        (npairs,) cross spectra at f
    chunk_size : int, optional
        Grid points per steering-matrix block

    Returns
    -------
    response : array
        (npoints,) complex
    """
    npoints = p.shape[0]
    if not chunk_size or chunk_size >= npoints:
        return xp.exp(f * p) @ cs

    out = xp.empty(npoints, dtype=xp.complex128)
    for start in range(0, npoints, chunk_size):
        end = min(start + chunk_size, npoints)
        out[start:end] = xp.exp(f * p[start:end]) @ cs
    return out


def _select_backend(use_gpu):
    if use_gpu and CUPY_AVAILABLE:
        try:
            cp.cuda.runtime.getDeviceCount()
            return cp
        except Exception as e:
            logger.warning(f"GPU initialization failed: {e}, using CPU")
            return np
    if use_gpu:
        logger.warning("CuPy is not available, using CPU")
    return np


def fk_volume_from_input(validated, use_gpu=False, chunk_size=None):
    """
    FK analysis of records that already passed `validate`.

    Parameters
    ----------
    validated : ValidatedInput
    use_gpu : bool
        Evaluate steering matrices with CuPy if available
    chunk_size : int, optional
        Bound the steering matrix to this many grid points at a time

    Returns
    -------
    volumes : list of FKVolume
        One per frequency band, in the order requested
    """
    config = validated.config
    center = config.center
    stations = validated.stations

    # geometry: r is 2 x npairs
    geom = pair_geometry(stations['latitude'].to_numpy(), stations['longitude'].to_numpy(),
                         center)
    r = position_vectors(geom['distance'], geom['azimuth'])
    npairs = r.shape[1]

    grid = make_grid(config.smax, config.spts, polar=config.polar)
    p = projection_matrix(grid, r)

    freqs, spectra = compute_spectra(validated.data, validated.delta)

    xp = _select_backend(use_gpu)
    d_p = cp.asarray(p) if xp is not np else p

    logger.info(f"FK analysis: {validated.nsta} stations, {npairs} position vectors "
                f"({center.mode.value}), grid {grid.shape}, {config.nbands} band(s)")

    volumes = []
    for fmin, fmax in config.frng:
        fidx = band_indices(freqs, fmin, fmax)
        nfreq = len(fidx)

        if nfreq == 0:
            msg = f"No frequencies within the range {fmin:g} to {fmax:g} Hz!"
            logger.warning(msg)
            warnings.warn(msg, EmptyBandWarning, stacklevel=2)
            response = np.zeros(grid.shape + (0,))
            normdb = 0.0
        else:
            if center.centerless:
                cs = cross_spectra(spectra[:, fidx], geom['i'], geom['j'])
            else:
                cs = whiten(spectra[:, fidx])
            d_cs = cp.asarray(cs) if xp is not np else cs

            logger.debug(f"Getting FK volume for {fmin:g} to {fmax:g} Hz ({nfreq} frequencies)")

            slices = [_beam_response(xp, d_p, float(freqs[k]), d_cs[:, b], chunk_size)
                      for b, k in enumerate(fidx)]
            beam = xp.stack(slices, axis=-1)
            if xp is not np:
                beam = cp.asnumpy(beam)
            beam = beam.reshape(grid.shape + (nfreq,))

            response, normdb = normalize_db(power_to_db(beam, npairs, center.centerless))

        volumes.append(FKVolume(
            response=response,
            stations=stations.copy(),
            starttime=validated.starttime,
            endtime=validated.endtime,
            npts=validated.npts,
            delta=validated.delta,
            x=grid.x.copy(),
            y=grid.y.copy(),
            freqs=freqs[fidx],
            polar=config.polar,
            center=center.describe(),
            normdb=normdb,
            frange=(float(fmin), float(fmax)),
        ))

    return volumes


def fk_volume(stream, smax, spts, frng, polar=False, center='coarray',
              use_gpu=False, chunk_size=None):
    """
    Map the energy moving through an array into frequency-slowness space.

    Parameters
    ----------
    stream : obspy.Stream
        Records with equal npts, sample interval and start time, each with
        `stats.coordinates` (latitude, longitude, elevation, local_depth)
    smax : float
        Maximum slowness in s/deg; the grid spans -smax..smax (cartesian)
        or 0..smax (polar)
    spts : int or (int, int)
        Slowness points per axis (cartesian), or radial points and
        optionally backazimuth points (polar, default 181)
    frng : array-like
        [FREQLOW FREQHIGH] or an Nx2 array of bands in Hz
    polar : bool
        Sample slowness in polar coordinates
    center : str or [lat, lon]
        'coarray' (default), 'full', 'center' or an explicit array center
    use_gpu : bool
        Use CuPy if available
    chunk_size : int, optional
        Maximum grid points per steering-matrix block

    Returns
    -------
    volumes : list of FKVolume
        One per frequency band

    Raises
    ------
    ConfigurationError, InputValidationError, NyquistViolationError
        Before any computation. Bands without frequency bins only emit
        an EmptyBandWarning and get an empty response.
    """
    validated = validate(stream, smax, spts, frng, polar=polar, center=center)
    return fk_volume_from_input(validated, use_gpu=use_gpu, chunk_size=chunk_size)


def array_response(latitudes, longitudes, smax, spts, freqs, polar=False,
                   center='coarray'):
    """
    Array response function for a vertically incident plane wave.

    All cross spectra are 1, so the result only reflects the array geometry
    sampled at the given frequencies.

    Returns
    -------
    response : ndarray
        (ny, nx, nfreq) dB normalized to a 0 dB peak
    grid : SlownessGrid
    """
    freqs = np.atleast_1d(np.asarray(freqs, dtype=float))
    config = validate_config(smax, spts, [[freqs.min(), freqs.max()]],
                             polar=polar, center=center)

    geom = pair_geometry(latitudes, longitudes, config.center)
    r = position_vectors(geom['distance'], geom['azimuth'])
    grid = make_grid(config.smax, config.spts, polar=config.polar)
    p = projection_matrix(grid, r)

    cs = np.ones(r.shape[1], dtype=np.complex128)
    beam = np.stack([_beam_response(np, p, f, cs) for f in freqs], axis=-1)
    beam = beam.reshape(grid.shape + (len(freqs),))

    response, _ = normalize_db(power_to_db(beam, r.shape[1], config.center.centerless))
    return response, grid
