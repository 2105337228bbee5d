"""
Spectral preprocessing for FK analysis.

- Zero-padded FFT of all records (positive frequencies only)
- Frequency band selection
- Amplitude whitening
- Cross spectra for station pairs
"""

import logging
import numpy as np

logger = logging.getLogger(__name__)


def _next_pow2(n: int) -> int:
    return 1 << (n - 1).bit_length() if n > 0 else 1


def fft_length(npts: int) -> int:
    """FFT length: twice the next power of two >= npts."""
    return 2 * _next_pow2(int(npts))


def compute_spectra(data, delta):
    """
    Positive-frequency spectra of every record.

    Parameters
    ----------
    data : ndarray
        (n_stations, n_samples) sample matrix
    delta : float
        Sample interval in seconds

    Returns
    -------
    freqs : ndarray
        Frequencies in Hz, spacing 1/(delta*nfft)
    spectra : ndarray
        (n_stations, n_freqs) complex spectra
    """
    data = np.asarray(data, dtype=np.float64)
    if data.ndim != 2:
        raise ValueError("data must be 2D (n_stations, n_samples)")

    nfft = fft_length(data.shape[1])
    spectra = np.fft.rfft(data, n=nfft, axis=1)
    freqs = np.fft.rfftfreq(nfft, d=delta)

    logger.debug(f"FFT of {data.shape[0]} records: npts={data.shape[1]} nfft={nfft} "
                 f"df={freqs[1]:.6g} Hz")
    return freqs, spectra


def band_indices(freqs, fmin, fmax):
    """Indices of frequency bins with fmin <= f <= fmax."""
    return np.flatnonzero((freqs >= fmin) & (freqs <= fmax))


def whiten(spectra):
    """Normalize spectra to unit magnitude; zero bins stay zero."""
    spectra = np.asarray(spectra)
    amp = np.abs(spectra)
    out = np.zeros_like(spectra, dtype=np.complex128)
    np.divide(spectra, amp, out=out, where=amp > 0)
    return out


def cross_spectra(spectra, i, j):
    """
    Whitened cross spectra Xi * conj(Xj) for each pair.

    Parameters
    ----------
    spectra : ndarray
        (n_stations, n_freqs) spectra, whitened here
    i, j : ndarray
        Pair indices, the same ones the position vectors were built from

    Returns
    -------
    cs : ndarray
        (n_pairs, n_freqs) complex
    """
    w = whiten(spectra)
    return w[i, :] * np.conj(w[j, :])
