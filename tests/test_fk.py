import logging
from types import SimpleNamespace

import numpy as np
import pytest
from obspy import Stream, Trace, UTCDateTime
from obspy.core.util import AttribDict
from obspy.geodetics import gps2dist_azimuth

import fkbeam.core.fk as fk
from fkbeam.core.fk import fk_volume, fk_volume_from_input, array_response
from fkbeam.core.grid import DEG2KM
from fkbeam.core.output import fk_peak, fkvol2map
from fkbeam.core.validation import (
    validate,
    EmptyBandWarning,
    NyquistViolationError,
    InputValidationError,
)


REF = (35.0, -100.0)
# right triangle with ~10 km legs (east and north of the first station)
STATIONS = [(35.0, -100.0), (35.0, -99.89), (35.09, -100.0)]


def _local_position(lat, lon):
    dist_m, az, _ = gps2dist_azimuth(REF[0], REF[1], lat, lon)
    d = dist_m / 1000.0
    return np.array([d * np.sin(np.radians(az)), d * np.cos(np.radians(az))])


def _plane_wave_stream(sx, sy, stations=STATIONS, n_samples=128, delta=1.0,
                       f0=0.1, sigma=15.0):
    """Gaussian wavelet crossing the array with slowness (sx, sy) in s/deg.

    A wave with backazimuth baz reaches stations further toward the source
    first, so the arrival at position x is delayed by -s . x.
    """
    t = np.arange(n_samples) * delta
    s = np.array([sx, sy]) / DEG2KM
    t0 = 0.5 * n_samples * delta

    stream = Stream()
    for k, (lat, lon) in enumerate(stations):
        shift = -np.dot(s, _local_position(lat, lon))
        tau = t - t0 - shift
        tr = Trace(np.exp(-(tau / sigma) ** 2) * np.cos(2 * np.pi * f0 * tau))
        tr.stats.network = 'XX'
        tr.stats.station = f'ST{k+1}'
        tr.stats.delta = delta
        tr.stats.starttime = UTCDateTime(2020, 1, 1)
        tr.stats.coordinates = AttribDict({
            'latitude': lat, 'longitude': lon, 'elevation': 0.0, 'local_depth': 0.0})
        stream.append(tr)
    return stream


def test_recovers_plane_wave_coarray():
    # smag 10 s/deg from backazimuth ~36.87 deg, exactly on the grid
    st = _plane_wave_stream(6.0, 8.0)
    vols = fk_volume(st, 20.0, 41, [0.08, 0.12])
    assert len(vols) == 1
    vol = vols[0]

    cell = vol.x[1] - vol.x[0]
    assert vol.response.shape == (41, 41, len(vol.freqs))
    assert len(vol.freqs) > 0
    assert np.all((vol.freqs >= 0.08) & (vol.freqs <= 0.12))
    assert np.max(vol.response) == 0.0

    peak = fk_peak(vol)
    assert abs(peak['sx'] - 6.0) <= cell
    assert abs(peak['sy'] - 8.0) <= cell
    assert peak['slowness'] == pytest.approx(10.0, abs=cell)
    assert peak['backazimuth'] == pytest.approx(np.degrees(np.arctan2(6.0, 8.0)), abs=6.0)


@pytest.mark.parametrize('center', ['center', 'full', list(REF)])
def test_recovers_plane_wave_other_centers(center):
    st = _plane_wave_stream(-5.0, 3.0)
    vol = fk_volume(st, 20.0, 41, [0.08, 0.12], center=center)[0]

    cell = vol.x[1] - vol.x[0]
    peak = fk_peak(vol)
    assert abs(peak['sx'] + 5.0) <= cell
    assert abs(peak['sy'] - 3.0) <= cell
    assert np.max(vol.response) == 0.0
    assert vol.center == center


def test_recovers_plane_wave_polar():
    st = _plane_wave_stream(6.0, 8.0)
    vol = fk_volume(st, 20.0, [21, 360], [0.08, 0.12], polar=True)[0]

    assert vol.polar
    assert vol.response.shape[:2] == (21, 360)
    peak = fk_peak(vol)
    assert peak['slowness'] == pytest.approx(10.0, abs=1.0)
    assert peak['backazimuth'] == pytest.approx(np.degrees(np.arctan2(6.0, 8.0)), abs=2.0)


def test_deterministic():
    st = _plane_wave_stream(6.0, 8.0)
    a = fk_volume(st, 20.0, 21, [[0.08, 0.12], [0.05, 0.2]])
    b = fk_volume(st, 20.0, 21, [[0.08, 0.12], [0.05, 0.2]])

    for va, vb in zip(a, b):
        np.testing.assert_array_equal(va.response, vb.response)
        np.testing.assert_array_equal(va.x, vb.x)
        np.testing.assert_array_equal(va.y, vb.y)
        np.testing.assert_array_equal(va.freqs, vb.freqs)
        assert va.normdb == vb.normdb


def test_multiple_bands_each_normalized():
    st = _plane_wave_stream(6.0, 8.0)
    vols = fk_volume(st, 20.0, 21, [[0.08, 0.12], [0.05, 0.2], [0.3, 0.4]])

    assert len(vols) == 3
    for vol, band in zip(vols, [(0.08, 0.12), (0.05, 0.2), (0.3, 0.4)]):
        assert vol.frange == band
        assert np.max(vol.response) == 0.0
        assert vol.nsta == 3
        assert vol.npts == 128
        assert vol.delta == 1.0
        assert vol.starttime == UTCDateTime(2020, 1, 1)
        assert vol.volume
    assert len(vols[1].freqs) > len(vols[0].freqs)


def test_full_two_stations_is_beam_power():
    # two stations on one meridian: the pairs are exact mirror images
    stations = [(35.0, -100.0), (35.09, -100.0)]
    st = _plane_wave_stream(0.0, 8.0, stations=stations)
    vol = fk_volume(st, 20.0, 21, [0.08, 0.12], center='full')[0]

    # 2 self pairs + 2 cross pairs, all in phase at the true slowness
    assert vol.normdb == pytest.approx(0.0, abs=1e-3)

    # compare against an explicit delay-and-sum beam |sum w_i exp(-2 pi i f s.x_i)|^2 / 4
    nfft = 256
    spec = np.fft.rfft(np.vstack([tr.data for tr in st]), n=nfft, axis=1)
    freqs = np.fft.rfftfreq(nfft, d=1.0)
    fidx = np.flatnonzero((freqs >= 0.08) & (freqs <= 0.12))
    w = spec[:, fidx] / np.abs(spec[:, fidx])

    dist_m, az, _ = gps2dist_azimuth(*stations[0], *stations[1])
    x2 = dist_m / 1000.0 * np.array([np.sin(np.radians(az)), np.cos(np.radians(az))])

    sx, sy = np.meshgrid(vol.x / DEG2KM, vol.y / DEG2KM)
    expected = np.zeros(vol.response.shape)
    for b, f in enumerate(freqs[fidx]):
        beam = w[0, b] + w[1, b] * np.exp(-2j * np.pi * f * (sx * x2[0] + sy * x2[1]))
        expected[:, :, b] = 10 * np.log10(np.abs(beam) ** 2 / 4)
    expected -= expected.max()

    np.testing.assert_allclose(vol.response, expected, atol=1e-6)


def test_empty_band_warns_and_continues():
    st = _plane_wave_stream(6.0, 8.0)
    # bins are spaced 1/256 Hz, none falls between 0.1001 and 0.1002
    with pytest.warns(EmptyBandWarning):
        vols = fk_volume(st, 20.0, 11, [[0.1001, 0.1002], [0.08, 0.12]])

    assert vols[0].response.shape == (11, 11, 0)
    assert vols[0].empty
    assert vols[0].normdb == 0.0
    assert len(vols[0].freqs) == 0
    assert np.max(vols[1].response) == 0.0


def test_nyquist_failure_before_output():
    st = _plane_wave_stream(6.0, 8.0)
    with pytest.raises(NyquistViolationError):
        fk_volume(st, 20.0, 11, [[0.08, 0.12], [0.2, 0.5]])


def test_inconsistent_records_fail():
    st = _plane_wave_stream(6.0, 8.0)
    st[1].stats.starttime += 0.5
    with pytest.raises(InputValidationError):
        fk_volume(st, 20.0, 11, [0.08, 0.12])


def test_chunked_matches_unchunked():
    st = _plane_wave_stream(6.0, 8.0)
    v = validate(st, 20.0, 15, [0.08, 0.12])
    whole = fk_volume_from_input(v)[0]
    chunked = fk_volume_from_input(v, chunk_size=7)[0]
    np.testing.assert_allclose(chunked.response, whole.response, atol=1e-9)
    assert chunked.normdb == pytest.approx(whole.normdb)


def test_gpu_request_without_cupy_uses_cpu(monkeypatch):
    monkeypatch.setattr(fk, 'CUPY_AVAILABLE', False)
    st = _plane_wave_stream(6.0, 8.0)
    cpu = fk_volume(st, 20.0, 11, [0.08, 0.12])[0]
    gpu = fk_volume(st, 20.0, 11, [0.08, 0.12], use_gpu=True)[0]
    np.testing.assert_array_equal(cpu.response, gpu.response)


def test_result_metadata():
    st = _plane_wave_stream(6.0, 8.0)
    vol = fk_volume(st, 20.0, 11, [0.08, 0.12], center='COARRAY')[0]

    np.testing.assert_array_equal(vol.latitudes, [s[0] for s in STATIONS])
    np.testing.assert_array_equal(vol.longitudes, [s[1] for s in STATIONS])
    assert list(vol.stations['code']) == ['ST1', 'ST2', 'ST3']
    assert vol.endtime == st[0].stats.endtime
    assert vol.center == 'coarray'
    assert not vol.polar
    np.testing.assert_allclose(vol.x, np.linspace(-20.0, 20.0, 11))
    np.testing.assert_allclose(vol.y, np.linspace(20.0, -20.0, 11))


def test_fkvol2map_of_plane_wave():
    st = _plane_wave_stream(6.0, 8.0)
    vol = fk_volume(st, 20.0, 41, [0.08, 0.12])[0]
    fkmap = fkvol2map(vol)

    assert fkmap.response.shape == (41, 41)
    assert fkmap.response.max() == 0.0
    peak = fk_peak(fkmap)
    assert abs(peak['sx'] - 6.0) <= 1.0
    assert abs(peak['sy'] - 8.0) <= 1.0


def test_array_response_peaks_at_zero_slowness():
    lats = [s[0] for s in STATIONS]
    lons = [s[1] for s in STATIONS]
    response, grid = array_response(lats, lons, 20.0, 21, [0.05, 0.1])

    assert response.shape == (21, 21, 2)
    assert response.max() == 0.0
    for b in range(2):
        row, col = np.unravel_index(np.argmax(response[:, :, b]), grid.shape)
        assert grid.x[col] == 0.0
        assert grid.y[row] == 0.0


def test_gpu_init_failure_uses_cpu(monkeypatch, caplog):
    def _no_device():
        raise RuntimeError('no CUDA device')

    fake_cp = SimpleNamespace(cuda=SimpleNamespace(runtime=SimpleNamespace(getDeviceCount=_no_device)))
    monkeypatch.setattr(fk, 'CUPY_AVAILABLE', True)
    monkeypatch.setattr(fk, 'cp', fake_cp)

    with caplog.at_level(logging.WARNING, logger='fkbeam.core.fk'):
        assert fk._select_backend(True) is np
    assert 'GPU initialization failed: no CUDA device' in caplog.text


def test_all_zero_records_rejected_before_fk():
    st = _plane_wave_stream(6.0, 8.0)
    for tr in st:
        tr.data = np.zeros(tr.stats.npts)
    with pytest.raises(InputValidationError):
        fk_volume(st, 20.0, 11, [0.1, 0.2])
