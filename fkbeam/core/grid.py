"""Slowness grids and the slowness/position projection matrix."""

from dataclasses import dataclass
import logging
import numpy as np

logger = logging.getLogger(__name__)

# km per degree of arc on a 6371 km sphere
DEG2KM = 6371.0 * np.pi / 180.0

DEFAULT_BAZPTS = 181


@dataclass(frozen=True, eq=False)
class SlownessGrid:
    """
    Search grid in horizontal slowness.

    Attributes
    ----------
    x : ndarray
        Column axis: east slowness (s/deg) or backazimuth (deg) if polar
    y : ndarray
        Row axis: north slowness (s/deg, descending) or radial slowness
        (s/deg) if polar
    sx, sy : ndarray
        East/north slowness of every grid point in s/km, shape `shape`
    polar : bool
    """
    x: np.ndarray
    y: np.ndarray
    sx: np.ndarray
    sy: np.ndarray
    polar: bool

    @property
    def shape(self):
        return self.sx.shape

    @property
    def npoints(self):
        return self.sx.size

    def points(self):
        """(npoints, 2) array of [sx, sy] in s/km, row-major grid order."""
        return np.column_stack([self.sx.ravel(), self.sy.ravel()])


def cartesian_grid(smax, spts):
    """
    Regular east/north slowness grid over [-smax, smax].

    Parameters
    ----------
    smax : float
        Maximum slowness in s/deg
    spts : int
        Points per axis

    Returns
    -------
    grid : SlownessGrid
        spts x spts grid; rows run north to south
    """
    s = np.linspace(-smax, smax, spts)
    sx, sy = np.meshgrid(s, s[::-1])
    return SlownessGrid(x=s, y=s[::-1].copy(), sx=sx / DEG2KM, sy=sy / DEG2KM, polar=False)


def polar_grid(smax, spts, bazpts=DEFAULT_BAZPTS):
    """
    Polar slowness grid.

    Rows are slowness magnitudes from 0 to smax (s/deg), columns are
    backazimuths stepping from 0 toward 360 degrees (360 itself excluded).
    """
    smag = np.linspace(0.0, smax, spts)
    baz = np.arange(bazpts) * (360.0 / bazpts)

    mag, az = np.meshgrid(smag / DEG2KM, np.radians(baz), indexing='ij')
    return SlownessGrid(x=baz, y=smag, sx=mag * np.sin(az), sy=mag * np.cos(az), polar=True)


def make_grid(smax, spts, polar=False):
    """Build the grid described by FK parameters (spts may be a pair)."""
    spts = tuple(np.atleast_1d(spts))
    if polar:
        bazpts = int(spts[1]) if len(spts) == 2 else DEFAULT_BAZPTS
        grid = polar_grid(smax, int(spts[0]), bazpts)
    else:
        grid = cartesian_grid(smax, int(spts[0]))
    logger.debug(f"{'polar' if polar else 'cartesian'} slowness grid {grid.shape}, "
                 f"smax={smax:g} s/deg")
    return grid


def projection_matrix(grid, r):
    """
    Project every grid slowness onto every position vector.

    Parameters
    ----------
    grid : SlownessGrid
    r : ndarray
        (2, npairs) east/north positions in km

    Returns
    -------
    p : ndarray
        (npoints, npairs) complex array 2*pi*i*(s . r). The steering matrix
        at frequency f is exp(f * p).
    """
    return 2j * np.pi * (grid.points() @ np.asarray(r, dtype=float))
