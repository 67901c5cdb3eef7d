"""Broadband sources and spectral colours."""
from typing import List, Tuple, NamedTuple
import numpy as np

from .sources import Source, MIN_WAVELENGTH

__all__ = ['SpectralSample', 'calc_spectral_samples', 'wavelength_to_rgb']


class SpectralSample(NamedTuple):
    lamb: float
    weight: float


def calc_spectral_samples(source: Source) -> List[SpectralSample]:
    """Sample the spectrum of a source.

    The spectrum is Gaussian with FWHM source.bandwidth_nm. Samples are evenly spaced across +/- FWHM/2 and their
    weights sum to one. An even sample count is increased by one so that the center wavelength is included.

    Returns:
        Samples in increasing wavelength.
    """
    bandwidth = max(0., source.bandwidth_nm)
    num = max(1, int(source.spectral_samples))
    if bandwidth <= 0 or num == 1:
        return [SpectralSample(source.lamb, 1.)]
    if num%2 == 0:
        num += 1
    delta_nm = np.linspace(-bandwidth/2, bandwidth/2, num)
    weights = np.exp(-4*np.log(2)*(delta_nm/bandwidth)**2)
    weights /= weights.sum()
    lambs = np.maximum(MIN_WAVELENGTH, (source.wavelength_nm + delta_nm)*1e-9)
    return [SpectralSample(float(lamb), float(weight)) for lamb, weight in zip(lambs, weights)]


def wavelength_to_rgb(nm: float) -> Tuple[int, int, int]:
    """Approximate display colour of a wavelength.

    The visible range 400-800 nm is used and other wavelengths are wrapped into it, so every beam gets a distinct
    colour.

    Returns:
        8-bit red, green and blue.
    """
    if not np.isfinite(nm):
        nm = 550.
    nm = 400 + (nm - 400)%400
    r, g, b = 0., 0., 0.
    if nm < 450:
        r, b = (450 - nm)/50, 1.
    elif nm < 490:
        g, b = (nm - 450)/40, 1.
    elif nm < 540:
        g, b = 1., (540 - nm)/50
    elif nm < 590:
        r, g = (nm - 540)/50, 1.
    elif nm < 650:
        r, g = 1., (650 - nm)/60
    else:
        r = 1.
    return tuple(int(round(max(0., c)**0.8*255)) for c in (r, g, b))
