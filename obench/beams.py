"""Fundamental Gaussian beams with a beam quality factor.

Throughout, the Rayleigh range of a beam of waist w_0 is z_R = pi*w_0**2/(m2*lamb), so a beam with m2 > 1 diverges
m2 times faster than the ideal beam with the same waist.
"""
from dataclasses import dataclass
import numpy as np

from . import abcd


def calc_rayleigh_range(w_0, lamb, m2=1):
    return np.pi*w_0**2/(m2*lamb)


def calc_waist(z_R, lamb, m2=1):
    return (z_R*m2*lamb/np.pi)**0.5


@dataclass
class BeamMetrics:
    """Observable quantities of a beam at a plane, derived from q.

    Attributes:
        width: 1/e^2 intensity radius.
        waist: Waist radius.
        distance_to_waist: Signed distance from the plane to the waist, positive if the waist lies ahead.
        rayleigh_range: Rayleigh range.
        roc: Wavefront radius of curvature, infinite if flat.
    """
    width: float
    waist: float
    distance_to_waist: float
    rayleigh_range: float
    roc: float

    @classmethod
    def from_q(cls, q: complex, lamb: float, m2: float = 1):
        width, roc = abcd.Gaussian_q_to_wR(q, lamb, m2)
        z_R = q.imag
        waist = calc_waist(abs(z_R), lamb, m2)
        return cls(width, waist, -q.real, z_R, roc)
