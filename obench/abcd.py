"""Tools for dealing with 1D ray transfer ("ABCD") matrices and the complex beam parameter q.

Rays are column vectors (x, theta). The beam parameter satisfies 1/q = 1/R - i*m2*lamb/(pi*w**2), so Im(q) is the
Rayleigh range and -Re(q) the distance to the waist.
"""
import numpy as np

from . import functions


def propagation(d):
    return np.asarray([[1, d], [0, 1]])


def thin_lens(f):
    return np.asarray([[1, 0], [-1/f, 1]])


def spherical_mirror(roc):
    """Reflection from a spherical mirror.

    Args:
        roc: Radius of curvature, >0 for concave (focusing) as seen by the incident beam.
    """
    return np.asarray([[1, 0], [-2/roc, 1]])


def curved_interface(n1, n2, R):
    """
    Args:
        n1: incident refractive index
        n2: final refractive index
        R: radius of curvature, >0 for convex
    """
    return np.asarray([[1, 0], [(n1 - n2)/(R*n2), n1/n2]])


def interface(n1, n2):
    return np.asarray([[1, 0], [0, n1/n2]])


def transform_Gaussian(m, q):
    return functions.divide(m[0][0]*q + m[0][1], m[1][0]*q + m[1][1])


def propagate_Gaussian(q: complex, d: float) -> complex:
    """Free-space propagation of q by distance d."""
    return q + d


def Gaussian_q_to_wR(q, lamb, m2=1):
    """Beam radius and wavefront radius of curvature from q.

    The radius of curvature is infinite where the wavefront is flat.
    """
    iq = functions.invert(q)
    w = calc_width(q, lamb, m2)
    if abs(iq.real) < 1e-12:
        R = float('inf')
    else:
        R = 1/iq.real
    return w, R


def calc_width(q, lamb, m2=1):
    """1/e^2 intensity radius of beam with parameter q."""
    iq = functions.invert(q)
    denominator = abs(iq.imag)*np.pi
    if denominator == 0:
        denominator = functions.EPSILON
    return (m2*lamb/denominator)**0.5
