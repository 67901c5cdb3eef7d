"""Miscellaneous math functions shared by the beam and Jones algebra and the tracer.

Complex scalars are plain Python complex numbers. Vectors are (3,) float arrays.
"""
import cmath
from typing import Sequence, Tuple
import numpy as np

from .types import Vector3

# Floor for squared magnitudes of denominators.
EPSILON = 1e-18
# Minimum length of a vector before normalizing it.
MIN_LENGTH = 1e-12

xhat = np.array((1., 0., 0.))
yhat = np.array((0., 1., 0.))
zhat = np.array((0., 0., 1.))


def abs_sqd(x):
    """Element-wise absolute value squared."""
    return x.real**2 + x.imag**2


def divide(a: complex, b: complex) -> complex:
    """Complex division with the denominator magnitude floored at EPSILON."""
    b = complex(b)
    d = abs_sqd(b)
    if d == 0:
        d = EPSILON
    return complex(a)*b.conjugate()/d


def invert(a: complex) -> complex:
    return divide(1, a)


def expi(theta: float) -> complex:
    """Unit magnitude complex number at angle theta."""
    return cmath.exp(1j*theta)


def dot(a: Sequence, b: Sequence):
    """Dot product with second argument conjugated."""
    return np.dot(a, np.conj(b))


def norm_squared(x: Sequence):
    return dot(x, x).real


def norm(x: Sequence):
    return norm_squared(x)**0.5


def normalize(x: Sequence, fallback: Vector3 = None) -> np.ndarray:
    """Normalize vector, or return fallback if it is shorter than MIN_LENGTH."""
    x = np.asarray(x, float)
    length = norm(x)
    if length < MIN_LENGTH:
        if fallback is None:
            raise ValueError('Cannot normalize vector of length %g.'%length)
        return np.array(fallback, float)
    return x/length


def reflect_vector(incident: Vector3, normal: Vector3) -> Vector3:
    """Reflect incident vector given mirror normal.

    Mirror normal must be normalized.
    """
    incident_normal_component = np.dot(incident, normal)
    reflected = incident - 2*normal*incident_normal_component
    return reflected


def make_perpendicular(normal: Vector3, seed: Vector3) -> Vector3:
    """Unit vector perpendicular to normal, formed from seed by Gram-Schmidt.

    If seed is (nearly) parallel to normal, the unit axis least aligned with normal is used instead.
    """
    v = seed - normal*np.dot(seed, normal)
    if norm_squared(v) < MIN_LENGTH:
        axis = (xhat, yhat, zhat)[int(np.argmin(abs(normal)))]
        v = axis - normal*np.dot(axis, normal)
    return normalize(v)


def calc_transverse_basis(direction: Vector3) -> Tuple[Vector3, Vector3]:
    """Polarization basis of a ray.

    The vertical axis u is world +Y. The horizontal axis v is u x direction, or +X if that is degenerate. Jones vector
    component 0 lies along v and component 1 along u.

    Returns:
        u, v
    """
    u = yhat
    v = normalize(np.cross(u, direction), xhat)
    return u, v
