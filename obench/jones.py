"""Jones calculus for the polarization of a beam.

Jones vectors are complex (2,) arrays (Ex, Ey) in the transverse basis of the ray (see
functions.calc_transverse_basis). Element matrices are defined in their own eigenbasis and conjugated into the ray
basis by the rotation R(theta) where theta is the angle of the element axis in the ray basis.
"""
from typing import Sequence, Tuple
import numpy as np

from .types import JonesVector, JonesMatrix, Vector3
from . import functions

__all__ = ['rotation', 'polarizer', 'waveplate', 'faraday', 'conjugate', 'apply', 'calc_norm', 'calc_ellipse_angles',
    'psi_chi_to_jones', 'parse_complex', 'make_preset', 'PRESETS', 'calc_axis_angle']

_root_half = 0.5**0.5

# Named polarization states. Circular handedness follows the sign of chi.
PRESETS = {
    'Linear X': (1, 0),
    'Linear Y': (0, 1),
    '+45°': (_root_half, _root_half),
    '-45°': (_root_half, -_root_half),
    'RHC': (_root_half, -1j*_root_half),
    'LHC': (_root_half, 1j*_root_half)
}

# ASCII spellings accepted for the diagonal presets.
_PRESET_ALIASES = {'+45': '+45°', '-45': '-45°', '+45deg': '+45°', '-45deg': '-45°'}


def rotation(theta: float) -> JonesMatrix:
    c = np.cos(theta)
    s = np.sin(theta)
    return np.array([[c, s], [-s, c]], complex)


def polarizer() -> JonesMatrix:
    """Linear polarizer transmitting along its first eigen-axis."""
    return np.array([[1, 0], [0, 0]], complex)


def waveplate(delta: float) -> JonesMatrix:
    """Retarder delaying the second eigen-axis by delta."""
    return np.array([[1, 0], [0, functions.expi(delta)]], complex)


def faraday(phi: float) -> JonesMatrix:
    return rotation(phi)


def conjugate(matrix: JonesMatrix, theta: float) -> JonesMatrix:
    """Express element matrix, with eigen-axis at angle theta, in the ray basis."""
    return rotation(-theta) @ matrix @ rotation(theta)


def apply(matrix: JonesMatrix, jones: JonesVector) -> JonesVector:
    return matrix @ jones


def calc_norm(jones: JonesVector) -> float:
    return float(functions.abs_sqd(np.asarray(jones)).sum()**0.5)


def calc_axis_angle(x_axis: Vector3, y_axis: Vector3, axis_deg: float, direction: Vector3) -> float:
    """Angle of an element axis in the transverse basis of a ray.

    Args:
        x_axis, y_axis: Element local X and Y axes in world coordinates.
        axis_deg: Angle of the axis from local X towards local Y, in degrees.
        direction: Ray direction.

    Returns:
        Angle in radians measured from the horizontal axis v towards the vertical axis u.
    """
    theta = np.radians(axis_deg)
    axis = functions.normalize(np.cos(theta)*np.asarray(x_axis) + np.sin(theta)*np.asarray(y_axis), x_axis)
    u, v = functions.calc_transverse_basis(direction)
    return float(np.arctan2(np.dot(axis, u), np.dot(axis, v)))


def calc_ellipse_angles(jones: JonesVector) -> Tuple[float, float]:
    """Orientation psi and ellipticity chi of the polarization ellipse, in degrees.

    Computed from the Stokes parameters. A zero vector gives (0, 0).
    """
    a, b = complex(jones[0]), complex(jones[1])
    ax2 = functions.abs_sqd(a)
    ay2 = functions.abs_sqd(b)
    ab = a*b.conjugate()
    s0 = ax2 + ay2
    s1 = ax2 - ay2
    s2 = 2*ab.real
    s3 = 2*ab.imag
    psi = 0.5*np.arctan2(s2, s1)
    chi = 0.5*np.arcsin(np.clip(s3/s0 if s0 > 0 else 0., -1, 1))
    return float(np.degrees(psi)), float(np.degrees(chi))


def psi_chi_to_jones(psi_deg: float, chi_deg: float) -> JonesVector:
    """Unit Jones vector with given ellipse orientation and ellipticity (degrees)."""
    psi = np.radians(psi_deg)
    chi = np.radians(chi_deg)
    cp, sp = np.cos(psi), np.sin(psi)
    cc, sc = np.cos(chi), np.sin(chi)
    return np.array((complex(cp*cc, sp*sc), complex(sp*cc, -cp*sc)))


def parse_complex(string: str) -> complex:
    """Parse strings such as '1', '0.5-0.5i', '-i' or '1+2j'.

    Raises:
        ValueError: If the string is not a complex number.
    """
    try:
        return complex(string.strip().replace(' ', '').replace('i', 'j'))
    except ValueError:
        raise ValueError('Cannot parse %r as a complex number.'%string) from None


def make_preset(name: str, custom: Sequence[complex] = (1, 0)) -> JonesVector:
    """Jones vector of a named polarization state.

    Args:
        name: Key of PRESETS, or 'Custom'.
        custom: (Ex, Ey) used if name is 'Custom'.
    """
    name = _PRESET_ALIASES.get(name, name)
    if name == 'Custom':
        components = custom
    else:
        try:
            components = PRESETS[name]
        except KeyError:
            raise ValueError('Unknown polarization preset %r.'%name) from None
    return np.array(components, complex)
