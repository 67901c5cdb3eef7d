"""Optical elements of the bench and their transfer functions.

Elements are plain dataclasses. Behaviour is attached by single dispatch on the element class: transform_q for the
Gaussian beam parameter, transform_jones for the polarization, and describe for a short label. Kinds whose
interaction produces several branches (mirror, beam splitter, grating) additionally have physics helpers used by the
tracer.

Lengths are in meters unless the attribute name says otherwise.
"""
from dataclasses import dataclass, field
from functools import singledispatch
from typing import Tuple, FrozenSet, List
import numpy as np

from .types import Vector3, JonesVector, Sequence2
from .geometry import Pose
from . import abcd, functions, jones

__all__ = ['Element', 'Lens', 'Mirror', 'Polarizer', 'Waveplate', 'FaradayRotator', 'BeamSplitter', 'BeamBlock',
    'Grating', 'Detector', 'transform_q', 'transform_jones', 'describe', 'calc_incidence_angle',
    'calc_mirror_coefficients', 'calc_transmitted_q', 'reflect_jones', 'split_jones',
    'GratingOrder', 'calc_grating_orders', 'calc_lens_direction', 'WAVEPLATE_RETARDANCES']

WAVEPLATE_RETARDANCES = {'HWP': np.pi, 'QWP': np.pi/2}

# Floors applied to authored curvature radii and grating periods.
MIN_ROC = 1e-9
MIN_PERIOD = 1e-12


@dataclass(eq=False)
class Element:
    """Base of all bench elements.

    Attributes:
        id: Identifier allocated by the authoring layer, unique within a scene.
        pose: Pose of the element. The local Z axis is the surface normal.
        size: Width and height of the collision panel in the local XY plane.
    """
    id: int
    pose: Pose = field(default_factory=Pose)
    size: Tuple[float, float] = (3.6e-3, 3.6e-3)

    @property
    def normal(self) -> Vector3:
        return self.pose.normal


@dataclass(eq=False)
class Lens(Element):
    """Thin lens of focal length f (negative for diverging). Zero is taken as 1 m."""
    f: float = 1.

    @property
    def effective_f(self) -> float:
        return self.f or 1.


@dataclass(eq=False)
class Mirror(Element):
    """Flat or spherical, partially transmitting, optionally dichroic mirror.

    Attributes:
        flat: If True roc is ignored.
        roc: Radius of curvature, positive for concave (focusing) on reflection. Magnitude floored at MIN_ROC.
        reflectance: Power reflectance, used unless dichroic.
        n: Refractive index of the substrate, floored at 1. Sets the weak lensing of transmitted light by a curved
            mirror.
        thickness: Substrate thickness traversed by transmitted light.
        dichroic: If True reflectance is 1 inside reflect_band_nm and 0 elsewhere.
        reflect_band_nm: Inclusive (min, max) wavelength band reflected by a dichroic mirror.
        transmit_band_nm: Inclusive (min, max) wavelength band transmitted by a dichroic mirror.
    """
    size: Tuple[float, float] = (4e-3, 4e-3)
    flat: bool = True
    roc: float = 2.
    reflectance: float = 1.
    n: float = 1.5
    thickness: float = 0.
    dichroic: bool = False
    reflect_band_nm: Tuple[float, float] = (400., 700.)
    transmit_band_nm: Tuple[float, float] = (700., 1100.)

    @property
    def effective_roc(self) -> float:
        return float(np.copysign(max(MIN_ROC, abs(self.roc)), self.roc))

    @property
    def effective_n(self) -> float:
        return max(1., self.n)


@dataclass(eq=False)
class Polarizer(Element):
    """Linear polarizer. axis_deg is measured from local X towards local Y."""
    axis_deg: float = 0.


@dataclass(eq=False)
class Waveplate(Element):
    """Linear retarder.

    kind is 'HWP', 'QWP' or 'Custom'. For the first two the retardance is set from the kind.
    """
    kind: str = 'HWP'
    retardance: float = np.pi
    axis_deg: float = 0.

    def __post_init__(self):
        if self.kind == 'Custom':
            return
        try:
            self.retardance = WAVEPLATE_RETARDANCES[self.kind]
        except KeyError:
            raise ValueError('Unknown waveplate kind %r.'%self.kind) from None


@dataclass(eq=False)
class FaradayRotator(Element):
    """Non-reciprocal polarization rotator.

    Light travelling along the element normal is rotated by rotation_deg. Light travelling against it is rotated
    the opposite way as seen along its own direction, so a double pass accumulates twice the rotation.
    """
    rotation_deg: float = 45.


@dataclass(eq=False)
class BeamSplitter(Element):
    """Plate beam splitter.

    Attributes:
        reflectance: Power reflectance of the non-polarizing splitter.
        polarizing: If True, transmit_polarization ('Vertical' or 'Horizontal') is transmitted and the orthogonal
            component reflected.
    """
    reflectance: float = 0.5
    polarizing: bool = False
    transmit_polarization: str = 'Vertical'

    def __post_init__(self):
        if self.transmit_polarization not in ('Vertical', 'Horizontal'):
            raise ValueError('Unknown transmit polarization %r.'%self.transmit_polarization)


@dataclass(eq=False)
class BeamBlock(Element):
    size: Tuple[float, float] = (4.2e-3, 4.2e-3)


@dataclass(eq=False)
class Grating(Element):
    """Ruled diffraction grating with grating vector along local X.

    Attributes:
        mode: 'reflective' or 'transmissive'.
        spacing_um: Groove period in microns. Floored at MIN_PERIOD.
        orders: Orders -orders..orders are considered.
        hidden_orders: Orders not traced, though still reported.
    """
    size: Tuple[float, float] = (4.2e-3, 4.2e-3)
    mode: str = 'reflective'
    spacing_um: float = 1.
    orders: int = 3
    hidden_orders: FrozenSet[int] = frozenset()

    def __post_init__(self):
        if self.mode not in ('reflective', 'transmissive'):
            raise ValueError('Unknown grating mode %r.'%self.mode)
        self.hidden_orders = frozenset(self.hidden_orders)

    @property
    def reflective(self) -> bool:
        return self.mode == 'reflective'

    @property
    def period(self) -> float:
        """Groove period in meters."""
        return max(MIN_PERIOD, self.spacing_um*1e-6)


@dataclass(eq=False)
class Detector(Element):
    """Read-only beam meter. Light passes through unchanged."""
    size: Tuple[float, float] = (3.4e-3, 3.4e-3)


@singledispatch
def transform_q(element: Element, q: complex) -> complex:
    """Beam parameter after the element. Identity unless registered."""
    return q


@transform_q.register
def _(self: Lens, q: complex) -> complex:
    return abcd.transform_Gaussian(abcd.thin_lens(self.effective_f), q)


@transform_q.register
def _(self: Mirror, q: complex) -> complex:
    """Reflection."""
    if self.flat:
        return q
    return abcd.transform_Gaussian(abcd.spherical_mirror(self.effective_roc), q)


def calc_transmitted_q(mirror: Mirror, q: complex) -> complex:
    """Beam parameter of light transmitted through a mirror.

    Light enters through the curved face, crosses the substrate and leaves through a flat back face. With zero
    thickness this is a thin lens of power (n - 1)/roc.
    """
    if mirror.flat:
        return q
    n = mirror.effective_n
    # Concave on reflection means a negative radius in the curved_interface convention.
    m = np.linalg.multi_dot((abcd.interface(n, 1), abcd.propagation(mirror.thickness),
        abcd.curved_interface(1, n, -mirror.effective_roc)))
    return abcd.transform_Gaussian(m, q)


@singledispatch
def transform_jones(element: Element, jones_vector: JonesVector, direction: Vector3) -> JonesVector:
    """Jones vector after the element for light travelling along direction. Identity unless registered."""
    return jones_vector


@transform_jones.register
def _(self: Polarizer, jones_vector: JonesVector, direction: Vector3) -> JonesVector:
    theta = jones.calc_axis_angle(self.pose.x_axis, self.pose.y_axis, self.axis_deg, direction)
    return jones.apply(jones.conjugate(jones.polarizer(), theta), jones_vector)


@transform_jones.register
def _(self: Waveplate, jones_vector: JonesVector, direction: Vector3) -> JonesVector:
    theta = jones.calc_axis_angle(self.pose.x_axis, self.pose.y_axis, self.axis_deg, direction)
    return jones.apply(jones.conjugate(jones.waveplate(self.retardance), theta), jones_vector)


@transform_jones.register
def _(self: FaradayRotator, jones_vector: JonesVector, direction: Vector3) -> JonesVector:
    sign = 1 if np.dot(self.normal, direction) >= 0 else -1
    return jones.apply(jones.faraday(-sign*np.radians(self.rotation_deg)), jones_vector)


def reflect_jones(jones_vector: JonesVector, amplitude: float = 1.) -> JonesVector:
    """Scale Jones vector and flip the relative sign of its components, as on reflection."""
    return amplitude*np.asarray(jones_vector)*np.array((1, -1))


def split_jones(splitter: BeamSplitter, jones_vector: JonesVector) -> Tuple[JonesVector, JonesVector]:
    """Transmitted and reflected Jones vectors of a beam splitter."""
    jones_vector = np.asarray(jones_vector, complex)
    if splitter.polarizing:
        horizontal = jones_vector*np.array((1, 0))
        vertical = jones_vector*np.array((0, 1))
        if splitter.transmit_polarization == 'Vertical':
            return vertical, horizontal
        else:
            return horizontal, vertical
    r = min(max(splitter.reflectance, 0.), 1.)
    return (1 - r)**0.5*jones_vector, reflect_jones(jones_vector, r**0.5)


def _in_band(nm: float, band: Sequence2[float]) -> bool:
    return band[0] <= nm <= band[1]


def calc_mirror_coefficients(mirror: Mirror, lamb: float) -> Tuple[float, float]:
    """Power reflectance and transmittance of a mirror at wavelength lamb.

    A dichroic mirror reflects fully inside its reflect band and transmits fully everywhere else.
    """
    if mirror.dichroic:
        if _in_band(lamb*1e9, mirror.reflect_band_nm):
            return 1., 0.
        return 0., 1.
    r = min(max(mirror.reflectance, 0.), 1.)
    return r, 1 - r


def calc_incidence_angle(element: Element, direction: Vector3) -> float:
    """Angle between direction and the element normal in degrees, in [0, 90]."""
    cos_theta = abs(np.dot(direction, element.normal))
    return float(np.degrees(np.arccos(np.clip(cos_theta, 0., 1.))))


@dataclass
class GratingOrder:
    """Propagating diffraction order.

    Attributes:
        m: Order number.
        direction: Unit outgoing direction.
        angle_deg: Diffraction angle measured in the plane of incidence.
        dispersion: Angular dispersion in degrees per nm.
    """
    m: int
    direction: Vector3
    angle_deg: float
    dispersion: float


def calc_grating_orders(grating: Grating, direction: Vector3, lamb: float) -> Tuple[float, List[GratingOrder]]:
    """Apply the grating equation sin(beta) = sin(alpha) - m*lamb/d.

    The direction component along the grating lines is conserved, so for in-plane incidence this reduces to the
    planar grating equation. Orders whose direction cosines cannot be satisfied are evanescent and omitted.

    Args:
        grating: The grating.
        direction: Unit incident direction.
        lamb: Wavelength.

    Returns:
        alpha_deg: Incidence angle in the plane of incidence.
        orders: Propagating orders in increasing m, including hidden ones.
    """
    n = grating.normal
    t = functions.make_perpendicular(n, grating.pose.x_axis)
    l = np.cross(n, t)
    k_n = np.dot(direction, n)
    sin_alpha = float(np.clip(np.dot(direction, t), -1, 1))
    k_l = float(np.dot(direction, l))
    alpha_deg = float(np.degrees(np.arctan2(sin_alpha, abs(k_n))))
    d = grating.period
    num_orders = max(0, int(grating.orders))
    from_side = np.sign(k_n) or 1
    orders = []
    for m in range(-num_orders, num_orders + 1):
        sin_beta = sin_alpha - m*lamb/d
        cos_beta_sqd = 1 - sin_beta**2 - k_l**2
        if abs(sin_beta) > 1 or cos_beta_sqd < 0:
            continue
        cos_beta = cos_beta_sqd**0.5
        n_component = (-from_side if grating.reflective else from_side)*cos_beta
        out = functions.normalize(n_component*n + sin_beta*t + k_l*l)
        angle_deg = float(np.degrees(np.arctan2(sin_beta, cos_beta)))
        if cos_beta > 1e-12:
            dispersion = abs(m/(d*cos_beta))*180/np.pi*1e-9
        else:
            dispersion = float('inf')
        orders.append(GratingOrder(m, out, angle_deg, dispersion))
    return alpha_deg, orders


def calc_lens_direction(lens: Lens, point: Vector3, direction: Vector3) -> Vector3:
    """Deflect a ray crossing a thin lens at point.

    Works with slopes relative to the lens normal in two orthogonal in-plane axes, reducing each by offset/f. The
    result is symmetric under rotation of the lens about its normal.
    """
    n = lens.normal
    seed = functions.yhat if abs(np.dot(functions.yhat, n)) <= 0.999 else functions.xhat
    u = functions.make_perpendicular(n, seed)
    v = np.cross(n, u)
    r = np.asarray(point) - lens.pose.position
    denominator = np.dot(direction, n)
    sign = 1 if denominator >= 0 else -1
    denominator = max(1e-6, abs(denominator))
    su = np.dot(direction, u)/denominator - np.dot(r, u)/lens.effective_f
    sv = np.dot(direction, v)/denominator - np.dot(r, v)/lens.effective_f
    return functions.normalize(sign*n + su*u + sv*v)


@singledispatch
def describe(element: Element) -> str:
    """Short human-readable label."""
    return type(element).__name__


@describe.register
def _(self: Lens) -> str:
    return 'Thin Lens f=%.1f mm'%(self.f*1e3)


@describe.register
def _(self: Mirror) -> str:
    if self.dichroic:
        kind = 'Dichroic'
    else:
        kind = 'R=%d%%'%round(self.reflectance*100)
    if self.flat:
        return 'Mirror (flat, %s)'%kind
    else:
        return 'Mirror (ROC=%.1f mm, %s)'%(self.roc*1e3, kind)


@describe.register
def _(self: Waveplate) -> str:
    if self.kind == 'Custom':
        return 'Waveplate (%.1f°)'%np.degrees(self.retardance)
    return 'Waveplate (%s)'%self.kind


@describe.register
def _(self: FaradayRotator) -> str:
    return 'Faraday (%g°)'%self.rotation_deg


@describe.register
def _(self: BeamSplitter) -> str:
    if self.polarizing:
        return 'PBS (T=%s)'%self.transmit_polarization[0]
    return 'Beam Splitter R=%d%%'%round(self.reflectance*100)


@describe.register
def _(self: BeamBlock) -> str:
    return 'Beam Block'


@describe.register
def _(self: Grating) -> str:
    return 'Grating (%s, d=%.3f µm, ±%d)'%('R' if self.reflective else 'T', self.spacing_um, self.orders)
