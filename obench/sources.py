"""Laser sources."""
from dataclasses import dataclass, field, replace
from typing import Tuple

from .types import JonesVector, Vector3
from .geometry import Pose
from . import beams, jones

__all__ = ['Source', 'sync_waist_rayleigh', 'calc_source_jones', 'calc_seed_rayleigh_range', 'set_ellipse_angles']

# Floors applied to authored beam sizes and wavelengths.
MIN_WAIST = 1e-9
MIN_RAYLEIGH_RANGE = 1e-12
MIN_WAVELENGTH = 1e-12


@dataclass(eq=False)
class Source:
    """Gaussian laser source emitting along its local +Z (forward) and optionally -Z (backward).

    Exactly one of waist_um and rayleigh_mm is authoritative, according to last_edited. The other is derived with
    z_R = pi*w_0**2/(m2*lamb) by sync_waist_rayleigh.

    Attributes:
        id: Identifier allocated by the authoring layer.
        pose: Position and orientation.
        wavelength_nm: Center wavelength. Floored at MIN_WAVELENGTH when traced.
        bandwidth_nm: Spectral FWHM. Zero for monochromatic.
        spectral_samples: Number of wavelengths traced when bandwidth_nm > 0. Made odd.
        waist_um: Waist radius.
        rayleigh_mm: Rayleigh range.
        last_edited: 'waist' or 'rayleigh'.
        m2: Beam quality factor, at least 1.
        intensity: Relative intensity.
        forward_cm: Path length traced forward. Zero disables.
        backward_cm: Path length traced backward. Zero disables.
        polarization: Key of jones.PRESETS or 'Custom'.
        custom_jones: (Ex, Ey) used if polarization is 'Custom'.
    """
    id: int
    pose: Pose = field(default_factory=Pose)
    wavelength_nm: float = 632.8
    bandwidth_nm: float = 0.
    spectral_samples: int = 9
    waist_um: float = 200.
    rayleigh_mm: float = 0.
    last_edited: str = 'waist'
    m2: float = 1.
    intensity: float = 1.
    forward_cm: float = 100.
    backward_cm: float = 0.
    polarization: str = 'Linear X'
    custom_jones: Tuple[complex, complex] = (1, 0)

    def __post_init__(self):
        if self.last_edited not in ('waist', 'rayleigh'):
            raise ValueError("last_edited must be 'waist' or 'rayleigh', not %r."%self.last_edited)

    @property
    def lamb(self) -> float:
        return max(MIN_WAVELENGTH, self.wavelength_nm*1e-9)

    @property
    def effective_m2(self) -> float:
        return max(1., self.m2)

    @property
    def forward(self) -> Vector3:
        return self.pose.normal


def sync_waist_rayleigh(source: Source) -> Source:
    """Return copy of source with the field that was not last edited rederived."""
    lamb = source.lamb
    m2 = source.effective_m2
    if source.last_edited == 'waist':
        w_0 = max(MIN_WAIST, source.waist_um*1e-6)
        return replace(source, rayleigh_mm=beams.calc_rayleigh_range(w_0, lamb, m2)*1e3)
    else:
        z_R = max(MIN_RAYLEIGH_RANGE, source.rayleigh_mm*1e-3)
        return replace(source, waist_um=beams.calc_waist(z_R, lamb, m2)*1e6)


def calc_seed_rayleigh_range(source: Source, lamb: float) -> float:
    """Rayleigh range of a spectral component of the source.

    If the waist was last edited it is held fixed across wavelength, otherwise the Rayleigh range is.
    """
    if source.last_edited == 'waist':
        w_0 = max(MIN_WAIST, source.waist_um*1e-6)
        return beams.calc_rayleigh_range(w_0, lamb, source.effective_m2)
    else:
        return max(MIN_RAYLEIGH_RANGE, source.rayleigh_mm*1e-3)


def calc_source_jones(source: Source) -> JonesVector:
    return jones.make_preset(source.polarization, source.custom_jones)


def set_ellipse_angles(source: Source, psi_deg: float, chi_deg: float) -> Source:
    """Return copy with custom polarization of given ellipse orientation and ellipticity."""
    custom_jones = tuple(complex(c) for c in jones.psi_chi_to_jones(psi_deg, chi_deg))
    return replace(source, polarization='Custom', custom_jones=custom_jones)
