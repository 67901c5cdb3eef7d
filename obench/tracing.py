"""Tracing Gaussian beams through a bench of elements.

Each source is expanded into monochromatic seed paths, one per spectral sample and enabled direction. Paths are
processed first-in first-out. A path marches from element to element, carrying the beam parameter q and a Jones
vector, until it runs out of length or steps, is blocked, or hands over to the branches it forks into. Free-space
segments are densely sampled for display, and polarization snapshots are taken at fixed path-length spacing.

The result is a fresh immutable TraceResult. Nothing passed in is modified.
"""
import logging
from warnings import warn
from collections import deque
from dataclasses import dataclass, field, fields, replace
from functools import singledispatch
from types import MappingProxyType
from typing import Sequence, Mapping, Tuple, List, Optional, NamedTuple, Iterable
import numpy as np

from .types import Vector3, JonesVector, Vectors3, Scalars
from .elements import Element, Lens, Mirror, BeamSplitter, BeamBlock, Grating, Detector
from .sources import Source
from . import abcd, beams, elements, functions, geometry, jones, sources as sources_, spectrum

__all__ = ['TraceParams', 'SampleTrail', 'BeamSample', 'PolarizationSample', 'RayPath', 'CompletedPath',
    'BeamReadout', 'GratingEntry', 'GratingReadout', 'TraceResult', 'Incidence', 'make_seeds', 'interact', 'trace',
    'TERMINATIONS']

logger = logging.getLogger(__name__)

# Distance a ray is moved along its direction after leaving an element.
NUDGE = 1e-6
# Lower bound on the raycast range.
MIN_RAYCAST_DISTANCE = 1e-5
# Floor on the reference Jones norm of a source.
MIN_JONES_REFERENCE = 1e-12
# Dense samples per meter of free space, and bounds on samples per segment.
SAMPLES_PER_METER = 50
MIN_SEGMENT_SAMPLES = 10
MAX_SEGMENT_SAMPLES = 160

TERMINATIONS = ('length', 'steps', 'blocked', 'split', 'extinguished')


@dataclass(frozen=True)
class TraceParams:
    """Limits and display options of a trace.

    Attributes:
        max_steps: Maximum number of element interactions per path.
        amplitude_cutoff: Branches with relative amplitude below this are discarded.
        max_beams: No more paths are processed once completed plus queued paths reach this.
        polarization_spacing: Path length between polarization samples.
        show_polarization: Whether to take polarization samples.
        beam_width_scale: Width scale for display. Not used by the trace itself.
    """
    max_steps: int = 60
    amplitude_cutoff: float = 0.02
    max_beams: int = 600
    polarization_spacing: float = 5e-3
    show_polarization: bool = True
    beam_width_scale: float = 1.

    def __post_init__(self):
        if self.polarization_spacing <= 0:
            raise ValueError('polarization_spacing must be positive.')

    @classmethod
    def from_config(cls, config: Mapping) -> 'TraceParams':
        """Make from the 'trace' section of a configuration mapping."""
        section = dict(config.get('trace') or {})
        unknown = set(section) - set(f.name for f in fields(cls))
        if unknown:
            raise ValueError('Unknown trace parameters %s.'%', '.join(sorted(unknown)))
        return cls(**section)


@dataclass(frozen=True)
class _TrailNode:
    parent: Optional['_TrailNode']
    items: tuple
    length: int


class SampleTrail:
    """Append-only sequence whose forks share their common prefix.

    Forking freezes the unshared tail into a node referenced by both the original and the fork, so neither sees
    items appended to the other afterwards.
    """

    def __init__(self, node: _TrailNode = None):
        self._node = node
        self._tail = []

    def append(self, item):
        self._tail.append(item)

    def __len__(self):
        return (0 if self._node is None else self._node.length) + len(self._tail)

    def fork(self) -> 'SampleTrail':
        if self._tail:
            self._node = _TrailNode(self._node, tuple(self._tail), len(self))
            self._tail = []
        return SampleTrail(self._node)

    def to_list(self) -> list:
        chunks = [self._tail]
        node = self._node
        while node is not None:
            chunks.append(node.items)
            node = node.parent
        return [item for chunk in reversed(chunks) for item in chunk]


class BeamSample(NamedTuple):
    point: Vector3
    direction: Vector3
    width: float
    amplitude: float


@dataclass
class PolarizationSample:
    """Snapshot of the polarization along a path.

    Attributes:
        position: Sample point.
        direction: Propagation direction.
        jones: Jones vector, in the transverse basis of direction.
        phase: Propagation phase 2*pi*s/lamb where s is the path length from the source.
        lamb: Wavelength.
    """
    position: Vector3
    direction: Vector3
    jones: JonesVector
    phase: float
    lamb: float


@dataclass
class RayPath:
    """Beam path in flight.

    Arrays held by a path are replaced, never modified in place, so forks may share them.
    """
    position: Vector3
    direction: Vector3
    q: complex
    jones: JonesVector
    jones_reference: float
    lamb: float
    m2: float
    max_length: float
    source_id: int
    traveled: float = 0.
    ignore: Optional[int] = None
    samples: SampleTrail = field(default_factory=SampleTrail)
    polarization_samples: SampleTrail = field(default_factory=SampleTrail)
    polarization_countdown: float = 0.

    @property
    def amplitude(self) -> float:
        return jones.calc_norm(self.jones)/self.jones_reference

    @property
    def intensity(self) -> float:
        return self.amplitude**2

    @property
    def width(self) -> float:
        return abcd.calc_width(self.q, self.lamb, self.m2)

    def record(self):
        """Append a dense sample at the current position."""
        self.samples.append(BeamSample(self.position, self.direction, self.width, self.amplitude))

    def branch(self, direction: Vector3, jones_vector: JonesVector, q: complex = None) -> 'RayPath':
        """Fork a new path at the current position."""
        if q is None:
            q = self.q
        return replace(self, direction=np.asarray(direction, float), jones=np.asarray(jones_vector, complex), q=q,
            samples=self.samples.fork(), polarization_samples=self.polarization_samples.fork())

    def depart(self, element_id: int):
        """Record the state leaving an element and step clear of it."""
        self.record()
        self.ignore = element_id
        self.position = self.position + NUDGE*self.direction


@dataclass
class CompletedPath:
    """Finished path as consumed by display.

    Attributes:
        points: (N, 3) sample points.
        directions: (N, 3) propagation directions.
        widths: (N,) 1/e^2 intensity radii.
        amplitudes: (N,) field amplitudes relative to the source.
        lamb: Wavelength.
        source_id: Source the path descends from.
        termination: Why the path ended, one of TERMINATIONS.
        polarization_samples: Polarization snapshots in order along the path.
    """
    points: Vectors3
    directions: Vectors3
    widths: Scalars
    amplitudes: Scalars
    lamb: float
    source_id: int
    termination: str
    polarization_samples: Tuple[PolarizationSample, ...]

    @classmethod
    def from_path(cls, path: RayPath, termination: str):
        samples = path.samples.to_list()
        points, directions, widths, amplitudes = zip(*samples)
        return cls(np.array(points), np.array(directions), np.array(widths), np.array(amplitudes), path.lamb,
            path.source_id, termination, tuple(path.polarization_samples.to_list()))

    @property
    def color(self) -> Tuple[int, int, int]:
        return spectrum.wavelength_to_rgb(self.lamb*1e9)


@dataclass(frozen=True)
class Incidence:
    """Context of a beam striking an element."""
    aoi_deg: float
    direction: Vector3
    point: Vector3


@dataclass(frozen=True)
class BeamReadout:
    """Output beam of an element.

    Attributes:
        width: 1/e^2 intensity radius.
        waist: Waist radius.
        distance_to_waist: Positive if the waist lies ahead.
        rayleigh_range: Rayleigh range.
        roc: Wavefront radius of curvature, infinite if flat.
        intensity: Intensity relative to the source.
        psi_deg: Orientation of the polarization ellipse.
        chi_deg: Ellipticity angle of the polarization ellipse.
        aoi_deg: Angle of incidence.
        incoming_direction: Direction of the incident beam.
        position: Point where the beam struck.
        lamb: Wavelength.
    """
    width: float
    waist: float
    distance_to_waist: float
    rayleigh_range: float
    roc: float
    intensity: float
    psi_deg: float
    chi_deg: float
    aoi_deg: float
    incoming_direction: Vector3
    position: Vector3
    lamb: float

    @classmethod
    def from_path(cls, path: RayPath, incidence: Incidence) -> 'BeamReadout':
        metrics = beams.BeamMetrics.from_q(path.q, path.lamb, path.m2)
        psi_deg, chi_deg = jones.calc_ellipse_angles(path.jones)
        return cls(metrics.width, metrics.waist, metrics.distance_to_waist, metrics.rayleigh_range, metrics.roc,
            path.intensity, psi_deg, chi_deg, incidence.aoi_deg, incidence.direction, incidence.point, path.lamb)


class GratingEntry(NamedTuple):
    m: int
    angle_deg: float
    dispersion: float


@dataclass(frozen=True)
class GratingReadout:
    """Incidence angle and propagating orders of a grating, with dispersion in degrees per nm."""
    alpha_deg: float
    entries: Tuple[GratingEntry, ...]


@dataclass(frozen=True)
class TraceResult:
    paths: Tuple[CompletedPath, ...]
    readouts: Mapping[int, BeamReadout]
    grating_readouts: Mapping[int, GratingReadout]
    params: TraceParams


def make_seeds(source: Source, params: TraceParams) -> List[RayPath]:
    """Initial paths of a source, one per spectral sample and enabled direction.

    The Jones vector of each seed is scaled by sqrt(weight*intensity). Each seed starts at the source waist.
    """
    source = sources_.sync_waist_rayleigh(source)
    jones0 = sources_.calc_source_jones(source)
    reference = max(MIN_JONES_REFERENCE, jones.calc_norm(jones0))
    intensity = max(0., source.intensity)
    forward = source.forward
    directions = ((forward, source.forward_cm*1e-2), (-forward, source.backward_cm*1e-2))
    seeds = []
    for sample in spectrum.calc_spectral_samples(source):
        q = complex(0, sources_.calc_seed_rayleigh_range(source, sample.lamb))
        jones_vector = jones0*(sample.weight*intensity)**0.5
        for direction, max_length in directions:
            if max_length <= 0:
                continue
            path = RayPath(source.pose.position.copy(), direction, q, jones_vector, reference, sample.lamb,
                source.effective_m2, max_length, source.id, polarization_countdown=params.polarization_spacing/2)
            path.record()
            seeds.append(path)
    return seeds


class _Tracer:
    """Work queue and accumulated results of one trace."""

    def __init__(self, elements: Sequence[Element], params: TraceParams):
        self.elements = elements
        self.params = params
        self.queue = deque()
        self.completed = []
        self.readouts = {}
        self.grating_readouts = {}
        # Intensity of the beam that produced each grating readout.
        self.grating_intensities = {}

    def run(self):
        while self.queue and len(self.completed) + len(self.queue) < self.params.max_beams:
            path = self.queue.popleft()
            termination = self.march(path)
            self.completed.append(CompletedPath.from_path(path, termination))
        if self.queue:
            warn('Beam cap of %d reached, %d queued paths were not traced.'%(self.params.max_beams, len(self.queue)))

    def march(self, path: RayPath) -> str:
        """Advance path until it terminates."""
        for step in range(self.params.max_steps):
            if path.traveled >= path.max_length:
                return 'length'
            remaining = path.max_length - path.traveled
            hit = geometry.raycast(self.elements, path.position, path.direction,
                max(MIN_RAYCAST_DISTANCE, remaining), path.ignore)
            if hit is None:
                self.sample_segment(path, remaining)
                path.traveled += remaining
                return 'length'
            self.sample_segment(path, hit.distance)
            path.traveled += hit.distance
            path.position = hit.point
            path.q = abcd.propagate_Gaussian(path.q, hit.distance)
            incidence = Incidence(elements.calc_incidence_angle(hit.element, path.direction), path.direction,
                hit.point)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug('Source %d, %.1f nm: step %d hit %s (id %d) at %.4g m, AOI %.2f°.', path.source_id,
                    path.lamb*1e9, step, elements.describe(hit.element), hit.element.id, path.traveled,
                    incidence.aoi_deg)
            termination = interact(hit.element, path, self, incidence)
            if termination is not None:
                return termination
        if path.traveled >= path.max_length:
            return 'length'
        return 'steps'

    def sample_segment(self, path: RayPath, length: float):
        """Sample the free-space segment of given length ahead of path.

        The segment is cut at the waist if it lies strictly inside.
        """
        if self.params.show_polarization:
            path.polarization_countdown -= length
            k = 2*np.pi/path.lamb
            while path.polarization_countdown <= 0:
                distance = length + path.polarization_countdown
                path.polarization_samples.append(PolarizationSample(path.position + distance*path.direction,
                    path.direction, path.jones, k*(path.traveled + distance), path.lamb))
                path.polarization_countdown += self.params.polarization_spacing

        cuts = [0., length]
        z_waist = -path.q.real
        if 0 < z_waist < length:
            guard = max(length*1e-4, 1e-6)
            cuts += [max(0., z_waist - guard), z_waist, min(length, z_waist + guard)]
        cuts.sort()
        amplitude = path.amplitude
        for start, stop in zip(cuts[:-1], cuts[1:]):
            sub_length = stop - start
            if sub_length <= 0:
                continue
            num = min(MAX_SEGMENT_SAMPLES, max(MIN_SEGMENT_SAMPLES, int(sub_length*SAMPLES_PER_METER)))
            for z in start + np.arange(1, num + 1)/num*sub_length:
                q = abcd.propagate_Gaussian(path.q, z)
                path.samples.append(BeamSample(path.position + z*path.direction, path.direction,
                    abcd.calc_width(q, path.lamb, path.m2), amplitude))

    def propose_readout(self, element: Element, path: RayPath, incidence: Incidence):
        """Keep the readout of the most intense beam leaving each element."""
        readout = BeamReadout.from_path(path, incidence)
        current = self.readouts.get(element.id)
        if current is None or readout.intensity > current.intensity:
            self.readouts[element.id] = readout

    def propose_grating_readout(self, grating: Grating, path: RayPath, readout: GratingReadout):
        intensity = path.intensity
        if grating.id not in self.grating_readouts or intensity > self.grating_intensities[grating.id]:
            self.grating_readouts[grating.id] = readout
            self.grating_intensities[grating.id] = intensity

    def fork(self, element: Element, branches: Iterable[RayPath], incidence: Incidence):
        """Queue the branches leaving an element and record the strongest."""
        strongest = None
        for branch in branches:
            if strongest is None or branch.intensity > strongest.intensity:
                strongest = branch
            branch.depart(element.id)
            if branch.amplitude >= self.params.amplitude_cutoff:
                self.queue.append(branch)
            elif logger.isEnabledFor(logging.DEBUG):
                logger.debug('Discarded branch of amplitude %.3g at %s.', branch.amplitude, elements.describe(element))
        if strongest is not None:
            self.propose_readout(element, strongest, incidence)

    def result(self) -> TraceResult:
        return TraceResult(tuple(self.completed), MappingProxyType(self.readouts),
            MappingProxyType(self.grating_readouts), self.params)


@singledispatch
def interact(element: Element, path: RayPath, tracer: _Tracer, incidence: Incidence) -> Optional[str]:
    """Apply element to a path that has just struck it.

    Single-branch elements update the path in place and return None. Otherwise the path ends and the reason is
    returned.
    """
    path.q = elements.transform_q(element, path.q)
    path.jones = elements.transform_jones(element, path.jones, path.direction)
    tracer.propose_readout(element, path, incidence)
    path.depart(element.id)
    return None


@interact.register
def _(self: BeamBlock, path: RayPath, tracer: _Tracer, incidence: Incidence) -> Optional[str]:
    return 'blocked'


@interact.register
def _(self: Detector, path: RayPath, tracer: _Tracer, incidence: Incidence) -> Optional[str]:
    tracer.propose_readout(self, path, incidence)
    path.depart(self.id)
    return None


@interact.register
def _(self: Lens, path: RayPath, tracer: _Tracer, incidence: Incidence) -> Optional[str]:
    path.q = elements.transform_q(self, path.q)
    path.direction = elements.calc_lens_direction(self, path.position, path.direction)
    tracer.propose_readout(self, path, incidence)
    path.depart(self.id)
    return None


@interact.register
def _(self: BeamSplitter, path: RayPath, tracer: _Tracer, incidence: Incidence) -> Optional[str]:
    transmitted_jones, reflected_jones = elements.split_jones(self, path.jones)
    reflected_direction = functions.normalize(functions.reflect_vector(path.direction, self.normal))
    tracer.fork(self, (path.branch(path.direction, transmitted_jones),
        path.branch(reflected_direction, reflected_jones)), incidence)
    return 'split'


@interact.register
def _(self: Mirror, path: RayPath, tracer: _Tracer, incidence: Incidence) -> Optional[str]:
    reflectance, transmittance = elements.calc_mirror_coefficients(self, path.lamb)
    branches = []
    if transmittance > 0:
        branches.append(path.branch(path.direction, transmittance**0.5*path.jones,
            elements.calc_transmitted_q(self, path.q)))
    if reflectance > 0:
        reflected_direction = functions.normalize(functions.reflect_vector(path.direction, self.normal))
        branches.append(path.branch(reflected_direction, elements.reflect_jones(path.jones, reflectance**0.5),
            elements.transform_q(self, path.q)))
    tracer.fork(self, branches, incidence)
    return 'split'


@interact.register
def _(self: Grating, path: RayPath, tracer: _Tracer, incidence: Incidence) -> Optional[str]:
    alpha_deg, orders = elements.calc_grating_orders(self, path.direction, path.lamb)
    tracer.propose_grating_readout(self, path,
        GratingReadout(alpha_deg, tuple(GratingEntry(o.m, o.angle_deg, o.dispersion) for o in orders)))
    # Power is shared between all propagating orders, including hidden ones.
    gain = len(orders)**-0.5 if orders else 0.
    branches = []
    for order in orders:
        if order.m in self.hidden_orders:
            continue
        if self.reflective:
            jones_vector = elements.reflect_jones(path.jones, gain)
        else:
            jones_vector = gain*path.jones
        branches.append(path.branch(order.direction, jones_vector))
    if not branches:
        return 'extinguished'
    tracer.fork(self, branches, incidence)
    return 'split'


def trace(sources: Sequence[Source], elements: Sequence[Element], params: TraceParams = None) -> TraceResult:
    """Trace all beams of a bench.

    Args:
        sources: Sources to seed paths from.
        elements: Elements on the bench, with unique ids.
        params: Limits and options. Defaults are used if None.

    Returns:
        Completed paths in the order they finished, and readouts keyed by element id.
    """
    if params is None:
        params = TraceParams()
    ids = [element.id for element in elements]
    if len(set(ids)) != len(ids):
        raise ValueError('Element ids must be unique.')
    tracer = _Tracer(tuple(elements), params)
    for source in sources:
        tracer.queue.extend(make_seeds(source, params))
    logger.debug('Tracing %d seed paths through %d elements.', len(tracer.queue), len(ids))
    tracer.run()
    return tracer.result()
