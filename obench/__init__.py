"""Gaussian beam optical bench.

Sources and elements with poses in 3D are traced by tracing.trace, which follows the complex beam parameter and the
Jones vector of every beam through reflections, refractions, splits and diffraction orders.
"""
from .geometry import Pose
from .elements import Lens, Mirror, Polarizer, Waveplate, FaradayRotator, BeamSplitter, BeamBlock, Grating, Detector
from .sources import Source
from .tracing import TraceParams, TraceResult, trace
