"""Poses and ray intersection with the flat collision panels of elements.

Frame convention used throughout the package: local +Z is the normal of an element and the forward direction of a
source, local +X is the in-plane reference axis of an element (polarizer and waveplate axis at 0 degrees, grating
vector) and local +Y is up. Transverse polarization bases are built from world +Y (see
functions.calc_transverse_basis).
"""
from dataclasses import dataclass, field, replace
from typing import Sequence, Iterable, Optional
import numpy as np
from scipy.spatial.transform import Rotation

from .types import Vector3, Sequence3
from . import functions

__all__ = ['Pose', 'Hit', 'intersect_panel', 'raycast', 'set_incidence_angle', 'MIN_HIT_DISTANCE']

# Intersections closer than this to the ray origin are ignored.
MIN_HIT_DISTANCE = 1e-8


@dataclass(eq=False)
class Pose:
    """Position, orientation and (anisotropic) scale of an object in world coordinates.

    Attributes:
        position: (3,) array.
        rotation: Local-to-world rotation.
        scale: Local axis scale factors, applied to panel sizes.
    """
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: Rotation = field(default_factory=Rotation.identity)
    scale: np.ndarray = field(default_factory=lambda: np.ones(3))

    def __post_init__(self):
        self.position = np.asarray(self.position, float)
        self.scale = np.asarray(self.scale, float)
        if self.position.shape != (3,):
            raise ValueError('position must have shape (3,), not %s.'%(self.position.shape,))
        if self.scale.shape != (3,):
            raise ValueError('scale must have shape (3,), not %s.'%(self.scale.shape,))

    @classmethod
    def make(cls, position: Sequence3 = (0, 0, 0), quaternion: Sequence[float] = None,
            euler_deg: Sequence3 = None, scale: Sequence3 = (1, 1, 1)) -> 'Pose':
        """Convenience constructor.

        Args:
            position: World position.
            quaternion: Scalar-last (x, y, z, w) quaternion.
            euler_deg: Intrinsic YXZ Euler angles (yaw, pitch, roll) in degrees. Ignored if quaternion is given.
            scale: Local axis scale factors.
        """
        if quaternion is not None:
            rotation = Rotation.from_quat(quaternion)
        elif euler_deg is not None:
            rotation = Rotation.from_euler('YXZ', euler_deg, degrees=True)
        else:
            rotation = Rotation.identity()
        return cls(np.asarray(position, float), rotation, np.asarray(scale, float))

    @property
    def normal(self) -> Vector3:
        return self.rotation.apply(functions.zhat)

    @property
    def x_axis(self) -> Vector3:
        return self.rotation.apply(functions.xhat)

    @property
    def y_axis(self) -> Vector3:
        return self.rotation.apply(functions.yhat)

    def to_local(self, point: Vector3) -> Vector3:
        return self.rotation.inv().apply(np.asarray(point) - self.position)/self.scale

    def rotate(self, rotation: Rotation) -> 'Pose':
        """Return copy rotated in world coordinates about its position."""
        return replace(self, rotation=rotation*self.rotation)


@dataclass
class Hit:
    distance: float
    point: Vector3
    element: object


def intersect_panel(pose: Pose, size: Sequence[float], origin: Vector3, direction: Vector3) -> float:
    """Distance along ray to a rectangular panel in the local XY plane of pose.

    Args:
        pose: Pose of the panel. The panel is centered on pose.position.
        size: (width, height) of the panel before scaling.
        origin: Ray origin.
        direction: Normalized ray direction.

    Returns:
        Distance to intersection, possibly negative, or infinity if the ray misses.
    """
    normal = pose.normal
    d = np.dot(direction, normal)
    if abs(d) < 1e-12:
        return float('inf')
    t = np.dot(pose.position - origin, normal)/d
    x, y, _ = pose.to_local(origin + t*direction)
    if abs(x) <= size[0]/2 and abs(y) <= size[1]/2:
        return float(t)
    return float('inf')


def raycast(elements: Iterable, origin: Vector3, direction: Vector3, max_distance: float,
        ignore: Optional[int] = None) -> Optional[Hit]:
    """Find nearest element panel struck by a ray.

    Args:
        elements: Objects with pose, size and id attributes.
        origin: Ray origin.
        direction: Normalized ray direction.
        max_distance: Hits further than this are ignored.
        ignore: Id of element to skip, usually the one the ray just left.

    Returns:
        Nearest hit with MIN_HIT_DISTANCE < distance <= max_distance, or None.
    """
    nearest = None
    for element in elements:
        if ignore is not None and element.id == ignore:
            continue
        t = intersect_panel(element.pose, element.size, origin, direction)
        if MIN_HIT_DISTANCE < t <= max_distance and (nearest is None or t < nearest.distance):
            nearest = Hit(t, origin + t*direction, element)
    return nearest


def set_incidence_angle(pose: Pose, incoming: Vector3, current_deg: float, target_deg: float) -> Pose:
    """Rotate an element so that a beam arriving along incoming meets it at target_deg.

    The rotation axis is perpendicular to the incoming direction and the element normal. At normal incidence this is
    degenerate and the element's local X axis is used. Roll (the Z angle of the intrinsic YXZ Euler decomposition) is
    removed afterwards.

    Args:
        pose: Current pose.
        incoming: Direction of the incident beam.
        current_deg: Present angle of incidence, in degrees.
        target_deg: Wanted angle of incidence, in degrees.

    Returns:
        New pose.
    """
    delta = np.radians(target_deg - current_deg)
    axis = np.cross(incoming, pose.normal)
    if functions.norm_squared(axis) < 1e-6:
        axis = pose.x_axis
    axis = functions.normalize(axis)
    rotated = pose.rotate(Rotation.from_rotvec(axis*delta))
    yaw, pitch, _ = rotated.rotation.as_euler('YXZ')
    return replace(rotated, rotation=Rotation.from_euler('YXZ', (yaw, pitch, 0.)))
