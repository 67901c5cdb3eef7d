"""Building benches from plain data and YAML scene files.

A scene is a mapping with lists under 'sources' and 'elements'. Every entry may give position (m), rotation_deg
(intrinsic YXZ Euler angles) or quaternion (x, y, z, w), scale and id. Ids are allocated for entries without one.
Elements need a type, a key of ELEMENT_TYPES. The remaining keys are the attributes of the source or element
class, e.g.

    sources:
      - position: [0, 0, 0]
        wavelength_nm: 632.8
        waist_um: 200
        polarization: Custom
        custom_jones: ['1', '0.5-0.5i']
    elements:
      - type: lens
        position: [0, 0, 0.05]
        f: 0.05
      - type: detector
        position: [0, 0, 0.15]

A source may instead set its polarization with psi_deg and chi_deg.
"""
import itertools
from dataclasses import dataclass, fields
from typing import Mapping, List, Sequence, Iterable
import yaml

from .geometry import Pose
from .elements import (Element, Lens, Mirror, Polarizer, Waveplate, FaradayRotator, BeamSplitter, BeamBlock, Grating,
    Detector)
from .sources import Source, set_ellipse_angles
from . import jones

__all__ = ['SceneError', 'IdAllocator', 'Scene', 'ELEMENT_TYPES', 'make_element', 'make_source', 'make_scene',
    'load_scene']

ELEMENT_TYPES = {
    'lens': Lens,
    'mirror': Mirror,
    'polarizer': Polarizer,
    'waveplate': Waveplate,
    'faraday': FaradayRotator,
    'beam_splitter': BeamSplitter,
    'beam_block': BeamBlock,
    'grating': Grating,
    'detector': Detector
}

# Alternative type names.
_TYPE_ALIASES = {'beamSplitter': 'beam_splitter', 'beamBlock': 'beam_block', 'multimeter': 'detector',
    'faraday_rotator': 'faraday'}

_POSE_KEYS = {'position', 'rotation_deg', 'quaternion', 'scale'}


class SceneError(ValueError):
    pass


class IdAllocator:
    """Hands out unique integer ids, skipping any reserved explicitly."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._used = set()

    def reserve(self, id: int) -> int:
        if id in self._used:
            raise SceneError('Duplicate id %d.'%id)
        self._used.add(id)
        return id

    def allocate(self) -> int:
        for id in self._counter:
            if id not in self._used:
                self._used.add(id)
                return id


@dataclass
class Scene:
    sources: List[Source]
    elements: List[Element]


def _make_pose(entry: Mapping) -> Pose:
    try:
        return Pose.make(entry.get('position', (0, 0, 0)), entry.get('quaternion'), entry.get('rotation_deg'),
            entry.get('scale', (1, 1, 1)))
    except ValueError as e:
        raise SceneError('Invalid pose: %s'%e) from e


def _check_keys(entry: Mapping, allowed: Iterable[str], what: str):
    unknown = set(entry) - set(allowed)
    if unknown:
        raise SceneError('Unknown %s properties: %s.'%(what, ', '.join(sorted(unknown))))


def _convert_element_props(props: dict) -> dict:
    for key in 'size', 'reflect_band_nm', 'transmit_band_nm':
        if key in props:
            props[key] = tuple(float(x) for x in props[key])
    if 'hidden_orders' in props:
        props['hidden_orders'] = frozenset(int(m) for m in props['hidden_orders'])
    return props


def make_element(entry: Mapping, id: int) -> Element:
    """Make element from its scene entry. Any id in the entry is ignored in favour of the one given."""
    entry = dict(entry)
    try:
        type_name = entry.pop('type')
    except KeyError:
        raise SceneError('Element has no type.') from None
    type_name = _TYPE_ALIASES.get(type_name, type_name)
    try:
        cls = ELEMENT_TYPES[type_name]
    except KeyError:
        raise SceneError('Unknown element type %r.'%type_name) from None
    prop_names = set(f.name for f in fields(cls)) - {'id', 'pose'}
    _check_keys(entry, prop_names | _POSE_KEYS | {'id'}, type_name)
    pose = _make_pose(entry)
    props = _convert_element_props({key: entry[key] for key in prop_names if key in entry})
    try:
        return cls(id=id, pose=pose, **props)
    except (ValueError, TypeError) as e:
        raise SceneError('Invalid %s: %s'%(type_name, e)) from e


def make_source(entry: Mapping, id: int) -> Source:
    """Make source from its scene entry. Any id in the entry is ignored in favour of the one given."""
    entry = dict(entry)
    prop_names = set(f.name for f in fields(Source)) - {'id', 'pose'}
    _check_keys(entry, prop_names | _POSE_KEYS | {'id', 'psi_deg', 'chi_deg'}, 'source')
    pose = _make_pose(entry)
    props = {key: entry[key] for key in prop_names if key in entry}
    try:
        if 'custom_jones' in props:
            props['custom_jones'] = tuple(jones.parse_complex(str(c)) for c in props['custom_jones'])
        source = Source(id=id, pose=pose, **props)
        if 'psi_deg' in entry or 'chi_deg' in entry:
            source = set_ellipse_angles(source, float(entry.get('psi_deg', 0)), float(entry.get('chi_deg', 0)))
        # Validates preset name.
        jones.make_preset(source.polarization, source.custom_jones)
    except (ValueError, TypeError) as e:
        raise SceneError('Invalid source: %s'%e) from e
    return source


def _assign_ids(entries: Sequence[Mapping], ids: IdAllocator) -> List[int]:
    """Reserve explicit ids, then allocate the rest in order."""
    try:
        for entry in entries:
            if 'id' in entry:
                ids.reserve(int(entry['id']))
        return [int(entry['id']) if 'id' in entry else ids.allocate() for entry in entries]
    except (ValueError, TypeError) as e:
        raise SceneError('Invalid id: %s'%e) from e


def make_scene(data: Mapping) -> Scene:
    """Build sources and elements from a scene mapping.

    Raises:
        SceneError: If the scene is malformed.
    """
    if not isinstance(data, Mapping):
        raise SceneError('Scene must be a mapping, not %s.'%type(data).__name__)
    _check_keys(data, ('sources', 'elements'), 'scene')
    source_entries = list(data.get('sources') or ())
    element_entries = list(data.get('elements') or ())
    entries = source_entries + element_entries
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise SceneError('Scene entries must be mappings.')
    ids = _assign_ids(entries, IdAllocator())
    sources = [make_source(entry, id) for entry, id in zip(source_entries, ids)]
    elements = [make_element(entry, id) for entry, id in zip(element_entries, ids[len(source_entries):])]
    return Scene(sources, elements)


def load_scene(path) -> Scene:
    """Load a YAML scene file.

    Raises:
        SceneError: If the file is not valid YAML or the scene is malformed.
    """
    with open(path, 'rt') as file:
        try:
            data = yaml.safe_load(file)
        except yaml.YAMLError as e:
            raise SceneError('Cannot parse %s: %s'%(path, e)) from e
    return make_scene(data)
