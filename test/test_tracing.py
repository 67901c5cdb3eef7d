import warnings
import numpy as np
import pytest
from obench import tracing, abcd, beams
from obench.geometry import Pose
from obench.sources import Source
from obench.elements import (Lens, Mirror, Polarizer, Waveplate, BeamSplitter, BeamBlock, Grating, Detector,
    FaradayRotator)

lamb = 632.8e-9


def make_source(**kwargs):
    return Source(100, **kwargs)


def test_focusing_scenario():
    source = make_source(waist_um=200, forward_cm=100)
    lens = Lens(1, Pose.make((0, 0, 0.05)), f=0.05)
    detector = Detector(2, Pose.make((0, 0, 0.15)))
    result = tracing.trace([source], [lens, detector])

    z_R = beams.calc_rayleigh_range(200e-6, lamb)
    q1 = abcd.propagate_Gaussian(1j*z_R, 0.05)
    q2 = abcd.transform_Gaussian(abcd.thin_lens(0.05), q1)
    q3 = abcd.propagate_Gaussian(q2, 0.1)

    readout = result.readouts[lens.id]
    assert np.isclose(readout.intensity, 1)
    assert np.isclose(readout.aoi_deg, 0)
    assert np.isclose(readout.distance_to_waist, -q2.real)

    readout = result.readouts[detector.id]
    # Tolerance covers the step taken clear of the lens.
    assert np.isclose(readout.distance_to_waist, -q3.real, atol=1e-5)
    assert np.isclose(readout.waist, (q3.imag*lamb/np.pi)**0.5)
    assert np.isclose(readout.rayleigh_range, q3.imag)
    assert np.isclose(readout.width, abcd.calc_width(q3, lamb), rtol=1e-4)
    assert np.isclose(readout.lamb, lamb)
    assert np.allclose(readout.position, (0, 0, 0.15))
    assert np.allclose(readout.incoming_direction, (0, 0, 1))

    path, = result.paths
    assert path.termination == 'length'
    assert np.allclose(path.points[-1], (0, 0, 1), atol=1e-5)
    assert path.points.shape == (len(path.widths), 3)
    assert path.directions.shape == path.points.shape
    # The segment through the focus is cut at the waist.
    assert np.isclose(path.widths.min(), (q3.imag*lamb/np.pi)**0.5, rtol=1e-4)
    assert np.allclose(path.amplitudes, 1)


def test_detector_at_waist():
    source = make_source(waist_um=200)
    detector = Detector(1, Pose.make((0, 0, 1e-6)))
    readout = tracing.trace([source], [detector]).readouts[detector.id]
    assert np.isclose(readout.waist, 200e-6)
    assert np.isclose(readout.width, 200e-6)
    assert abs(readout.roc) > 1e3
    assert np.isclose(readout.distance_to_waist, -1e-6)


def test_beam_block():
    source = make_source()
    block = BeamBlock(1, Pose.make((0, 0, 0.05)))
    detector = Detector(2, Pose.make((0, 0, 0.1)))
    result = tracing.trace([source], [block, detector])
    assert detector.id not in result.readouts
    path, = result.paths
    assert path.termination == 'blocked'
    assert np.allclose(path.points[-1], (0, 0, 0.05))


def test_flat_mirror():
    source = make_source()
    mirror = Mirror(1, Pose.make((0, 0, 0.05)))
    result = tracing.trace([source], [mirror])
    assert np.isclose(result.readouts[mirror.id].intensity, 1)
    parent, reflected = result.paths
    assert parent.termination == 'split'
    assert np.array_equal(reflected.directions[-1], (0, 0, -1))
    assert np.allclose(reflected.amplitudes, 1)
    assert np.allclose(reflected.points[-1], (0, 0, -0.9), atol=1e-5)
    # Branch history includes the parent's.
    assert np.array_equal(reflected.points[:len(parent.points)], parent.points)


def test_curved_mirror():
    source = make_source()
    mirror = Mirror(1, Pose.make((0, 0, 0.05)), flat=False, roc=0.2)
    readout = tracing.trace([source], [mirror]).readouts[mirror.id]
    z_R = beams.calc_rayleigh_range(200e-6, lamb)
    q = abcd.transform_Gaussian(abcd.spherical_mirror(0.2), 0.05 + 1j*z_R)
    assert np.isclose(readout.distance_to_waist, -q.real)
    assert np.isclose(readout.rayleigh_range, q.imag)


def test_beam_splitter():
    source = make_source()
    splitter = BeamSplitter(1, Pose.make((0, 0, 0.05), euler_deg=(45, 0, 0)), reflectance=0.5)
    transmitted_detector = Detector(2, Pose.make((0, 0, 0.1)))
    reflected_detector = Detector(3, Pose.make((-0.05, 0, 0.05), euler_deg=(90, 0, 0)))
    result = tracing.trace([source], [splitter, transmitted_detector, reflected_detector])
    transmitted = result.readouts[transmitted_detector.id]
    reflected = result.readouts[reflected_detector.id]
    assert np.isclose(transmitted.intensity, 0.5)
    assert np.isclose(reflected.intensity, 0.5)
    assert np.isclose(transmitted.intensity + reflected.intensity, 1)
    assert np.allclose(reflected.incoming_direction, (-1, 0, 0))
    assert np.isclose(reflected.aoi_deg, 0, atol=1e-5)
    assert np.isclose(result.readouts[splitter.id].aoi_deg, 45)
    assert np.isclose(result.readouts[splitter.id].intensity, 0.5)
    assert [path.termination for path in result.paths] == ['split', 'length', 'length']


def test_polarizing_beam_splitter():
    source = make_source(polarization='+45°')
    splitter = BeamSplitter(1, Pose.make((0, 0, 0.05), euler_deg=(45, 0, 0)), polarizing=True)
    transmitted_detector = Detector(2, Pose.make((0, 0, 0.1)))
    result = tracing.trace([source], [splitter, transmitted_detector])
    readout = result.readouts[transmitted_detector.id]
    assert np.isclose(readout.intensity, 0.5)
    # Vertical is transmitted.
    assert np.isclose(abs(readout.psi_deg), 90)


def test_dichroic_mirror():
    mirror = Mirror(1, Pose.make((0, 0, 0.05), euler_deg=(45, 0, 0)), dichroic=True, reflect_band_nm=(400, 700),
        transmit_band_nm=(700, 1100))
    detector = Detector(2, Pose.make((0, 0, 0.1)))
    result = tracing.trace([make_source(wavelength_nm=800)], [mirror, detector])
    assert np.isclose(result.readouts[detector.id].intensity, 1)

    result = tracing.trace([make_source(wavelength_nm=532)], [mirror, detector])
    assert detector.id not in result.readouts
    assert np.allclose(result.paths[-1].directions[-1], (-1, 0, 0))


def test_grating():
    source = make_source()
    grating = Grating(1, Pose.make((0, 0, 0.05)), spacing_um=1, orders=3)
    result = tracing.trace([source], [grating])
    readout = result.grating_readouts[grating.id]
    assert np.isclose(readout.alpha_deg, 0)
    assert [entry.m for entry in readout.entries] == [-1, 0, 1]
    for entry in readout.entries:
        assert np.isclose(entry.angle_deg, np.degrees(np.arcsin(-entry.m*lamb/1e-6)))
    assert np.isclose(result.readouts[grating.id].intensity, 1/3)

    parent, *branches = result.paths
    assert parent.termination == 'split'
    assert len(branches) == 3
    for branch, entry in zip(branches, readout.entries):
        beta = np.radians(entry.angle_deg)
        assert np.allclose(branch.directions[-1], (np.sin(beta), 0, -np.cos(beta)))
        assert np.isclose(branch.amplitudes[-1], 3**-0.5)


def test_grating_hidden_orders():
    source = make_source()
    grating = Grating(1, Pose.make((0, 0, 0.05)), spacing_um=1, orders=3, hidden_orders={0})
    result = tracing.trace([source], [grating])
    assert len(result.paths) == 3
    # Hidden orders still take their share.
    assert all(np.isclose(path.amplitudes[-1], 3**-0.5) for path in result.paths[1:])
    assert len(result.grating_readouts[grating.id].entries) == 3

    grating = Grating(1, Pose.make((0, 0, 0.05)), spacing_um=1, orders=3, hidden_orders={-1, 0, 1})
    result = tracing.trace([source], [grating])
    path, = result.paths
    assert path.termination == 'extinguished'


def test_waveplates():
    detector = Detector(2, Pose.make((0, 0, 0.1)))
    for axis_deg, psi_deg in (0, 0), (45, 90):
        waveplate = Waveplate(1, Pose.make((0, 0, 0.05)), kind='HWP', axis_deg=axis_deg)
        readout = tracing.trace([make_source()], [waveplate, detector]).readouts[detector.id]
        assert np.isclose(abs(readout.psi_deg), psi_deg)
        assert np.isclose(readout.chi_deg, 0, atol=1e-6)
        assert np.isclose(readout.intensity, 1)

    waveplate = Waveplate(1, Pose.make((0, 0, 0.05)), kind='QWP', axis_deg=45)
    readout = tracing.trace([make_source()], [waveplate, detector]).readouts[detector.id]
    assert np.isclose(abs(readout.chi_deg), 45)


def test_polarizer():
    detector = Detector(2, Pose.make((0, 0, 0.1)))
    polarizer = Polarizer(1, Pose.make((0, 0, 0.05)), axis_deg=60)
    readout = tracing.trace([make_source()], [polarizer, detector]).readouts[detector.id]
    assert np.isclose(readout.intensity, 0.25)
    assert np.isclose(readout.psi_deg, 60)


def test_faraday_rotator():
    rotator = FaradayRotator(1, Pose.make((0, 0, 0.05)), rotation_deg=45)
    detector = Detector(2, Pose.make((0, 0, 0.1)))
    readout = tracing.trace([make_source()], [rotator, detector]).readouts[detector.id]
    assert np.isclose(abs(readout.psi_deg), 45)


def test_off_axis_lens():
    source = make_source(pose=Pose.make((1e-3, 0, 0)))
    lens = Lens(1, Pose.make((0, 0, 0.05)), f=0.05)
    detector = Detector(2, Pose.make((0, 0, 0.1)))
    readout = tracing.trace([source], [lens, detector]).readouts[detector.id]
    assert np.allclose(readout.position, (0, 0, 0.1), atol=1e-7)
    assert np.isclose(readout.aoi_deg, np.degrees(np.arctan(1e-3/0.05)))


def test_spectral_seeding():
    source = make_source(bandwidth_nm=10, spectral_samples=3, backward_cm=50)
    detector = Detector(1, Pose.make((0, 0, 0.1)))
    result = tracing.trace([source], [detector])
    assert len(result.paths) == 6
    assert np.allclose(sorted(set(path.lamb for path in result.paths)), (627.8e-9, 632.8e-9, 637.8e-9), atol=0)
    # Initial intensities sum to the source intensity in each direction.
    forward = [path for path in result.paths if path.directions[0][2] > 0]
    assert np.isclose(sum(path.amplitudes[0]**2 for path in forward), 1)
    backward = [path for path in result.paths if path.directions[0][2] < 0]
    assert len(backward) == 3
    assert np.allclose(backward[0].points[-1], (0, 0, -0.5))
    # Readout is of the strongest spectral component.
    readout = result.readouts[detector.id]
    assert np.isclose(readout.intensity, 0.5)
    assert np.isclose(readout.lamb, 632.8e-9, atol=0)


def test_polarization_samples():
    source = make_source(forward_cm=1)
    path, = tracing.trace([source], []).paths
    assert len(path.polarization_samples) == 2
    for sample, distance in zip(path.polarization_samples, (2.5e-3, 7.5e-3)):
        assert np.allclose(sample.position, (0, 0, distance))
        assert np.isclose(sample.phase, 2*np.pi/lamb*distance)
        assert np.allclose(sample.jones, (1, 0))
        assert np.isclose(sample.lamb, lamb, atol=0)

    path, = tracing.trace([source], [], tracing.TraceParams(show_polarization=False)).paths
    assert len(path.polarization_samples) == 0


def test_polarization_samples_across_reflection():
    source = make_source(forward_cm=2)
    mirror = Mirror(1, Pose.make((0, 0, 6e-3)))
    parent, reflected = tracing.trace([source], [mirror]).paths
    assert len(parent.polarization_samples) == 1
    # The branch keeps the parent's samples and continues the spacing along the folded path.
    assert reflected.polarization_samples[0] is parent.polarization_samples[0]
    distances = 2.5e-3, 7.5e-3, 12.5e-3, 17.5e-3
    heights = 2.5e-3, 4.5e-3, -0.5e-3, -5.5e-3
    assert len(reflected.polarization_samples) == 4
    for sample, distance, z in zip(reflected.polarization_samples, distances, heights):
        assert np.allclose(sample.position, (0, 0, z), atol=1e-5)
        assert np.isclose(sample.phase, 2*np.pi/lamb*distance)
    assert np.allclose([sample.direction[2] for sample in reflected.polarization_samples], (1, -1, -1, -1))
    assert np.allclose(reflected.polarization_samples[-1].jones, (1, 0))


def test_degenerate_element_values():
    detector = Detector(2, Pose.make((0, 0, 0.15)))
    lens = Lens(1, Pose.make((0, 0, 0.05)), f=0.)
    readout = tracing.trace([make_source()], [lens, detector]).readouts[detector.id]
    # Zero focal length is taken as 1 m.
    expected = tracing.trace([make_source()], [Lens(1, Pose.make((0, 0, 0.05)), f=1.), detector]).readouts[2]
    assert np.isclose(readout.distance_to_waist, expected.distance_to_waist)

    mirror = Mirror(1, Pose.make((0, 0, 0.05)), flat=False, roc=0.)
    readout = tracing.trace([make_source()], [mirror]).readouts[mirror.id]
    assert np.isfinite(readout.width)
    assert readout.rayleigh_range > 0

    grating = Grating(1, Pose.make((0, 0, 0.05)), spacing_um=0.)
    result = tracing.trace([make_source()], [grating])
    assert [entry.m for entry in result.grating_readouts[grating.id].entries] == [0]
    assert len(result.paths) == 2

    result = tracing.trace([make_source(wavelength_nm=0)], [detector])
    readout = result.readouts[detector.id]
    assert readout.lamb > 0
    assert np.isfinite(readout.width)


def test_dense_samples():
    path, = tracing.trace([make_source()], []).paths
    # One sample at the source and 50 per meter.
    assert len(path.points) == 51
    assert np.all(np.diff(path.widths) > 0)
    assert np.allclose(path.points[:, 2], np.linspace(0, 1, 51))
    assert path.color[0] == 255 and path.color[2] == 0


def test_step_limit():
    detectors = [Detector(n, Pose.make((0, 0, 0.05*n))) for n in (1, 2, 3)]
    result = tracing.trace([make_source()], detectors, tracing.TraceParams(max_steps=2))
    path, = result.paths
    assert path.termination == 'steps'
    assert 3 not in result.readouts
    assert 2 in result.readouts


def test_beam_cap():
    # Lossless cavity spawns one branch per bounce.
    mirrors = [Mirror(1, Pose.make((0, 0, 0.05))), Mirror(2, Pose.make((0, 0, 0.1)))]
    source = make_source(pose=Pose.make((0, 0, 0.07)))
    with pytest.warns(UserWarning):
        result = tracing.trace([source], mirrors, tracing.TraceParams(max_beams=10))
    assert len(result.paths) == 9


def test_beam_cap_monotonic():
    mirrors = [Mirror(1, Pose.make((0, 0, 0.05)), reflectance=0.5),
        Mirror(2, Pose.make((0, 0, 0.1)), reflectance=0.5)]
    source = make_source()
    with pytest.warns(UserWarning):
        small = tracing.trace([source], mirrors, tracing.TraceParams(max_beams=5))
    with warnings.catch_warnings():
        warnings.simplefilter('error', UserWarning)
        large = tracing.trace([source], mirrors)
    assert len(large.paths) > len(small.paths)
    for path0, path1 in zip(small.paths, large.paths):
        assert np.array_equal(path0.points, path1.points)
        assert np.array_equal(path0.amplitudes, path1.amplitudes)
    # Branches below the amplitude cutoff are discarded.
    assert all(path.amplitudes[-1] >= 0.02 for path in large.paths)


def test_trace_does_not_modify_inputs():
    source = make_source(waist_um=150)
    lens = Lens(1, Pose.make((0, 0, 0.05)), f=0.1)
    position = lens.pose.position.copy()
    tracing.trace([source], [lens])
    assert source.rayleigh_mm == 0
    assert np.array_equal(lens.pose.position, position)


def test_result_is_read_only():
    result = tracing.trace([make_source()], [Detector(1, Pose.make((0, 0, 0.1)))])
    with pytest.raises(TypeError):
        result.readouts[2] = None


def test_duplicate_ids():
    with pytest.raises(ValueError):
        tracing.trace([make_source()], [Detector(1), Detector(1, Pose.make((0, 0, 0.1)))])


def test_TraceParams_from_config():
    assert tracing.TraceParams.from_config({}) == tracing.TraceParams()
    params = tracing.TraceParams.from_config({'trace': {'max_steps': 5, 'amplitude_cutoff': 0.1}})
    assert params.max_steps == 5
    assert params.amplitude_cutoff == 0.1
    with pytest.raises(ValueError):
        tracing.TraceParams.from_config({'trace': {'max_step': 5}})
    with pytest.raises(ValueError):
        tracing.TraceParams(polarization_spacing=0)


def test_SampleTrail():
    trail = tracing.SampleTrail()
    trail.append(1)
    trail.append(2)
    fork1 = trail.fork()
    fork2 = trail.fork()
    fork1.append(3)
    fork2.append(4)
    trail.append(5)
    assert fork1.to_list() == [1, 2, 3]
    assert fork2.to_list() == [1, 2, 4]
    assert trail.to_list() == [1, 2, 5]
    assert len(fork1) == 3
    fork3 = fork1.fork()
    fork3.append(6)
    assert fork3.to_list() == [1, 2, 3, 6]
    assert fork1.to_list() == [1, 2, 3]
