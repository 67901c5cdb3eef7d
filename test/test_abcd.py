import numpy as np
from obench import abcd, beams


def test_propagate_Gaussian():
    for q in 1j, 0.3 + 2j, -0.5 + 0.01j:
        for d in 0, 0.1, 2.5:
            q2 = abcd.propagate_Gaussian(q, d)
            assert np.isclose(q2.imag, q.imag)
            assert np.isclose(q2.real, q.real + d)
            assert np.isclose(abcd.transform_Gaussian(abcd.propagation(d), q), q2)


def test_thin_lens_imaging():
    lamb = 1e-6
    f = 0.1
    z_R = 0.02
    # Waist at the front focal plane is reimaged to the back focal plane.
    q1 = abcd.propagate_Gaussian(1j*z_R, f)
    q2 = abcd.transform_Gaussian(abcd.thin_lens(f), q1)
    assert np.isclose(-q2.real, f)
    assert np.isclose(abcd.calc_width(q2 + f, lamb), beams.calc_waist(f**2/z_R, lamb))


def test_spherical_mirror_equals_lens():
    q = 0.05 + 0.2j
    assert np.isclose(abcd.transform_Gaussian(abcd.spherical_mirror(0.4), q),
        abcd.transform_Gaussian(abcd.thin_lens(0.2), q))


def test_curved_interface():
    assert np.allclose(abcd.curved_interface(1, 1.5, np.inf), abcd.interface(1, 1.5))
    # Thin plano-convex lens: lensmaker's equation.
    n = 1.5
    roc = 0.1
    m = abcd.interface(n, 1).dot(abcd.curved_interface(1, n, roc))
    assert np.isclose(m[1, 0], -(n - 1)/roc)
    assert np.isclose(np.linalg.det(m), 1)


def test_Gaussian_q_to_wR():
    lamb = 800e-9
    for m2 in 1, 1.5:
        for w, R in (1e-3, 2), (50e-6, -0.3):
            q = 1/(1/R - 1j*m2*lamb/(np.pi*w**2))
            assert q.imag > 0
            w_, R_ = abcd.Gaussian_q_to_wR(q, lamb, m2)
            assert np.isclose(w_, w)
            assert np.isclose(R_, R)


def test_flat_wavefront():
    w, R = abcd.Gaussian_q_to_wR(0.3j, 500e-9)
    assert R == float('inf')
    assert np.isclose(w, beams.calc_waist(0.3, 500e-9))


def test_degenerate_transform_is_finite():
    assert np.isfinite(abcd.transform_Gaussian(abcd.thin_lens(1.), 1. + 0j))
    assert np.isfinite(abcd.calc_width(1. + 0j, 1e-6))
