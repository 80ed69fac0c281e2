import numpy as np
from scipy.special import kn

from general_ideal_gas import (
    IdealGasQuantity, _mass_nodes, _numerical_thermo, chemical_potential, chi, density,
    scaled_variance
)
from general_physics_constants import GEV_TO_IFM3, PI2
from hrg_particles import Particle, get_light_hadron_system
from hrgev_parameters import ThermalModelParameters


def _particle(stat, mass=0.5, g=2.0, B=0):
    return Particle(pdg=999, name="X", mass=mass, degeneracy=g, statistics=stat,
                    baryon_charge=B)


def test_boltzmann_pressure_matches_bessel_formula():
    part = _particle(0)
    params = ThermalModelParameters(T=0.15)
    mu = 0.1
    P = density(part, params, IdealGasQuantity.PRESSURE, mu=mu)
    T, m, g = params.T, part.mass, part.degeneracy
    expected = g / (2.0 * PI2) * m**2 * T**2 * kn(2, m / T) * np.exp(mu / T) * GEV_TO_IFM3
    np.testing.assert_allclose(P, expected, rtol=1e-12)

    n = density(part, params, IdealGasQuantity.PARTICLE_DENSITY, mu=mu)
    np.testing.assert_allclose(n, P / T, rtol=1e-12)


def test_boltzmann_susceptibilities_are_equal():
    part = _particle(0)
    params = ThermalModelParameters(T=0.15)
    chis = [chi(k, part, params, mu=0.05) for k in (1, 2, 3, 4)]
    np.testing.assert_allclose(chis, chis[0], rtol=1e-12)

    n = density(part, params, IdealGasQuantity.PARTICLE_DENSITY, mu=0.05)
    np.testing.assert_allclose(chis[0], n / (params.T**3 * GEV_TO_IFM3), rtol=1e-12)
    assert scaled_variance(part, params, mu=0.05) == 1.0


def test_quantum_scaled_variance():
    params = ThermalModelParameters(T=0.15)
    assert scaled_variance(_particle(-1, mass=0.14), params) > 1.0
    assert scaled_variance(_particle(1, mass=0.94), params, mu=0.5) < 1.0


def test_cluster_expansion_agrees_with_quadrature():
    pion = _particle(-1, mass=0.13957, g=1.0)
    params = ThermalModelParameters(T=0.15)
    n_clu = density(pion, params, IdealGasQuantity.PARTICLE_DENSITY, mu=0.0)
    P_clu = density(pion, params, IdealGasQuantity.PRESSURE, mu=0.0)
    n_num, P_num, _ = _numerical_thermo(-1, 1.0, 0.13957, 0.15, 0.0)
    np.testing.assert_allclose(n_clu, n_num * GEV_TO_IFM3, rtol=1e-4)
    np.testing.assert_allclose(P_clu, P_num * GEV_TO_IFM3, rtol=1e-4)


def test_degenerate_fermions_use_quadrature():
    nucleon = _particle(1, mass=0.939, g=2.0, B=1)
    params = ThermalModelParameters(T=0.005)
    mu = 1.0
    n = density(nucleon, params, IdealGasQuantity.PARTICLE_DENSITY, mu=mu)
    kF = np.sqrt(mu**2 - nucleon.mass**2)
    expected = nucleon.degeneracy * kF**3 / (6.0 * PI2) * GEV_TO_IFM3
    np.testing.assert_allclose(n, expected, rtol=1e-2)


def test_entropy_is_temperature_derivative_of_pressure():
    pion = _particle(-1, mass=0.13957, g=1.0)
    T, dT, mu = 0.15, 1e-5, 0.02
    s = density(pion, ThermalModelParameters(T=T), IdealGasQuantity.ENTROPY_DENSITY, mu=mu)
    Pp = density(pion, ThermalModelParameters(T=T + dT), IdealGasQuantity.PRESSURE, mu=mu)
    Pm = density(pion, ThermalModelParameters(T=T - dT), IdealGasQuantity.PRESSURE, mu=mu)
    np.testing.assert_allclose(s, (Pp - Pm) / (2.0 * dT), rtol=1e-6)


def test_chemical_potential_includes_fugacities():
    system = get_light_hadron_system()
    params = ThermalModelParameters(T=0.15, muB=0.2, muQ=-0.01, muS=0.05, gammaS=0.8)
    lam = system.particle_by_pdg(3122)
    expected = 0.2 - 0.05 + 0.15 * np.log(0.8)
    np.testing.assert_allclose(chemical_potential(lam, params), expected, rtol=1e-12)

    proton = system.particle_by_pdg(2212)
    np.testing.assert_allclose(chemical_potential(proton, params), 0.19, rtol=1e-12)


def test_breit_wigner_nodes():
    rho = get_light_hadron_system().particle_by_pdg(113)
    masses, weights = _mass_nodes(rho, True)
    np.testing.assert_allclose(np.sum(weights), 1.0)
    assert np.all(masses >= rho.threshold)
    assert np.all(masses <= rho.mass + 2.0 * rho.width)

    masses, weights = _mass_nodes(rho, False)
    np.testing.assert_array_equal(masses, [rho.mass])


def test_narrow_resonance_width_effect_is_small():
    omega = get_light_hadron_system().particle_by_pdg(223)
    params = ThermalModelParameters(T=0.155)
    n0 = density(omega, params, IdealGasQuantity.PARTICLE_DENSITY)
    nw = density(omega, params, IdealGasQuantity.PARTICLE_DENSITY, use_width=True)
    np.testing.assert_allclose(nw, n0, rtol=2e-2)
