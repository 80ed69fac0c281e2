import numpy as np
import pytest

from conftest import make_stable
from general_broyden_solver import MAX_ITERS, SolverStatus
from general_ideal_gas import IdealGasQuantity, chi, density
from general_physics_constants import GEV_TO_IFM3
from hrg_particles import ConservedCharge, ParticleSystem, get_light_hadron_system
from hrgev_crossterms_model import ExcludedVolumeCrosstermsModel
from hrgev_parameters import ThermalModelParameters, get_sps_parameters


@pytest.fixture
def params():
    return ThermalModelParameters(T=0.150, muB=0.1)


def test_zero_virial_reproduces_ideal_gas(toy_system, params):
    model = ExcludedVolumeCrosstermsModel(toy_system, params, radius=0.0)
    state = model.calculate_densities()
    assert state.success

    P_id = sum(density(p, params, IdealGasQuantity.PRESSURE) for p in toy_system.particles)
    n_id = [density(p, params, IdealGasQuantity.PARTICLE_DENSITY) for p in toy_system.particles]
    s_id = sum(density(p, params, IdealGasQuantity.ENTROPY_DENSITY) for p in toy_system.particles)
    np.testing.assert_allclose(state.pressure, P_id, rtol=1e-12)
    np.testing.assert_allclose(state.densities, n_id, rtol=1e-12)
    np.testing.assert_allclose(state.entropy_density, s_id, rtol=1e-12)
    np.testing.assert_array_equal(state.mu_shifts, 0.0)


def test_identical_species_equal_single_species_with_doubled_degeneracy(params):
    two = ParticleSystem([make_stable(1, "X1", 0.5, 1.0), make_stable(2, "X2", 0.5, 1.0)])
    one = ParticleSystem([make_stable(1, "X", 0.5, 2.0)])

    m2 = ExcludedVolumeCrosstermsModel(two, params, radius=0.5)
    m1 = ExcludedVolumeCrosstermsModel(one, params, radius=0.5)
    s2 = m2.calculate_densities()
    s1 = m1.calculate_densities()

    assert s1.success and s2.success
    np.testing.assert_allclose(s2.pressure, s1.pressure, rtol=1e-8)
    np.testing.assert_allclose(np.sum(s2.densities), s1.densities[0], rtol=1e-8)
    np.testing.assert_allclose(s2.entropy_density, s1.entropy_density, rtol=1e-8)
    np.testing.assert_allclose(s2.partial_pressures[0], s2.partial_pressures[1], rtol=1e-8)


def test_excluded_volume_suppresses_pressure(toy_system, params):
    ideal = ExcludedVolumeCrosstermsModel(toy_system.copy(), params, radius=0.0)
    ev = ExcludedVolumeCrosstermsModel(toy_system.copy(), params, radius=0.4)
    assert ev.calculate_pressure() < ideal.calculate_pressure()
    assert np.all(ev.mu_shifts() < 0.0)
    np.testing.assert_allclose(ev.mu_shift(0), ev.mu_shifts()[0])
    assert ev.mu_shift(-1) == 0.0


def test_thermodynamic_consistency():
    system = get_light_hadron_system()
    T, muB, dT, dmu = 0.150, 0.1, 1e-4, 1e-4

    def pressure(T, muB):
        model = ExcludedVolumeCrosstermsModel(system, ThermalModelParameters(T=T, muB=muB),
                                              radius=0.3)
        return model.calculate_pressure()

    model = ExcludedVolumeCrosstermsModel(system, ThermalModelParameters(T=T, muB=muB),
                                          radius=0.3)
    model.calculate_densities()
    s = model.calculate_entropy_density()
    nB = model.calculate_baryon_density()

    dPdT = (pressure(T + dT, muB) - pressure(T - dT, muB)) / (2.0 * dT)
    dPdmu = (pressure(T, muB + dmu) - pressure(T, muB - dmu)) / (2.0 * dmu)
    np.testing.assert_allclose(s, dPdT, rtol=1e-4)
    np.testing.assert_allclose(nB, dPdmu, rtol=1e-4)

    e = model.calculate_energy_density()
    np.testing.assert_allclose(e, T * s - model.calculate_pressure() + muB * nB, rtol=1e-10)


def test_picard_and_broyden_agree():
    system = get_light_hadron_system()
    model = ExcludedVolumeCrosstermsModel(system, get_sps_parameters(), radius=0.3)
    broyden = model.calculate_densities()
    picard = model.calculate_densities_iter()

    assert broyden.success and picard.success
    np.testing.assert_allclose(picard.partial_pressures, broyden.partial_pressures, rtol=1e-8)
    np.testing.assert_allclose(picard.densities, broyden.densities, rtol=1e-7)
    np.testing.assert_allclose(picard.entropy_density, broyden.entropy_density, rtol=1e-7)


def test_carried_partial_pressures_give_same_solution(params):
    system = get_light_hadron_system()
    model = ExcludedVolumeCrosstermsModel(system, params, radius=0.3)
    reference = model.calculate_densities()

    model.set_parameters(ThermalModelParameters(T=0.152, muB=0.1))
    model.calculate_densities()
    model.set_parameters(params)
    carried = model.calculate_densities(reset_partials=False)

    assert carried.success
    np.testing.assert_allclose(carried.densities, reference.densities, rtol=1e-8)


def test_feeddown_totals(toy_system, params):
    model = ExcludedVolumeCrosstermsModel(toy_system, params, radius=0.3)
    state = model.calculate_densities()
    ipi = toy_system.pdg_to_id(211)
    irho = toy_system.pdg_to_id(113)
    idelta = toy_system.pdg_to_id(2224)
    expected = state.densities[ipi] + state.densities[irho] + state.densities[idelta]
    np.testing.assert_allclose(state.densities_total[ipi], expected, rtol=1e-12)
    # rho0 adds two charged pions, Delta++ is replaced by p + pi+
    np.testing.assert_allclose(model.charged_density(final=True),
                               model.charged_density(final=False)
                               + 2.0 * state.densities[irho] + state.densities[idelta],
                               rtol=1e-12)


def test_ladder_matches_ideal_gas_for_zero_virial(toy_system, params):
    model = ExcludedVolumeCrosstermsModel(toy_system, params, radius=0.0)
    model.calculate_densities()
    B = toy_system.charges(ConservedCharge.BARYON)
    chis = model.calculate_charge_fluctuations(B)

    ideal = [sum(b**k * chi(k, p, params) for b, p in zip(B, toy_system.particles))
             for k in (1, 2, 3, 4)]
    np.testing.assert_allclose(chis, ideal, rtol=1e-10)

    model.calculate_fluctuations()
    np.testing.assert_allclose(model.susc(ConservedCharge.BARYON, ConservedCharge.BARYON),
                               chis[1], rtol=1e-10)
    np.testing.assert_allclose(model.wprim, 1.0, rtol=1e-10)
    np.testing.assert_allclose(model.skewprim, 1.0, rtol=1e-10)
    np.testing.assert_allclose(model.kurtprim, 1.0, rtol=1e-10)


def test_single_species_fluctuations_analytic(params):
    system = ParticleSystem([make_stable(2212, "p", 0.938, 2.0, B=1)])
    model = ExcludedVolumeCrosstermsModel(system, params, radius=0.5)
    model.calculate_densities()
    T = params.T
    b = model.virial[0, 0]
    n_id = model.densities_id[0]

    # dn/dμ = n_id' / (1 + b n_id)³ with n_id' = n_id/T for Boltzmann statistics
    chi2 = n_id / T / (1.0 + b * n_id)**3 / T**2 / GEV_TO_IFM3
    chis = model.calculate_charge_fluctuations([1.0], order=2)
    np.testing.assert_allclose(chis[0], model.densities[0] / T**3 / GEV_TO_IFM3, rtol=1e-12)
    np.testing.assert_allclose(chis[1], chi2, rtol=1e-8)

    model.calculate_fluctuations()
    np.testing.assert_allclose(model.susc_matrix[0, 0], chi2, rtol=1e-8)
    assert model.wprim[0] < 1.0


def test_correlations_and_ladder_agree_with_crossterms(params):
    system = ParticleSystem([
        make_stable(2212, "p", 0.938, 2.0, B=1, Q=1),
        make_stable(3122, "Lambda", 1.116, 2.0, B=1, S=-1),
        make_stable(211, "pi+", 0.140, 1.0, Q=1),
    ])
    model = ExcludedVolumeCrosstermsModel(system, params)
    model.set_radii([0.5, 0.4, 0.2])
    model.calculate_densities()
    model.calculate_fluctuations()

    for charge in (ConservedCharge.BARYON, ConservedCharge.ELECTRIC):
        q = system.charges(charge)
        chis = model.calculate_charge_fluctuations(q, order=2)
        np.testing.assert_allclose(model.susc(charge, charge), chis[1], rtol=1e-8)

    C = model.prim_correl
    np.testing.assert_allclose(C, C.T, rtol=1e-10, atol=1e-14)


def test_total_correlations_include_decays(toy_system, params):
    model = ExcludedVolumeCrosstermsModel(toy_system, params, radius=0.3)
    model.calculate_fluctuations()
    ipi = toy_system.pdg_to_id(211)
    assert model.wtot[ipi] > 0.0
    assert model.total_correl[ipi, ipi] > model.prim_correl[ipi, ipi]
    # Stable species without feed-down keep their primordial values
    ipbar = toy_system.pdg_to_id(-2212)
    np.testing.assert_allclose(model.total_correl[ipbar, ipbar],
                               model.prim_correl[ipbar, ipbar], rtol=1e-12)
    np.testing.assert_allclose(model.skewtot[ipbar], model.skewprim[ipbar], rtol=1e-10)

    proton_proxy = model.proxy_susc(ConservedCharge.BARYON, ConservedCharge.BARYON)
    assert proton_proxy > 0.0
    assert model.proxy_susc_matrix[3, 3] == 0.0


def test_virial_editing_and_errors(toy_system, params):
    model = ExcludedVolumeCrosstermsModel(toy_system, params, radius=0.3)
    with pytest.raises(ValueError):
        model.fill_virial([0.3, 0.3])
    with pytest.raises(IndexError):
        model.set_virial(0, 100, 1.0)
    with pytest.raises(ValueError):
        model.set_chemical_potentials([0.0])
    with pytest.raises(ValueError):
        model.calculate_charge_fluctuations([1.0])
    with pytest.raises(ValueError):
        model.calculate_charge_fluctuations(np.ones(len(toy_system)), order=5)

    model.set_virial(0, 1, 2.5)
    assert model.virial_coefficient(0, 1) == 2.5
    assert model.virial_coefficient(0, 100) == 0.0

    model.disable_bbar_repulsion()
    ip = toy_system.pdg_to_id(2212)
    ipbar = toy_system.pdg_to_id(-2212)
    assert model.virial_coefficient(ip, ipbar) == 0.0
    assert model.virial_coefficient(ip, ip) > 0.0


def test_interaction_parameters_round_trip(toy_system, params, tmp_path):
    model = ExcludedVolumeCrosstermsModel(toy_system, params)
    model.set_radii(np.linspace(0.1, 0.5, len(toy_system)))
    filename = tmp_path / "interactions.dat"
    model.write_interaction_parameters(filename)

    other = ExcludedVolumeCrosstermsModel(toy_system.copy(), params)
    other.read_interaction_parameters(filename)
    np.testing.assert_array_equal(other.virial, model.virial)


def test_dimensionless_accessors(params):
    model = ExcludedVolumeCrosstermsModel(get_light_hadron_system(), params, radius=0.3)
    T4 = params.T**4 * GEV_TO_IFM3
    np.testing.assert_allclose(model.pressure_over_T4(), model.calculate_pressure() / T4)
    np.testing.assert_allclose(model.trace_anomaly_over_T4(),
                               model.energy_density_over_T4() - 3.0 * model.pressure_over_T4(),
                               rtol=1e-10)
    assert 0.0 < model.pressure_over_T4() < 2.0
    assert model.calculate_baryon_density() > 0.0
    assert model.calculate_charm_density() == 0.0


def test_summary_prints(params, capsys):
    model = ExcludedVolumeCrosstermsModel(get_light_hadron_system(), params, radius=0.3)
    model.calculate_fluctuations()
    model.summary()
    out = capsys.readouterr().out
    assert "p/T^4" in out
    assert "chi2_BB" in out


@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_pathological_virial_reports_non_convergence(toy_system, params):
    # Strong attraction: P = P_id e^{200 P/T} has no solution
    model = ExcludedVolumeCrosstermsModel(toy_system, params)
    model.virial = np.full((len(toy_system), len(toy_system)), -200.0)

    model.partial_pressures = np.zeros(len(toy_system))
    result = model.solve_pressure(reset_partials=False, max_iterations=50)
    assert result.iterations == result.max_iterations
    assert result.status == SolverStatus.NOT_CONVERGED
    assert not model.success

    model.partial_pressures = np.zeros(len(toy_system))
    state = model.calculate_densities(reset_partials=False)
    assert not state.success
    assert state.status == SolverStatus.NOT_CONVERGED
    assert state.iterations == MAX_ITERS

    model.calculate_fluctuations()
    assert model.susc_matrix.shape == (4, 4)


@pytest.mark.filterwarnings("ignore::RuntimeWarning")
def test_non_finite_partial_pressures_give_nan_densities(toy_system, params):
    model = ExcludedVolumeCrosstermsModel(toy_system, params, radius=0.3)
    model.partial_pressures = np.full(len(toy_system), np.nan)
    state = model.calculate_densities(reset_partials=False)

    assert not state.success
    assert state.ill_conditioned
    assert np.all(np.isnan(state.densities))
    assert np.all(np.isnan(state.densities_total))
    assert np.isnan(state.entropy_density)

    chis = model.calculate_charge_fluctuations(toy_system.charges(ConservedCharge.BARYON))
    assert np.all(np.isnan(chis[1:]))


def test_zero_pressure_species_in_picard_and_broyden(params):
    # A zero-degeneracy species has P_i = 0 exactly at every iterate
    system = ParticleSystem([
        make_stable(211, "pi+", 0.13957, 1.0, Q=1),
        make_stable(2212, "p", 0.938272, 0.0, B=1, Q=1),
    ])
    model = ExcludedVolumeCrosstermsModel(system, params, radius=0.5)

    assert model.solve_pressure_iter()
    assert model.partial_pressures[1] == 0.0
    assert model.partial_pressures[0] > 0.0

    picard = model.calculate_densities_iter()
    broyden = model.calculate_densities()
    assert picard.success and broyden.success
    assert picard.partial_pressures[1] == 0.0
    assert broyden.partial_pressures[1] == 0.0
    assert broyden.densities[1] == 0.0
    np.testing.assert_allclose(picard.partial_pressures[0], broyden.partial_pressures[0],
                               rtol=1e-8)
