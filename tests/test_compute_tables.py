import numpy as np

from hrgev_compute_tables import (
    TableSettings, build_model, compute_pce_trajectory, compute_table, results_to_arrays
)
from hrgev_parameters import ThermalModelParameters
from plot_hrgev_thermodynamics import filter_data, load_hrg_table


def _settings(tmp_path, **kwargs):
    defaults = dict(
        radius=0.3,
        T_values=np.array([0.130, 0.140, 0.150]),
        muB_values=[0.0, 0.1],
        print_results=False,
        print_timing=False,
        save_to_file=True,
        output_filename=str(tmp_path / "table.dat"),
    )
    defaults.update(kwargs)
    return TableSettings(**defaults)


def test_compute_table_and_reload(tmp_path):
    settings = _settings(tmp_path)
    results = compute_table(settings)

    assert set(results) == {0.0, 0.1}
    for rows in results.values():
        assert len(rows) == 3
        assert all(r.converged for r in rows)

    arrays = results_to_arrays(results[0.0])
    assert np.all(np.diff(arrays['p_T4']) > 0.0)
    np.testing.assert_allclose(arrays['nB'], 0.0, atol=1e-12)
    assert np.all(arrays['chi2B'] > 0.0)
    assert np.all(results_to_arrays(results[0.1])['nB_T3'] > 0.0)

    df = load_hrg_table(settings.output_filename)
    assert len(df) == 6
    assert np.all(df['converged'] == 1)
    sub = filter_data(df, muB=0.1)
    np.testing.assert_allclose(sub['T'].values, settings.T_values)
    np.testing.assert_allclose(sub['p_T4'].values, results_to_arrays(results[0.1])['p_T4'],
                               rtol=1e-6)


def test_carried_partials_match_fresh_solves(tmp_path):
    carried = compute_table(_settings(tmp_path, save_to_file=False, compute_fluctuations=False))
    fresh = compute_table(_settings(tmp_path, save_to_file=False, compute_fluctuations=False,
                                    carry_partials=False))
    for muB in carried:
        np.testing.assert_allclose(results_to_arrays(carried[muB])['P'],
                                   results_to_arrays(fresh[muB])['P'], rtol=1e-9)


def test_build_model_options(tmp_path):
    model = build_model(_settings(tmp_path, disable_bbar_repulsion=True))
    ip = model.system.pdg_to_id(2212)
    ipbar = model.system.pdg_to_id(-2212)
    assert model.virial_coefficient(ip, ipbar) == 0.0

    virial_file = tmp_path / "virial.dat"
    model.write_interaction_parameters(virial_file)
    other = build_model(_settings(tmp_path, radius=0.0, virial_file=str(virial_file)))
    np.testing.assert_array_equal(other.virial, model.virial)


def test_pce_trajectory_rows(tmp_path):
    settings = _settings(tmp_path, radius=0.0, print_results=False)
    rows = compute_pce_trajectory(settings, ThermalModelParameters(T=0.155),
                                  [0.150, 0.145])
    assert len(rows) == 2
    assert all(r.converged for r in rows)
    np.testing.assert_allclose([r.T for r in rows], [0.150, 0.145])
