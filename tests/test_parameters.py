import numpy as np

from general_physics_constants import PI
from hrg_particles import get_light_hadron_system
from hrgev_parameters import (
    ThermalModelParameters, brr, fill_virial, get_all_parametrizations,
    read_virial_table, write_virial_table
)


def test_brr():
    np.testing.assert_allclose(brr(0.3, 0.3), 2.0 * PI / 3.0 * 0.6**3)
    np.testing.assert_allclose(brr(0.0, 0.0), 0.0)


def test_fill_virial_diagonal_and_scaling():
    radii = [0.3, 0.5, 0.0]
    virial = fill_virial(radii)
    for i, r in enumerate(radii):
        np.testing.assert_allclose(virial[i, i], 16.0 * PI / 3.0 * r**3)

    # V_ij / b_ii is symmetric
    for i in range(2):
        for j in range(2):
            np.testing.assert_allclose(virial[i, j] / virial[i, i],
                                       virial[j, i] / virial[j, j], rtol=1e-12)

    # A point-like species feels no excluded volume
    np.testing.assert_array_equal(virial[2], [0.0, 0.0, 0.0])


def test_common_radius_virial_is_uniform():
    virial = fill_virial(np.full(4, 0.4))
    np.testing.assert_allclose(virial, brr(0.4, 0.4), rtol=1e-12)


def test_virial_table_round_trip(tmp_path):
    system = get_light_hadron_system()
    N = len(system)
    radii = np.linspace(0.0, 0.5, N)
    virial = fill_virial(radii)

    filename = tmp_path / "virial.dat"
    write_virial_table(filename, system, virial)
    back = read_virial_table(filename, system)
    np.testing.assert_array_equal(back, virial)

    with open(filename) as f:
        lines = [line for line in f if not line.startswith('#')]
    assert len(lines) == N * N


def test_virial_table_skips_unknown_and_malformed_lines(tmp_path):
    system = get_light_hadron_system()
    filename = tmp_path / "virial.dat"
    filename.write_text(
        "# pdg1 pdg2 b\n"
        "2212 2212 1.5\n"
        "2212 -2212 0.7  # comment\n"
        "2212 999999 3.0\n"
        "not a line\n"
        "2112\n"
    )
    virial = read_virial_table(filename, system)
    ip = system.pdg_to_id(2212)
    ipbar = system.pdg_to_id(-2212)
    assert virial[ip, ip] == 1.5
    assert virial[ip, ipbar] == 0.7
    assert np.count_nonzero(virial) == 2


def test_parameter_sets_and_copy():
    sets = get_all_parametrizations()
    assert set(sets) == {'LHC', 'RHIC200', 'SPS17'}
    params = ThermalModelParameters(T=0.16, muB=0.1)
    clone = params.copy()
    clone.T = 0.1
    assert params.T == 0.16
