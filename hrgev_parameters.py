"""
hrgev_parameters.py
===================
Thermal parameters and excluded-volume interaction parameters for the
hadron resonance gas with excluded-volume crossterms.

Contains:
- ThermalModelParameters: temperature, chemical potentials, fugacities, volume
- Preset freeze-out parameter sets
- Construction of the virial (excluded-volume) matrix from hard-core radii:
      b_ij = (2π/3)(r_i + r_j)³
  with the off-diagonal correction (i ≠ j, b_ii + b_jj > 0)
      b_ij → 2 b_ij b_ii / (b_ii + b_jj)
- Reading/writing virial tables ("pdg1 pdg2 b" per line, '#' comments)

Units:
- T, μ: GeV
- Radii: fm
- Virial coefficients: fm³
- Volume: fm³
"""
import numpy as np
from dataclasses import dataclass, replace
from typing import Dict, Sequence

from general_physics_constants import PI


# =============================================================================
# THERMAL PARAMETERS
# =============================================================================
@dataclass
class ThermalModelParameters:
    """
    Thermal parameters of a grand-canonical hadron resonance gas.

    Attributes:
        T: Temperature (GeV)
        muB, muQ, muS, muC: Baryon, electric, strangeness, charm chemical potentials (GeV)
        gammaq: Light-quark fugacity factor
        gammaS: Strange-quark fugacity factor
        V: System volume (fm³), used by partial chemical equilibrium
    """
    T: float = 0.155
    muB: float = 0.0
    muQ: float = 0.0
    muS: float = 0.0
    muC: float = 0.0
    gammaq: float = 1.0
    gammaS: float = 1.0
    V: float = 4000.0

    def copy(self) -> 'ThermalModelParameters':
        return replace(self)


def get_default_parameters() -> ThermalModelParameters:
    """LHC-like chemical freeze-out: T = 155 MeV, vanishing chemical potentials."""
    return ThermalModelParameters()


def get_rhic_parameters() -> ThermalModelParameters:
    """Top RHIC energy freeze-out."""
    return ThermalModelParameters(T=0.160, muB=0.025, muQ=-0.001, muS=0.006)


def get_sps_parameters() -> ThermalModelParameters:
    """SPS (√s_NN = 17.3 GeV) freeze-out."""
    return ThermalModelParameters(T=0.150, muB=0.250, muQ=-0.008, muS=0.060)


def get_all_parametrizations() -> Dict[str, ThermalModelParameters]:
    """Return dictionary of all available thermal parameter sets."""
    return {
        'LHC': get_default_parameters(),
        'RHIC200': get_rhic_parameters(),
        'SPS17': get_sps_parameters(),
    }


# =============================================================================
# VIRIAL MATRIX
# =============================================================================
def brr(r1: float, r2: float) -> float:
    """Excluded-volume coefficient of two hard spheres: (2π/3)(r1 + r2)³ (fm³)."""
    return 2.0 * PI / 3.0 * (r1 + r2)**3


def fill_virial(radii: Sequence[float]) -> np.ndarray:
    """
    Virial matrix from hard-core radii.

    Off-diagonal elements are rescaled with the self-volumes:
        b_ij = 2 b̃_ij b̃_ii / (b̃_ii + b̃_jj)   (i ≠ j, b̃_ii + b̃_jj > 0)
    A point-like species (r_i = 0) feels no excluded volume (b_ij = 0).
    """
    r = np.asarray(radii, dtype=float)
    raw = 2.0 * PI / 3.0 * (r[:, None] + r[None, :])**3
    diag = np.diag(raw)
    dsum = diag[:, None] + diag[None, :]
    virial = raw.copy()
    mask = dsum > 0.0
    np.fill_diagonal(mask, False)
    virial[mask] = (2.0 * raw * diag[:, None])[mask] / dsum[mask]
    return virial


# =============================================================================
# VIRIAL TABLE FILES
# =============================================================================
def read_virial_table(filename: str, system) -> np.ndarray:
    """
    Read a virial table for the given particle system.

    Each non-comment line holds "pdg1 pdg2 b". Entries for PDG codes absent
    from the system are ignored; pairs not listed are zero.
    """
    N = len(system)
    virial = np.zeros((N, N))
    with open(filename, 'r') as f:
        for line in f:
            content = line.split('#', 1)[0].split()
            if len(content) < 3:
                continue
            try:
                pdg1, pdg2, b = int(content[0]), int(content[1]), float(content[2])
            except ValueError:
                continue
            i1 = system.pdg_to_id(pdg1)
            i2 = system.pdg_to_id(pdg2)
            if i1 != -1 and i2 != -1:
                virial[i1, i2] = b
    return virial


def write_virial_table(filename: str, system, virial: np.ndarray) -> None:
    """Write every (i, j) pair of the virial matrix, zeros included, at full precision."""
    with open(filename, 'w') as f:
        f.write(f"# {'pdg1':>13s}{'pdg2':>15s}{'b_ij[fm^3]':>25s}\n")
        for i, pi in enumerate(system.particles):
            for j, pj in enumerate(system.particles):
                f.write(f"{pi.pdg:15d}{pj.pdg:15d}{float(virial[i, j]):25.17g}\n")


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================
def print_params_summary(params: ThermalModelParameters) -> None:
    """Print a summary of the thermal parameters."""
    print("Thermal parameters")
    print("=" * 60)
    print(f"  T      = {params.T*1000:.2f} MeV")
    print(f"  μ_B    = {params.muB*1000:.2f} MeV")
    print(f"  μ_Q    = {params.muQ*1000:.2f} MeV")
    print(f"  μ_S    = {params.muS*1000:.2f} MeV")
    print(f"  μ_C    = {params.muC*1000:.2f} MeV")
    print(f"  γ_q    = {params.gammaq:.4f}")
    print(f"  γ_S    = {params.gammaS:.4f}")
    print(f"  V      = {params.V:.2f} fm³")


# =============================================================================
# SELF-TEST
# =============================================================================
if __name__ == "__main__":
    for name, params in get_all_parametrizations().items():
        print(f"\n{name}")
        print_params_summary(params)

    print("\nVirial matrix for radii (0.3, 0.5, 0.0) fm:")
    print(fill_virial([0.3, 0.5, 0.0]))
