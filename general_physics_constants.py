"""
general_physics_constants.py
============================
Physical constants and unit conversions for the hadron resonance gas.
Natural units: GeV for energy, mass, temperature and chemical potential,
fm for length. Densities are returned in fm⁻³ and pressures in GeV/fm³.

Values from Particle Data Group (PDG) compilation.
"""
import numpy as np

# =============================================================================
# FUNDAMENTAL CONSTANTS (PDG values)
# =============================================================================
hc = 0.1973269804             # GeV·fm (ℏc)

# GeV → fm⁻¹ conversion: E [fm⁻¹] = E [GeV] × GEV_TO_IFM
GEV_TO_IFM = 1.0 / hc
GEV_TO_IFM3 = GEV_TO_IFM**3   # GeV³ → fm⁻³

# =============================================================================
# MATHEMATICAL CONSTANTS
# =============================================================================
PI = np.pi
PI2 = PI**2

# Prefactor of the ideal-gas phase-space integrals: 1/(2π²)
PHASE_SPACE_PREFACTOR = 1.0 / (2.0 * PI2)


# =============================================================================
# DIMENSIONLESS RATIOS
# =============================================================================
def over_T4(value_gev_fm3: float, T: float) -> float:
    """p/T⁴, ε/T⁴ or (ε-3p)/T⁴ from a value in GeV/fm³ and T in GeV."""
    return value_gev_fm3 / (T**4 * GEV_TO_IFM3)


def over_T3(value_fm3: float, T: float) -> float:
    """n/T³ or s/T³ from a density in fm⁻³ and T in GeV."""
    return value_fm3 / (T**3 * GEV_TO_IFM3)


if __name__ == "__main__":
    print("Physical Constants Module (PDG values)")
    print("=" * 50)
    print(f"ℏc = {hc:.10f} GeV·fm")
    print(f"1 GeV = {GEV_TO_IFM:.6f} fm⁻¹")
    print(f"1 GeV³ = {GEV_TO_IFM3:.4f} fm⁻³")
