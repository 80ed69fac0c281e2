"""
general_ideal_gas.py
====================
Single-species ideal-gas thermodynamics for hadron resonance gas calculations.

Methods:
    1. Cluster (Bessel-function) expansion:
         P = g/(2π²) Σ_k s_k m² (T/k)² e^{kμ/T} K₂(km/T)
       with s_k = 1 (Boltzmann: one term; Bose-Einstein: all terms) and
       s_k = (-1)^{k+1} (Fermi-Dirac).
    2. Direct momentum integration (scipy.quad) where the expansion does not
       converge (fermions with μ ≳ m, bosons close to condensation).
    3. Optional Breit-Wigner averaging over the resonance mass, using
       Gauss-Legendre nodes on [max(threshold, m - 2Γ), m + 2Γ].

Susceptibilities are dimensionless: χ_n = ∂ⁿ(P/T⁴)/∂(μ/T)ⁿ.

Units:
    Input: T, μ, masses in GeV
    Output: n, s (fm⁻³), P, ε (GeV/fm³), χ_n (dimensionless)
"""
import numpy as np
import scipy.integrate as integrate
from enum import Enum, auto
from scipy.special import kve

from general_physics_constants import GEV_TO_IFM3, PHASE_SPACE_PREFACTOR, PI2


# =============================================================================
# SETTINGS
# =============================================================================
MAX_CLUSTER_TERMS = 200       # Beyond this the quantum expansion is replaced by quadrature
CLUSTER_LOG_PRECISION = 37.0  # Truncate the expansion once e^{k(μ-m)/T} < e^{-37}
N_WIDTH_NODES = 16            # Gauss-Legendre nodes for Breit-Wigner averaging
WIDTH_RANGE = 2.0             # Mass integration range m ± WIDTH_RANGE·Γ

_GLEG_NODES, _GLEG_WEIGHTS = np.polynomial.legendre.leggauss(N_WIDTH_NODES)


class IdealGasQuantity(Enum):
    """Thermodynamic quantity returned by density()."""
    PARTICLE_DENSITY = auto()
    PRESSURE = auto()
    ENERGY_DENSITY = auto()
    ENTROPY_DENSITY = auto()


# =============================================================================
# CHEMICAL POTENTIAL
# =============================================================================
def chemical_potential(particle, params) -> float:
    """
    Chemical potential of a species from the conserved-charge potentials.

        μ = B μ_B + Q μ_Q + S μ_S + C μ_C + T ln(γ_q^{|l|} γ_S^{|s|})
    """
    mu = (particle.baryon_charge * params.muB
          + particle.electric_charge * params.muQ
          + particle.strangeness * params.muS
          + particle.charm * params.muC)
    if params.gammaq != 1.0 and particle.abs_light > 0.0:
        mu += params.T * particle.abs_light * np.log(params.gammaq)
    if params.gammaS != 1.0 and particle.abs_strangeness > 0.0:
        mu += params.T * particle.abs_strangeness * np.log(params.gammaS)
    return mu


# =============================================================================
# CLUSTER EXPANSION (GeV units)
# =============================================================================
def _cluster_terms(statistics, g, m, T, mu):
    """
    Per-term pressure P_k and energy density ε_k (GeV⁴) and the term index k.
    """
    nterms = _n_cluster_terms(statistics, m, T, mu)
    k = np.arange(1, nterms + 1, dtype=float)
    sign = np.ones(nterms)
    if statistics == 1:
        sign[1::2] = -1.0

    if m == 0.0:
        P_k = g / PI2 * sign * T**4 * np.exp(k * mu / T) / k**4
        return k, P_k, 3.0 * P_k

    x = k * m / T
    # e^{kμ/T} K_ν(km/T) = e^{k(μ-m)/T} kve(ν, km/T)
    boltz = np.exp(k * (mu - m) / T)
    common = g * PHASE_SPACE_PREFACTOR * sign * m**2 * (T / k)**2 * boltz
    P_k = common * kve(2, x)
    e_k = common * (3.0 * kve(2, x) + x * kve(1, x))
    return k, P_k, e_k


# =============================================================================
# MOMENTUM INTEGRATION (GeV units)
# =============================================================================
def _occupation_derivatives(statistics, E, mu, T):
    """
    Occupation number f and its derivatives with respect to μ/T up to third order.
    """
    eta = 1.0 if statistics == 1 else -1.0
    arg = (E - mu) / T
    if arg > 500.0:
        return 0.0, 0.0, 0.0, 0.0
    f = 1.0 / (np.exp(arg) + eta)
    f1 = f * (1.0 - eta * f)
    f2 = f1 * (1.0 - 2.0 * eta * f)
    f3 = f1 * (1.0 - 6.0 * eta * f + 6.0 * f * f)
    return f, f1, f2, f3


def _integrate_moment(statistics, g, m, T, mu, weight, derivative=0):
    prefactor = g * PHASE_SPACE_PREFACTOR
    upper_limit = max(abs(mu), m) + 60.0 * T

    def integrand(k):
        E = np.sqrt(k * k + m * m)
        f = _occupation_derivatives(statistics, E, mu, T)[derivative]
        return weight(k, E) * f

    kF = np.sqrt(max(mu * mu - m * m, 0.0))
    points = [kF] if 0.0 < kF < upper_limit else None
    return prefactor * integrate.quad(integrand, 0.0, upper_limit,
                                      points=points, limit=200)[0]


def _numerical_thermo(statistics, g, m, T, mu):
    if statistics == -1 and mu >= m:
        # Clamp to avoid the Bose-Einstein condensation singularity
        mu = m * (1.0 - 1e-10)
    n = _integrate_moment(statistics, g, m, T, mu, lambda k, E: k * k)
    P = _integrate_moment(statistics, g, m, T, mu, lambda k, E: k**4 / (3.0 * E) if E > 0 else 0.0)
    e = _integrate_moment(statistics, g, m, T, mu, lambda k, E: k * k * E)
    return n, P, e


def _n_cluster_terms(statistics, m, T, mu):
    if statistics == 0:
        return 1
    gap = (m - mu) / T
    if not np.isfinite(gap):
        # Diverged μ: a single term propagates NaN or inf
        return 1
    if gap <= 0.0:
        return MAX_CLUSTER_TERMS + 1
    return int(np.ceil(CLUSTER_LOG_PRECISION / gap))


def _use_quadrature(statistics, m, T, mu):
    return _n_cluster_terms(statistics, m, T, mu) > MAX_CLUSTER_TERMS


# =============================================================================
# FIXED-MASS THERMODYNAMICS
# =============================================================================
def _thermo_fixed_mass(statistics, g, m, T, mu):
    """(n, P, ε) in GeV³, GeV⁴, GeV⁴ for a single mass."""
    if _use_quadrature(statistics, m, T, mu):
        return _numerical_thermo(statistics, g, m, T, mu)
    k, P_k, e_k = _cluster_terms(statistics, g, m, T, mu)
    P = np.sum(P_k)
    n = np.sum(k * P_k) / T
    e = np.sum(e_k)
    return n, P, e


def _chi_fixed_mass(order, statistics, g, m, T, mu):
    """Dimensionless χ_order for a single mass."""
    if order == 0:
        return _thermo_fixed_mass(statistics, g, m, T, mu)[1] / T**4
    if _use_quadrature(statistics, m, T, mu):
        if order > 4:
            raise ValueError(f"Susceptibility order {order} not supported (max 4)")
        if statistics == -1 and mu >= m:
            mu = m * (1.0 - 1e-10)
        return _integrate_moment(statistics, g, m, T, mu,
                                 lambda k, E: k * k, derivative=order - 1) / T**3
    k, P_k, _ = _cluster_terms(statistics, g, m, T, mu)
    return np.sum(k**order * P_k) / T**4


def _mass_nodes(particle, use_width):
    """Masses and normalized weights for Breit-Wigner averaging."""
    m, width = particle.mass, particle.width
    if not use_width or width <= 0.0:
        return np.array([m]), np.array([1.0])
    a = max(particle.threshold, m - WIDTH_RANGE * width)
    b = m + WIDTH_RANGE * width
    if b <= a:
        return np.array([m]), np.array([1.0])
    masses = 0.5 * (b - a) * _GLEG_NODES + 0.5 * (b + a)
    bw = width / ((masses - m)**2 + 0.25 * width**2)
    weights = _GLEG_WEIGHTS * bw
    return masses, weights / np.sum(weights)


# =============================================================================
# PUBLIC INTERFACE
# =============================================================================
def density(particle, params, quantity: IdealGasQuantity, use_width: bool = False,
            mu: float = None, dmu: float = 0.0) -> float:
    """
    Ideal-gas density of one species at the shifted chemical potential μ + dμ.

    Args:
        particle: hrg_particles.Particle
        params: ThermalModelParameters (T in GeV)
        quantity: IdealGasQuantity
        use_width: Average over the Breit-Wigner mass distribution
        mu: Species chemical potential (GeV); computed from params if None
        dmu: Chemical potential shift (GeV), e.g. the excluded-volume shift

    Returns:
        n or s in fm⁻³, P or ε in GeV/fm³
    """
    T = params.T
    if T <= 0.0:
        return 0.0
    if mu is None:
        mu = chemical_potential(particle, params)
    mu_eff = mu + dmu

    masses, weights = _mass_nodes(particle, use_width)
    n = P = e = 0.0
    for mass, w in zip(masses, weights):
        n_m, P_m, e_m = _thermo_fixed_mass(particle.statistics, particle.degeneracy,
                                           mass, T, mu_eff)
        n += w * n_m
        P += w * P_m
        e += w * e_m

    if quantity == IdealGasQuantity.PARTICLE_DENSITY:
        return n * GEV_TO_IFM3
    if quantity == IdealGasQuantity.PRESSURE:
        return P * GEV_TO_IFM3
    if quantity == IdealGasQuantity.ENERGY_DENSITY:
        return e * GEV_TO_IFM3
    if quantity == IdealGasQuantity.ENTROPY_DENSITY:
        return (e + P - mu_eff * n) / T * GEV_TO_IFM3
    raise ValueError(f"Unknown ideal-gas quantity: {quantity}")


def chi(order: int, particle, params, use_width: bool = False,
        mu: float = None, dmu: float = 0.0) -> float:
    """Dimensionless susceptibility χ_n = ∂ⁿ(P/T⁴)/∂(μ/T)ⁿ of one species."""
    T = params.T
    if T <= 0.0:
        return 0.0
    if mu is None:
        mu = chemical_potential(particle, params)
    mu_eff = mu + dmu

    masses, weights = _mass_nodes(particle, use_width)
    return float(sum(w * _chi_fixed_mass(order, particle.statistics, particle.degeneracy,
                                         mass, T, mu_eff)
                     for mass, w in zip(masses, weights)))


def scaled_variance(particle, params, use_width: bool = False,
                    mu: float = None, dmu: float = 0.0) -> float:
    """Ideal-gas scaled variance ω = χ₂/χ₁ (1 for Boltzmann statistics)."""
    chi1 = chi(1, particle, params, use_width, mu, dmu)
    if chi1 <= 0.0:
        return 1.0
    return chi(2, particle, params, use_width, mu, dmu) / chi1


# =============================================================================
# SELF-TEST
# =============================================================================
if __name__ == "__main__":
    from hrg_particles import get_light_hadron_system
    from hrgev_parameters import get_default_parameters

    params = get_default_parameters()
    system = get_light_hadron_system(quantum_statistics=True)
    print(f"Ideal gas at T = {params.T*1000:.0f} MeV, μ_B = {params.muB*1000:.0f} MeV")
    print("=" * 60)
    for part in system.particles[:6]:
        n = density(part, params, IdealGasQuantity.PARTICLE_DENSITY)
        P = density(part, params, IdealGasQuantity.PRESSURE)
        print(f"  {part.name:8s} n = {n:.5e} fm⁻³  P = {P:.5e} GeV/fm³  "
              f"ω = {scaled_variance(part, params):.4f}")
