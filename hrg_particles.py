"""
hrg_particles.py
================
Hadron species, decay channels and the particle system (decay network).

This module provides:
1. Particle and DecayChannel records
2. ParticleSystem: ordered species list with PDG lookup, stability flags and
   the resonance-decay contribution tables used for feed-down:
   - mean number of species i produced in the full decay cascade of r
   - variance and cumulants (up to 4th order) of that number
   - decay-induced covariances between final-state species
3. A built-in list of light hadrons (and optionally light nuclei)

Conventions:
- Masses, widths, thresholds: GeV
- Statistics: 0 = Boltzmann, +1 = Fermi-Dirac, -1 = Bose-Einstein
- Strangeness follows the PDG sign convention (Λ has S = -1, K⁺ has S = +1)

Decay products that are not part of the particle list (photons, leptons)
are dropped; branching ratios of each resonance are renormalized to unity.
"""
import copy
import numpy as np
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence, Tuple


# =============================================================================
# ENUMERATIONS
# =============================================================================
class DecayType(Enum):
    """Dominant decay mechanism of a species."""
    STABLE = auto()
    STRONG = auto()
    ELECTROMAGNETIC = auto()
    WEAK = auto()


class ConservedCharge(Enum):
    """Conserved charges carried by hadrons."""
    BARYON = auto()
    ELECTRIC = auto()
    STRANGENESS = auto()
    CHARM = auto()


# =============================================================================
# DATA CLASSES
# =============================================================================
@dataclass
class DecayChannel:
    """One decay channel: branching ratio and list of daughter PDG codes."""
    branching_ratio: float
    daughters: List[int]


@dataclass
class Particle:
    """
    A hadron species.

    Attributes:
        pdg: PDG code
        name: Human-readable name
        mass: Pole mass (GeV)
        degeneracy: Spin (and isospin, if lumped) degeneracy
        statistics: 0 Boltzmann, +1 Fermi, -1 Bose
        baryon_charge, electric_charge, strangeness, charm: Conserved charges
        abs_strangeness: Number of (anti)strange valence quarks (for γ_S)
        abs_light: Number of (anti)light valence quarks (for γ_q)
        width: Resonance width (GeV)
        threshold: Lowest decay threshold (GeV), lower edge of the mass integration
        stable: Whether the species is kept as final state (no decays applied)
        decay_type: Dominant decay mechanism
        decays: Decay channels
    """
    pdg: int
    name: str
    mass: float
    degeneracy: float
    statistics: int = 0
    baryon_charge: int = 0
    electric_charge: int = 0
    strangeness: int = 0
    charm: int = 0
    abs_strangeness: Optional[float] = None
    abs_light: Optional[float] = None
    width: float = 0.0
    threshold: float = 0.0
    stable: bool = True
    decay_type: DecayType = DecayType.STABLE
    decays: List[DecayChannel] = field(default_factory=list)

    def __post_init__(self):
        if self.abs_strangeness is None:
            self.abs_strangeness = float(abs(self.strangeness))
        if self.abs_light is None:
            n_quarks = 3 * abs(self.baryon_charge) if self.baryon_charge != 0 else 2
            self.abs_light = float(max(n_quarks - self.abs_strangeness - abs(self.charm), 0))

    def charge(self, which: ConservedCharge) -> int:
        if which == ConservedCharge.BARYON:
            return self.baryon_charge
        if which == ConservedCharge.ELECTRIC:
            return self.electric_charge
        if which == ConservedCharge.STRANGENESS:
            return self.strangeness
        return self.charm

    def __repr__(self):
        return f"Particle({self.name}, pdg={self.pdg}, m={self.mass:.4f} GeV)"


# =============================================================================
# MOMENT HELPERS
# =============================================================================
def _cumulants_to_moments(k: np.ndarray) -> np.ndarray:
    """Raw moments m1..m4 from cumulants k1..k4 (last axis)."""
    k1, k2, k3, k4 = k[..., 0], k[..., 1], k[..., 2], k[..., 3]
    m = np.empty_like(k)
    m[..., 0] = k1
    m[..., 1] = k2 + k1**2
    m[..., 2] = k3 + 3.0 * k2 * k1 + k1**3
    m[..., 3] = k4 + 4.0 * k3 * k1 + 3.0 * k2**2 + 6.0 * k2 * k1**2 + k1**4
    return m


def _moments_to_cumulants(m: np.ndarray) -> np.ndarray:
    """Cumulants k1..k4 from raw moments m1..m4 (last axis)."""
    m1, m2, m3, m4 = m[..., 0], m[..., 1], m[..., 2], m[..., 3]
    k = np.empty_like(m)
    k[..., 0] = m1
    k[..., 1] = m2 - m1**2
    k[..., 2] = m3 - 3.0 * m2 * m1 + 2.0 * m1**3
    k[..., 3] = m4 - 4.0 * m3 * m1 - 3.0 * m2**2 + 12.0 * m2 * m1**2 - 6.0 * m1**4
    return k


# =============================================================================
# PARTICLE SYSTEM
# =============================================================================
class ParticleSystem:
    """
    Ordered list of hadron species together with its decay network.

    After fill_resonance_decays() the following tables are available, indexed
    by the final species i:
        decay_contributions[i]: list of (mean multiplicity, resonance index r)
        decay_sigmas[i]:        list of (variance, r)
        decay_cumulants[i]:     list of ([k1, k2, k3, k4], r)
    The mean multiplicities are also kept as a dense matrix
    decay_mean_matrix[r, i].
    """

    def __init__(self, particles: Sequence[Particle]):
        self.particles: List[Particle] = list(particles)
        self._pdg_map: Dict[int, int] = {}
        self._build_pdg_map()
        self.fill_resonance_decays()

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------
    def _build_pdg_map(self):
        self._pdg_map = {}
        for i, part in enumerate(self.particles):
            if part.pdg in self._pdg_map:
                raise ValueError(f"Duplicate PDG code {part.pdg} in particle list")
            self._pdg_map[part.pdg] = i

    def __len__(self):
        return len(self.particles)

    def pdg_to_id(self, pdg: int) -> int:
        """Index of the species with the given PDG code, or -1 if absent."""
        return self._pdg_map.get(pdg, -1)

    def particle_by_pdg(self, pdg: int) -> Particle:
        idx = self.pdg_to_id(pdg)
        if idx < 0:
            raise KeyError(f"PDG code {pdg} not in particle list")
        return self.particles[idx]

    def charges(self, which: ConservedCharge) -> np.ndarray:
        return np.array([p.charge(which) for p in self.particles], dtype=float)

    def masses(self) -> np.ndarray:
        return np.array([p.mass for p in self.particles])

    def has_charm(self) -> bool:
        return any(p.charm != 0 for p in self.particles)

    def copy(self) -> 'ParticleSystem':
        return copy.deepcopy(self)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------
    def set_stable(self, index: int, stable: bool):
        self.particles[index].stable = bool(stable)

    def set_statistics(self, quantum: bool):
        """Switch all species between Boltzmann and quantum statistics."""
        for part in self.particles:
            if not quantum:
                part.statistics = 0
            elif part.baryon_charge % 2 != 0:
                part.statistics = 1
            else:
                part.statistics = -1

    # -------------------------------------------------------------------------
    # Decay network
    # -------------------------------------------------------------------------
    def _normalized_channels(self, r: int) -> List[Tuple[float, List[int]]]:
        """Channels of resonance r with known daughters and unit total branching."""
        part = self.particles[r]
        channels = []
        total = 0.0
        for ch in part.decays:
            if ch.branching_ratio <= 0.0:
                continue
            daughters = [self._pdg_map[d] for d in ch.daughters if d in self._pdg_map]
            channels.append((ch.branching_ratio, daughters))
            total += ch.branching_ratio
        if total <= 0.0:
            return []
        return [(br / total, daughters) for br, daughters in channels]

    def _decays(self, r: int) -> bool:
        return (not self.particles[r].stable) and len(self._channels[r]) > 0

    def _topological_order(self) -> List[int]:
        """Decaying species ordered so that every daughter precedes its parent."""
        order = []
        state = [0] * len(self.particles)   # 0 new, 1 visiting, 2 done

        def visit(r):
            if state[r] == 2:
                return
            if state[r] == 1:
                raise ValueError(f"Cyclic decay chain through {self.particles[r].name}")
            state[r] = 1
            for _, daughters in self._channels[r]:
                for d in daughters:
                    if self._decays(d):
                        visit(d)
            state[r] = 2
            order.append(r)

        for r in range(len(self.particles)):
            if self._decays(r):
                visit(r)
        return order

    def fill_resonance_decays(self):
        """
        Compute decay contributions for the current stability flags.

        For every decaying species r and every species i, the number of i
        produced in the full cascade of r is a random variable. Its cumulants
        follow from the independence of daughters within a channel (cumulants
        add) and the mixture over channels (raw moments average with the
        branching ratios).
        """
        N = len(self.particles)
        self._channels = [self._normalized_channels(r) for r in range(N)]
        self._order = self._topological_order()

        cumulants: Dict[int, np.ndarray] = {}
        for r in self._order:
            moments = np.zeros((N, 4))
            for br, daughters in self._channels[r]:
                k_channel = np.zeros((N, 4))
                for d in daughters:
                    if d in cumulants:
                        k_channel += cumulants[d]
                    k_channel[d, 0] += 1.0
                moments += br * _cumulants_to_moments(k_channel)
            cumulants[r] = _moments_to_cumulants(moments)

        self._cumulants = cumulants
        self.decay_mean_matrix = np.zeros((N, N))
        for r, k in cumulants.items():
            self.decay_mean_matrix[r, :] = k[:, 0]

        self.decay_contributions: List[List[Tuple[float, int]]] = [[] for _ in range(N)]
        self.decay_sigmas: List[List[Tuple[float, int]]] = [[] for _ in range(N)]
        self.decay_cumulants: List[List[Tuple[List[float], int]]] = [[] for _ in range(N)]
        for r in sorted(cumulants):
            k = cumulants[r]
            for i in range(N):
                if k[i, 0] > 0.0:
                    self.decay_contributions[i].append((k[i, 0], r))
                    self.decay_sigmas[i].append((k[i, 1], r))
                    self.decay_cumulants[i].append((list(k[i, :]), r))

    def decay_covariance_sum(self, weights: np.ndarray) -> np.ndarray:
        """
        Weighted sum over resonances of decay-induced covariance matrices.

            Σ_r weights[r] Cov_r[i, j]

        where Cov_r is the covariance of the numbers of species (i, j)
        produced in the full decay cascade of r. The cascade is folded by
        propagating weights from parents to daughters, so each resonance
        only contributes its direct two-body term once.
        """
        N = len(self.particles)
        weights = np.asarray(weights, dtype=float)
        eff = np.zeros(N)
        for r in self._order:
            eff[r] = weights[r]
        result = np.zeros((N, N))

        for r in reversed(self._order):
            if eff[r] == 0.0:
                continue
            mean_r = self.decay_mean_matrix[r]
            direct = -np.outer(mean_r, mean_r)
            for br, daughters in self._channels[r]:
                m_channel = np.zeros(N)
                for d in daughters:
                    m_channel[d] += 1.0
                    if d in self._cumulants:
                        m_channel += self.decay_mean_matrix[d]
                        eff[d] += eff[r] * br
                direct += br * np.outer(m_channel, m_channel)
            result += eff[r] * direct
        return result


# =============================================================================
# BUILT-IN HADRON LIST
# =============================================================================
_SELF_CONJUGATE = {111, 113, 221, 223, 331, 333}


def _antiparticle(part: Particle, name: str) -> Particle:
    anti = copy.deepcopy(part)
    anti.pdg = -part.pdg
    anti.name = name
    anti.baryon_charge = -part.baryon_charge
    anti.electric_charge = -part.electric_charge
    anti.strangeness = -part.strangeness
    anti.charm = -part.charm
    anti.decays = [
        DecayChannel(ch.branching_ratio,
                     [d if d in _SELF_CONJUGATE else -d for d in ch.daughters])
        for ch in part.decays
    ]
    return anti


def _resonance(pdg, name, mass, g, width, threshold, B, Q, S, decays, stat):
    return Particle(pdg=pdg, name=name, mass=mass, degeneracy=g, statistics=stat,
                    baryon_charge=B, electric_charge=Q, strangeness=S,
                    width=width, threshold=threshold, stable=False,
                    decay_type=DecayType.STRONG,
                    decays=[DecayChannel(br, d) for br, d in decays])


def _stable(pdg, name, mass, g, B, Q, S, stat, decay_type=DecayType.WEAK):
    return Particle(pdg=pdg, name=name, mass=mass, degeneracy=g, statistics=stat,
                    baryon_charge=B, electric_charge=Q, strangeness=S,
                    stable=True, decay_type=decay_type)


def get_light_hadron_list(include_nuclei: bool = False) -> List[Particle]:
    """
    Light-flavour hadrons up to the decuplet, with their antiparticles.

    Weakly and electromagnetically decaying hadrons are stable; strong
    resonances decay into the listed daughters.
    """
    pi_p, pi_m, pi_0 = 211, -211, 111
    K_p, K_0 = 321, 311
    p, n = 2212, 2112
    La, Sp, S0, Sm = 3122, 3222, 3212, 3112
    X0, Xm = 3322, 3312

    mesons = [
        _stable(pi_p, "pi+", 0.13957, 1, 0, 1, 0, -1),
        _stable(pi_m, "pi-", 0.13957, 1, 0, -1, 0, -1),
        _stable(pi_0, "pi0", 0.134977, 1, 0, 0, 0, -1, DecayType.ELECTROMAGNETIC),
        _stable(K_p, "K+", 0.493677, 1, 0, 1, 1, -1),
        _stable(-K_p, "K-", 0.493677, 1, 0, -1, -1, -1),
        _stable(K_0, "K0", 0.497611, 1, 0, 0, 1, -1),
        _stable(-K_0, "anti-K0", 0.497611, 1, 0, 0, -1, -1),
        _stable(221, "eta", 0.547862, 1, 0, 0, 0, -1, DecayType.ELECTROMAGNETIC),
        _resonance(213, "rho+", 0.77526, 3, 0.1491, 0.28, 0, 1, 0,
                   [(1.0, [pi_p, pi_0])], -1),
        _resonance(-213, "rho-", 0.77526, 3, 0.1491, 0.28, 0, -1, 0,
                   [(1.0, [pi_m, pi_0])], -1),
        _resonance(113, "rho0", 0.77526, 3, 0.1491, 0.28, 0, 0, 0,
                   [(1.0, [pi_p, pi_m])], -1),
        _resonance(223, "omega", 0.78265, 3, 0.00849, 0.42, 0, 0, 0,
                   [(0.893, [pi_p, pi_m, pi_0]), (0.0153, [pi_p, pi_m])], -1),
    ]
    kstars = [
        _resonance(323, "K*+", 0.89166, 3, 0.0508, 0.64, 0, 1, 1,
                   [(2.0 / 3.0, [K_0, pi_p]), (1.0 / 3.0, [K_p, pi_0])], -1),
        _resonance(313, "K*0", 0.89555, 3, 0.0473, 0.64, 0, 0, 1,
                   [(2.0 / 3.0, [K_p, pi_m]), (1.0 / 3.0, [K_0, pi_0])], -1),
    ]
    mesons += kstars
    mesons += [_antiparticle(kstars[0], "K*-"), _antiparticle(kstars[1], "anti-K*0")]

    baryons = [
        _stable(p, "p", 0.938272, 2, 1, 1, 0, 1, DecayType.STABLE),
        _stable(n, "n", 0.939565, 2, 1, 0, 0, 1),
        _stable(La, "Lambda", 1.115683, 2, 1, 0, -1, 1),
        _stable(Sp, "Sigma+", 1.18937, 2, 1, 1, -1, 1),
        Particle(pdg=S0, name="Sigma0", mass=1.192642, degeneracy=2, statistics=1,
                 baryon_charge=1, electric_charge=0, strangeness=-1, stable=False,
                 decay_type=DecayType.ELECTROMAGNETIC,
                 decays=[DecayChannel(1.0, [La, 22])]),
        _stable(Sm, "Sigma-", 1.197449, 2, 1, -1, -1, 1),
        _stable(X0, "Xi0", 1.31486, 2, 1, 0, -2, 1),
        _stable(Xm, "Xi-", 1.32171, 2, 1, -1, -2, 1),
        _stable(3334, "Omega-", 1.67245, 4, 1, -1, -3, 1),
        _resonance(2224, "Delta++", 1.232, 4, 0.117, 1.08, 1, 2, 0,
                   [(1.0, [p, pi_p])], 1),
        _resonance(2214, "Delta+", 1.232, 4, 0.117, 1.08, 1, 1, 0,
                   [(2.0 / 3.0, [p, pi_0]), (1.0 / 3.0, [n, pi_p])], 1),
        _resonance(2114, "Delta0", 1.232, 4, 0.117, 1.08, 1, 0, 0,
                   [(2.0 / 3.0, [n, pi_0]), (1.0 / 3.0, [p, pi_m])], 1),
        _resonance(1114, "Delta-", 1.232, 4, 0.117, 1.08, 1, -1, 0,
                   [(1.0, [n, pi_m])], 1),
        _resonance(3224, "Sigma*+", 1.3828, 4, 0.036, 1.26, 1, 1, -1,
                   [(0.87, [La, pi_p]), (0.065, [Sp, pi_0]), (0.065, [S0, pi_p])], 1),
        _resonance(3214, "Sigma*0", 1.3837, 4, 0.036, 1.26, 1, 0, -1,
                   [(0.87, [La, pi_0]), (0.065, [Sp, pi_m]), (0.065, [Sm, pi_p])], 1),
        _resonance(3114, "Sigma*-", 1.3872, 4, 0.0394, 1.26, 1, -1, -1,
                   [(0.87, [La, pi_m]), (0.065, [S0, pi_m]), (0.065, [Sm, pi_0])], 1),
        _resonance(3324, "Xi*0", 1.5318, 4, 0.0091, 1.45, 1, 0, -2,
                   [(1.0 / 3.0, [X0, pi_0]), (2.0 / 3.0, [Xm, pi_p])], 1),
        _resonance(3314, "Xi*-", 1.535, 4, 0.0099, 1.45, 1, -1, -2,
                   [(1.0 / 3.0, [Xm, pi_0]), (2.0 / 3.0, [X0, pi_m])], 1),
    ]
    antibaryons = [_antiparticle(b, "anti-" + b.name) for b in baryons]

    particles = mesons + baryons + antibaryons

    if include_nuclei:
        deuteron = _stable(1000010020, "d", 1.875613, 3, 2, 1, 0, -1, DecayType.STABLE)
        particles += [deuteron, _antiparticle(deuteron, "anti-d")]

    return particles


def get_light_hadron_system(quantum_statistics: bool = False,
                            include_nuclei: bool = False) -> ParticleSystem:
    """Particle system of get_light_hadron_list() with decay tables filled."""
    system = ParticleSystem(get_light_hadron_list(include_nuclei))
    system.set_statistics(quantum_statistics)
    return system


# =============================================================================
# SELF-TEST
# =============================================================================
if __name__ == "__main__":
    print("Light hadron list")
    print("=" * 60)
    system = get_light_hadron_system()
    for i, part in enumerate(system.particles):
        flag = "stable" if part.stable else f"{len(part.decays)} channels"
        print(f"  [{i:2d}] {part.name:12s} m = {part.mass:.4f} GeV  ({flag})")

    ip = system.pdg_to_id(211)
    print("\nFeed-down into pi+:")
    for (mean, r), (var, _) in zip(system.decay_contributions[ip], system.decay_sigmas[ip]):
        print(f"  {system.particles[r].name:12s} <n> = {mean:.4f}  var = {var:.4f}")
