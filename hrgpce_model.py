"""
hrgpce_model.py
===============
Partial chemical equilibrium (PCE) of a hadron resonance gas after chemical
freeze-out.

Below the chemical freeze-out temperature the yields of hadrons that do not
decay strongly are frozen, while short-lived resonances stay in equilibrium
with their decay products. The chemical potential of every species is then
fixed by the potentials of the frozen ("stable") components:

    μ_i = Σ_s E_is μ_s

where E_is is the mean number of stable component s produced by species i
(1 for s itself). Along the isentropic expansion each step solves S+1
equations for the S potentials μ_s and the volume V:

    (Σ_i E_is n_i V) / (n_s^init V_init) - 1 = 0       (conserved yields)
    (s V) / (s_init V_init) - 1 = 0                      (conserved entropy)

Light nuclei are treated through Saha equations: their "decays" into the
constituent nucleons and hyperons make their potentials sums of nucleon and
hyperon potentials.
"""
import numpy as np
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence, Tuple

from general_broyden_solver import (
    BroydenSolver, EquationSystem, SolutionCriterion, SolverStatus, MAX_ITERS, TOL
)
from general_ideal_gas import chemical_potential
from hrg_particles import DecayChannel, DecayType, ParticleSystem
from hrgev_crossterms_model import ExcludedVolumeCrosstermsModel
from hrgev_parameters import ThermalModelParameters


# =============================================================================
# LIGHT NUCLEI CONTENT
# =============================================================================
# PDG code: (name, constituent PDG codes)
NUCLEI_CONTENT: Dict[int, Tuple[str, List[int]]] = {
    1000010020: ("d", [2212, 2112]),
    1000020030: ("He3", [2212, 2212, 2112]),
    1010010030: ("H3La", [2212, 2112, 3122]),
    1000020040: ("He4", [2212, 2112, 2212, 2112]),
    1010000020: ("LambdaNeutron", [2112, 3122]),
    1010010020: ("LambdaProton", [2212, 3122]),
    1020000020: ("DiLambda", [3122, 3122]),
    1000010030: ("Triton", [2212, 2112, 2112]),
    1010020040: ("He4La", [2212, 2112, 2212, 3122]),
    1010010040: ("H4La", [2212, 2112, 2112, 3122]),
    1010020050: ("He5La", [2212, 2112, 2212, 2112, 3122]),
    1020010020: ("XiProton", [3322, 2212]),
    1030000020: ("OmegaProton", [3334, 2212]),
    1040000020: ("DiXi0", [3322, 3322]),
}

DEFAULT_WIDTH_CUT = 0.015     # GeV, long-lived resonance threshold


# =============================================================================
# ENUMERATIONS AND ERRORS
# =============================================================================
class PCEStage(Enum):
    """Stage of the PCE calculation."""
    UNINITIALIZED = auto()
    STABILITY_SET = auto()
    FREEZEOUT_SET = auto()
    CALCULATED = auto()


class PCEConfigurationError(ValueError):
    """Inconsistent stability flags or stable-component bookkeeping."""


class PCEStateError(RuntimeError):
    """Operation called before the PCE model was set up for it."""


# =============================================================================
# STABILITY FLAGS AND NUCLEI
# =============================================================================
def compute_pce_stability_flags(
    system: ParticleSystem,
    saha_for_nuclei: bool = True,
    freeze_long_lived: bool = False,
    width_cut: float = DEFAULT_WIDTH_CUT
) -> List[bool]:
    """
    Default PCE freeze flags.

    Yields of hadrons not decaying strongly are frozen, except light nuclei
    (|B| > 1) when Saha equations are used. Optionally, strongly decaying
    resonances narrower than width_cut are frozen as well. Neutral kaons are
    treated as K0/anti-K0 rather than K0S/K0L.
    """
    flags = []
    for part in system.particles:
        frozen = part.decay_type != DecayType.STRONG
        if saha_for_nuclei and abs(part.baryon_charge) > 1:
            frozen = False
        if (freeze_long_lived and part.decay_type == DecayType.STRONG
                and part.width < width_cut and abs(part.baryon_charge) <= 1):
            frozen = True
        if part.pdg in (310, 130):
            frozen = False
        if part.pdg in (311, -311):
            frozen = True
        flags.append(frozen)
    return flags


def prepare_nuclei_for_pce(system: ParticleSystem) -> None:
    """Replace the decays of known light (anti)nuclei by their constituents."""
    for part in system.particles:
        content = NUCLEI_CONTENT.get(abs(part.pdg))
        if content is None:
            continue
        sign = -1 if part.pdg < 0 else 1
        part.decays = [DecayChannel(1.0, [sign * d for d in content[1]])]


# =============================================================================
# RESULT
# =============================================================================
@dataclass
class PCEState:
    """
    One step of a PCE trajectory.

    Attributes:
        T: Temperature (GeV)
        V: Volume (fm³)
        stable_chemical_potentials: μ_s of the stable components (GeV)
        chemical_potentials: μ_i of all species (GeV)
        densities: Primordial densities (fm⁻³)
        densities_total: Densities after decays (fm⁻³)
        entropy_density: fm⁻³
        pressure: GeV/fm³
        converged: Broyden solve converged
        status: Solver status
        iterations: Broyden iterations
        max_difference: Final max|f|
    """
    T: float
    V: float
    stable_chemical_potentials: np.ndarray
    chemical_potentials: np.ndarray
    densities: np.ndarray
    densities_total: np.ndarray
    entropy_density: float
    pressure: float
    converged: bool
    status: SolverStatus
    iterations: int
    max_difference: float


# =============================================================================
# EQUATIONS
# =============================================================================
class PCEEquations(EquationSystem):
    """Conservation of stable yields and of entropy; unknowns (μ_s..., V)."""

    def __init__(self, pce: 'PartialChemicalEquilibriumModel'):
        super().__init__(pce.stable_components_number + 1)
        self.pce = pce

    def equations(self, x: np.ndarray) -> np.ndarray:
        pce = self.pce
        model = pce.model
        E = pce.effective_charges
        V = x[-1]

        model.set_chemical_potentials(E @ x[:-1])
        pce.parameters_current.V = V
        model.set_parameters(pce.parameters_current)
        model.calculate_densities()

        V_init = pce.parameters_init.V
        ret = np.empty(len(x))
        ret[:-1] = (E.T @ model.densities) * V / (pce.stable_densities_init * V_init) - 1.0
        ret[-1] = model.calculate_entropy_density() * V / (pce.entropy_density_init * V_init) - 1.0
        return ret


# =============================================================================
# MODEL
# =============================================================================
class PartialChemicalEquilibriumModel:
    """
    PCE controller on top of an ExcludedVolumeCrosstermsModel.

    Usage:
        pce = PartialChemicalEquilibriumModel(model)
        pce.set_chemical_freezeout(params)
        for T in (0.150, 0.140, 0.130):
            state = pce.calculate_pce(T)
    """

    def __init__(
        self,
        model: ExcludedVolumeCrosstermsModel,
        freeze_long_lived: bool = False,
        width_cut: float = DEFAULT_WIDTH_CUT,
        saha_for_nuclei: bool = True
    ):
        self.model = model
        self.model.use_pce = True
        self.stage = PCEStage.UNINITIALIZED
        self.verbose = False

        self.stability_flags: List[bool] = []
        self.stable_components_number = 0
        self.stable_map_to: List[int] = []
        self.effective_charges = np.zeros((model.n_species, 0))

        self.parameters_init: Optional[ThermalModelParameters] = None
        self.parameters_current: Optional[ThermalModelParameters] = None
        self.chem_init = np.zeros(model.n_species)
        self.chem_current = np.zeros(model.n_species)
        self.densities_init = np.zeros(model.n_species)
        self.stable_densities_init = np.zeros(0)
        self.entropy_density_init = 0.0
        self.particle_density_init = 0.0

        self.set_stability_flags(compute_pce_stability_flags(
            model.system, saha_for_nuclei, freeze_long_lived, width_cut))

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------
    def set_stability_flags(self, flags: Sequence[bool]):
        """
        Fix the frozen species and compute the effective charges E_is.

        Resets any previously set chemical freeze-out.
        """
        N = self.model.n_species
        if len(flags) != N:
            raise PCEConfigurationError(
                f"{len(flags)} stability flags given for {N} species"
            )

        helper = self.model.system.copy()
        prepare_nuclei_for_pce(helper)

        self.stability_flags = [bool(f) for f in flags]
        self.stable_components_number = sum(self.stability_flags)
        for i, frozen in enumerate(self.stability_flags):
            helper.set_stable(i, frozen)
        helper.fill_resonance_decays()

        S = self.stable_components_number
        self.effective_charges = np.zeros((N, S))
        self.stable_map_to = []
        stab_index = 0
        for i, part in enumerate(helper.particles):
            if not part.stable:
                continue
            if stab_index >= S:
                raise PCEConfigurationError("Wrong number of stable components")
            self.effective_charges[i, stab_index] = 1.0
            for mean, r in helper.decay_contributions[i]:
                self.effective_charges[r, stab_index] = mean
            self.stable_map_to.append(i)
            stab_index += 1
        if stab_index != S:
            raise PCEConfigurationError("Wrong number of stable components")

        self.stage = PCEStage.STABILITY_SET

    def set_chemical_freezeout(
        self,
        params: ThermalModelParameters,
        chem_init: Optional[Sequence[float]] = None
    ):
        """
        Compute the reference state at chemical freeze-out.

        Args:
            params: Freeze-out parameters (T, μ's, γ's, V)
            chem_init: Per-species chemical potentials; derived from params if None
        """
        if self.stage == PCEStage.UNINITIALIZED:
            raise PCEStateError("Stability flags must be set before the chemical freeze-out")

        model = self.model
        self.parameters_init = params.copy()
        if chem_init is None:
            chem_init = [chemical_potential(p, params) for p in model.system.particles]
        self.chem_init = np.array(chem_init, dtype=float)

        model.set_parameters(self.parameters_init)
        model.set_chemical_potentials(self.chem_init)
        model.calculate_densities()

        self.densities_init = model.densities_total.copy()
        self.stable_densities_init = self.effective_charges.T @ model.densities
        if np.any(self.stable_densities_init <= 0.0):
            raise PCEConfigurationError("Stable component with vanishing density at freeze-out")
        self.entropy_density_init = model.calculate_entropy_density()
        self.particle_density_init = model.calculate_hadron_density()

        self.parameters_current = self.parameters_init.copy()
        self.chem_current = self.chem_init.copy()
        self.stage = PCEStage.FREEZEOUT_SET

    # -------------------------------------------------------------------------
    # Evolution
    # -------------------------------------------------------------------------
    def calculate_pce(self, T: float, max_iterations: int = MAX_ITERS,
                      tolerance: float = TOL) -> PCEState:
        """
        Advance the trajectory to temperature T (GeV).

        Initial guesses: V (T_old/T)³ and μ_s T/T_old + m_s (1 - T/T_old).
        """
        if self.stage not in (PCEStage.FREEZEOUT_SET, PCEStage.CALCULATED):
            raise PCEStateError("Chemical freeze-out must be set before calculate_pce")

        current = self.parameters_current
        ratio = T / current.T
        V_guess = current.V / ratio**3

        masses = self.model.system.masses()
        x0 = [self.chem_current[i] * ratio + masses[i] * (1.0 - ratio)
              for i in self.stable_map_to]
        x0.append(V_guess)

        current.T = T
        current.V = V_guess

        eqs = PCEEquations(self)
        result = BroydenSolver(eqs).solve(x0, SolutionCriterion(tolerance),
                                          max_iterations=max_iterations)
        # Bring the underlying model to the returned point
        eqs.equations(result.x)

        self.chem_current = self.model.chem.copy()
        current.V = float(result.x[-1])
        self.stage = PCEStage.CALCULATED

        if self.verbose:
            print(f"PCE T = {T*1e3:7.2f} MeV: V = {current.V:.4e} fm³, "
                  f"{result.status.name}, {result.iterations} iterations")

        return PCEState(
            T=T,
            V=current.V,
            stable_chemical_potentials=np.array(result.x[:-1]),
            chemical_potentials=self.chem_current.copy(),
            densities=self.model.densities.copy(),
            densities_total=self.model.densities_total.copy(),
            entropy_density=self.model.calculate_entropy_density(),
            pressure=self.model.calculate_pressure(),
            converged=result.converged,
            status=result.status,
            iterations=result.iterations,
            max_difference=result.max_difference,
        )

    def calculate_trajectory(self, T_values: Sequence[float]) -> List[PCEState]:
        """Successive calculate_pce() steps along a temperature sequence."""
        return [self.calculate_pce(T) for T in T_values]

    def stable_densities(self) -> np.ndarray:
        """Current densities of the stable components, Σ_i E_is n_i (fm⁻³)."""
        if self.stage not in (PCEStage.FREEZEOUT_SET, PCEStage.CALCULATED):
            raise PCEStateError("No PCE state calculated")
        return self.effective_charges.T @ self.model.densities


# =============================================================================
# SELF-TEST
# =============================================================================
if __name__ == "__main__":
    from hrg_particles import get_light_hadron_system
    from hrgev_parameters import get_default_parameters

    system = get_light_hadron_system(include_nuclei=True)
    model = ExcludedVolumeCrosstermsModel(system, radius=0.3)
    pce = PartialChemicalEquilibriumModel(model)
    pce.verbose = True
    print(f"Stable components: {pce.stable_components_number}")

    pce.set_chemical_freezeout(get_default_parameters())
    for state in pce.calculate_trajectory(np.arange(0.150, 0.099, -0.010)):
        ip = system.pdg_to_id(211)
        print(f"  T = {state.T*1e3:.0f} MeV  μ_π = {state.chemical_potentials[ip]*1e3:.2f} MeV")
