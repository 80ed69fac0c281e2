"""
hrgev_crossterms_model.py
=========================
Hadron resonance gas with excluded-volume crossterms interactions.

Each species i feels the partial pressures of all species through the
virial matrix b_ij (fm³):

    P_i = P_i^id(T, μ_i - Σ_j b_ij P_j),      P = Σ_i P_i

The N coupled equations are solved with Broyden's method (closed-form
Jacobian J_ij = δ_ij + b_ij n_i^id), seeded by the one-dimensional
"diagonal" problem P = Σ_i P_i^id(μ_i - b_ii P). A Picard fixed-point
iteration is available as a fallback.

Densities follow from the linear system

    (I + diag(n^id) B) n = n^id

and fluctuations from its derivatives:
- two-particle correlations (primordial and after resonance decays)
- susceptibility matrices of the conserved charges (and net-p/Q/K proxies)
- χ1..χ4 of an arbitrary charge vector via a perturbative ladder of
  2N×2N linear systems

Units:
- T, μ, energies: GeV
- Densities: fm⁻³
- Pressure, energy density: GeV/fm³
- Virial coefficients: fm³
"""
import numpy as np
import warnings
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence
from scipy.linalg import lu_factor, lu_solve

from general_broyden_solver import (
    BroydenResult, BroydenSolver, EquationSystem, FiniteDifferenceJacobian,
    RelativeSolutionCriterion, SolutionCriterion, SolverStatus, MAX_ITERS, TOL
)
from general_ideal_gas import IdealGasQuantity, chemical_potential, chi, density, scaled_variance
from general_physics_constants import GEV_TO_IFM3, over_T3, over_T4
from hrg_particles import ConservedCharge, ParticleSystem
from hrgev_parameters import (
    ThermalModelParameters, fill_virial, get_default_parameters,
    read_virial_table, write_virial_table
)


# =============================================================================
# SOLVER SETTINGS
# =============================================================================
DIAGONAL_DX = 1.0e-8          # Finite-difference step of the diagonal solve
DIAGONAL_TOL = 1.0e-8         # Absolute tolerance of the diagonal solve
PICARD_TOL = 1.0e-10          # Relative tolerance of the fixed-point iteration
PICARD_MAX_ITERS = 1000       # Iteration budget of the fixed-point iteration

_CHARGES = [ConservedCharge.BARYON, ConservedCharge.ELECTRIC,
            ConservedCharge.STRANGENESS, ConservedCharge.CHARM]


# =============================================================================
# RESULT
# =============================================================================
@dataclass
class CrosstermsState:
    """
    Snapshot of a crossterms model calculation.

    Attributes:
        parameters: Thermal parameters used
        chemical_potentials: μ_i (GeV)
        partial_pressures: P_i (GeV/fm³)
        mu_shifts: Excluded-volume shifts -Σ_j b_ij P_j (GeV)
        densities_id: Ideal-gas densities at the shifted μ (fm⁻³)
        densities: Primordial densities (fm⁻³)
        densities_total: Densities after resonance decays (fm⁻³)
        pressure: Total pressure (GeV/fm³)
        entropy_density: Entropy density (fm⁻³)
        energy_density: Energy density (GeV/fm³)
        success: Pressure solve converged
        status: Solver status of the pressure solve
        iterations: Iterations used by the pressure solve
        max_difference: Final max|f| of the pressure solve
        ill_conditioned: The density linear system was numerically singular
    """
    parameters: ThermalModelParameters
    chemical_potentials: np.ndarray
    partial_pressures: np.ndarray
    mu_shifts: np.ndarray
    densities_id: np.ndarray
    densities: np.ndarray
    densities_total: np.ndarray
    pressure: float
    entropy_density: float
    energy_density: float
    success: bool
    status: SolverStatus
    iterations: int
    max_difference: float
    ill_conditioned: bool = False


# =============================================================================
# EQUATION SYSTEMS
# =============================================================================
class CrosstermsPressureEquations(EquationSystem):
    """f_i(P) = P_i - P_i^id(μ_i - Σ_j b_ij P_j)."""

    def __init__(self, model: 'ExcludedVolumeCrosstermsModel'):
        super().__init__(model.n_species)
        self.model = model

    def equations(self, x: np.ndarray) -> np.ndarray:
        return x - self.model.pressures(x)


class CrosstermsDiagonalEquations(EquationSystem):
    """f(P) = P - Σ_i P_i^id(μ_i - b_ii P)."""

    def __init__(self, model: 'ExcludedVolumeCrosstermsModel'):
        super().__init__(1)
        self.model = model

    def equations(self, x: np.ndarray) -> np.ndarray:
        return np.array([x[0] - self.model.pressure_diagonal_total(x[0])])


class CrosstermsPressureJacobian(FiniteDifferenceJacobian):
    """Closed-form Jacobian J_ij = δ_ij + b_ij n_i^id(P)."""

    def __init__(self, model: 'ExcludedVolumeCrosstermsModel'):
        super().__init__(CrosstermsPressureEquations(model))
        self.model = model

    def jacobian(self, x: np.ndarray) -> np.ndarray:
        tN = self.model.densities_id_at(x)
        return np.eye(len(x)) + self.model.virial * tN[:, None]


# =============================================================================
# MODEL
# =============================================================================
class ExcludedVolumeCrosstermsModel:
    """
    Grand-canonical HRG with excluded-volume crossterms.

    Usage:
        system = get_light_hadron_system()
        model = ExcludedVolumeCrosstermsModel(system, get_default_parameters(), radius=0.3)
        state = model.calculate_densities()
        model.calculate_fluctuations()
        print(model.susc(ConservedCharge.BARYON, ConservedCharge.BARYON))
    """

    def __init__(
        self,
        system: ParticleSystem,
        params: Optional[ThermalModelParameters] = None,
        radius: float = 0.0,
        use_width: bool = False
    ):
        self.system = system
        self.parameters = (params if params is not None else get_default_parameters()).copy()
        self.use_width = use_width
        self.use_pce = False
        self.verbose = False

        N = len(system)
        self.radius = radius
        self.virial = fill_virial(np.full(N, radius))
        self.chem = np.zeros(N)
        self.fill_chemical_potentials()

        self.partial_pressures = np.zeros(N)
        self.pressure = 0.0
        self.densities_id = np.zeros(N)
        self.densities = np.zeros(N)
        self.densities_total = np.zeros(N)
        self.entropy_density = 0.0

        self.success = False
        self.status = SolverStatus.NOT_CONVERGED
        self.iterations = 0
        self.max_difference = 0.0
        self.ill_conditioned = False
        self.calculated = False
        self.fluctuations_calculated = False

        self.prim_correl = np.zeros((N, N))
        self.total_correl = np.zeros((N, N))
        self.wprim = np.ones(N)
        self.wtot = np.ones(N)
        self.skewprim = np.ones(N)
        self.kurtprim = np.ones(N)
        self.skewtot = np.ones(N)
        self.kurttot = np.ones(N)
        self.susc_matrix = np.zeros((4, 4))
        self.proxy_susc_matrix = np.zeros((4, 4))

    @property
    def n_species(self) -> int:
        return len(self.system)

    # -------------------------------------------------------------------------
    # Parameters
    # -------------------------------------------------------------------------
    def set_parameters(self, params: ThermalModelParameters):
        """Set thermal parameters; μ_i are refilled unless PCE controls them."""
        self.parameters = params.copy()
        if not self.use_pce:
            self.fill_chemical_potentials()
        self.calculated = False
        self.fluctuations_calculated = False

    def fill_chemical_potentials(self):
        self.chem = np.array([chemical_potential(p, self.parameters)
                              for p in self.system.particles])

    def set_chemical_potentials(self, chem: Optional[Sequence[float]] = None):
        """Set explicit per-species chemical potentials (GeV), or refill from parameters."""
        if chem is None:
            self.fill_chemical_potentials()
        else:
            chem = np.asarray(chem, dtype=float)
            if chem.shape != (self.n_species,):
                raise ValueError(
                    f"Chemical potential vector of length {chem.size} does not match "
                    f"{self.n_species} species"
                )
            self.chem = chem.copy()
        self.calculated = False

    def set_statistics(self, quantum: bool):
        self.system.set_statistics(quantum)
        self.calculated = False

    # -------------------------------------------------------------------------
    # Virial matrix
    # -------------------------------------------------------------------------
    def fill_virial(self, radii: Sequence[float]):
        radii = np.asarray(radii, dtype=float)
        if radii.shape != (self.n_species,):
            raise ValueError(
                f"Size {radii.size} of radii does not match number of hadrons {self.n_species}"
            )
        self.virial = fill_virial(radii)
        self.calculated = False

    def set_radius(self, radius: float):
        """Common hard-core radius (fm) for all species."""
        self.radius = radius
        self.fill_virial(np.full(self.n_species, radius))

    def set_radii(self, radii: Sequence[float]):
        self.fill_virial(radii)

    def set_virial(self, i: int, j: int, b: float):
        N = self.n_species
        if not (0 <= i < N and 0 <= j < N):
            raise IndexError(f"Virial index ({i}, {j}) out of range for {N} species")
        self.virial[i, j] = b
        self.calculated = False

    def virial_coefficient(self, i: int, j: int) -> float:
        N = self.n_species
        if not (0 <= i < N and 0 <= j < N):
            return 0.0
        return float(self.virial[i, j])

    def disable_bbar_repulsion(self):
        """Remove excluded volume between baryons and antibaryons."""
        B = self.system.charges(ConservedCharge.BARYON)
        mask = (B[:, None] * B[None, :]) < 0.0
        self.virial[mask] = 0.0
        self.calculated = False

    def read_interaction_parameters(self, filename: str):
        self.virial = read_virial_table(filename, self.system)
        self.calculated = False

    def write_interaction_parameters(self, filename: str):
        write_virial_table(filename, self.system, self.virial)

    # -------------------------------------------------------------------------
    # Ideal-gas building blocks
    # -------------------------------------------------------------------------
    def _ideal(self, quantity: IdealGasQuantity, dmu: np.ndarray) -> np.ndarray:
        return np.array([
            density(p, self.parameters, quantity, self.use_width, self.chem[i], dmu[i])
            for i, p in enumerate(self.system.particles)
        ])

    def mu_shifts(self, pstars: Optional[np.ndarray] = None) -> np.ndarray:
        """Excluded-volume shifts dμ_i = -Σ_j b_ij P_j (GeV)."""
        if pstars is None:
            pstars = self.partial_pressures
        return -self.virial @ np.asarray(pstars, dtype=float)

    def mu_shift(self, i: int) -> float:
        if not 0 <= i < self.n_species:
            return 0.0
        return float(-self.virial[i] @ self.partial_pressures)

    def pressures(self, pstars: np.ndarray) -> np.ndarray:
        return self._ideal(IdealGasQuantity.PRESSURE, self.mu_shifts(pstars))

    def densities_id_at(self, pstars: np.ndarray) -> np.ndarray:
        return self._ideal(IdealGasQuantity.PARTICLE_DENSITY, self.mu_shifts(pstars))

    def pressure_diagonal(self, i: int, P: float) -> float:
        part = self.system.particles[i]
        return density(part, self.parameters, IdealGasQuantity.PRESSURE, self.use_width,
                       self.chem[i], -self.virial[i, i] * P)

    def pressure_diagonal_total(self, P: float) -> float:
        return sum(self.pressure_diagonal(i, P) for i in range(self.n_species))

    # -------------------------------------------------------------------------
    # Pressure
    # -------------------------------------------------------------------------
    def solve_diagonal(self) -> BroydenResult:
        """Solve the diagonal (self-repulsion only) problem and seed P_i."""
        eqs = CrosstermsDiagonalEquations(self)
        jac = FiniteDifferenceJacobian(eqs, dx=DIAGONAL_DX)
        result = BroydenSolver(eqs, jac).solve([0.0], SolutionCriterion(DIAGONAL_TOL))

        self.pressure = float(result.x[0])
        self.partial_pressures = np.array([self.pressure_diagonal(i, self.pressure)
                                           for i in range(self.n_species)])
        return result

    def solve_pressure(
        self,
        reset_partials: bool = True,
        tolerance: float = TOL,
        max_iterations: int = MAX_ITERS,
        should_stop: Optional[Callable[[int, np.ndarray, np.ndarray], bool]] = None
    ) -> BroydenResult:
        """
        Solve the crossterms equations for the partial pressures.

        Args:
            reset_partials: Restart from the diagonal solution (else continue
                from the current partial pressures)
            tolerance: Relative tolerance max_i |f_i|/|P_i|
            max_iterations: Broyden iteration budget
            should_stop: Cooperative cancellation hook, see BroydenSolver.solve
        """
        if reset_partials:
            self.partial_pressures = np.zeros(self.n_species)
            self.solve_diagonal()

        eqs = CrosstermsPressureEquations(self)
        jac = CrosstermsPressureJacobian(self)
        solver = BroydenSolver(eqs, jac)
        result = solver.solve(self.partial_pressures, RelativeSolutionCriterion(tolerance),
                              max_iterations=max_iterations, should_stop=should_stop,
                              verbose=self.verbose)

        self.partial_pressures = result.x.copy()
        self.pressure = float(np.sum(self.partial_pressures))
        self.status = result.status
        self.iterations = result.iterations
        self.success = result.converged and result.iterations < result.max_iterations
        self.max_difference = result.max_difference

        if self.verbose:
            print(f"Crossterms pressure solve: {result.status.name} after "
                  f"{result.iterations} iterations, max|f| = {result.max_difference:.2e}")
        return result

    def solve_pressure_iter(self) -> bool:
        """
        Picard iteration P_i ← P_i^id(μ_i - Σ_j b_ij P_j) from the diagonal seed.

        Stops when the largest relative change is below PICARD_TOL (absolute
        change for species whose new pressure vanishes).
        """
        self.partial_pressures = np.zeros(self.n_species)
        self.solve_diagonal()

        Ps = self.partial_pressures
        maxdiff = 0.0
        converged = False
        iteration = 0
        for iteration in range(1, PICARD_MAX_ITERS + 1):
            Pnew = self.pressures(Ps)
            change = np.abs(Pnew - Ps)
            scale = np.where(Pnew != 0.0, np.abs(Pnew), 1.0)
            maxdiff = float(np.max(change / scale))
            Ps = Pnew
            if maxdiff < PICARD_TOL:
                converged = True
                break

        if not converged:
            warnings.warn(f"Picard iteration not converged after {iteration} iterations "
                          f"(max relative change {maxdiff:.3e})", RuntimeWarning)

        self.partial_pressures = Ps
        self.pressure = float(np.sum(Ps))
        self.success = converged
        self.status = SolverStatus.CONVERGED if converged else SolverStatus.NOT_CONVERGED
        self.iterations = iteration
        self.max_difference = maxdiff
        return converged

    # -------------------------------------------------------------------------
    # Densities
    # -------------------------------------------------------------------------
    def _factorize(self, matrix: np.ndarray):
        """
        LU factorization; flags (and warns about) numerically singular systems.

        Returns None for a matrix with non-finite entries (diverged pressure
        solve); _solve_linear then yields NaN.
        """
        if not np.all(np.isfinite(matrix)):
            self.ill_conditioned = True
            warnings.warn("Non-finite density matrix in ExcludedVolumeCrosstermsModel, "
                          "densities set to NaN", RuntimeWarning)
            return None
        try:
            cond = np.linalg.cond(matrix)
        except np.linalg.LinAlgError:
            cond = np.inf
        if not np.isfinite(cond) or cond > 1.0 / np.finfo(float).eps:
            self.ill_conditioned = True
            warnings.warn("Ill-conditioned density matrix in "
                          "ExcludedVolumeCrosstermsModel", RuntimeWarning)
        return lu_factor(matrix, check_finite=False)

    @staticmethod
    def _solve_linear(lu, rhs: np.ndarray, trans: int = 0) -> np.ndarray:
        if lu is None:
            return np.full(np.shape(rhs), np.nan)
        return lu_solve(lu, rhs, trans=trans, check_finite=False)

    def _density_matrix(self, tN: np.ndarray) -> np.ndarray:
        """A = I + diag(n^id) B."""
        return np.eye(self.n_species) + tN[:, None] * self.virial

    def _entropy_id(self) -> np.ndarray:
        return self._ideal(IdealGasQuantity.ENTROPY_DENSITY, self.mu_shifts())

    def calculate_densities(
        self,
        reset_partials: bool = True,
        should_stop: Optional[Callable[[int, np.ndarray, np.ndarray], bool]] = None
    ) -> CrosstermsState:
        """
        Solve for the pressure, then primordial densities, entropy and feed-down.

        n_i = Σ_k [A⁻¹ (e_i n_i^id)]_k,   s = Σ_k [A⁻¹ s^id]_k
        """
        self.fluctuations_calculated = False
        self.ill_conditioned = False

        self.solve_pressure(reset_partials=reset_partials, should_stop=should_stop)

        tN = self.densities_id_at(self.partial_pressures)
        self.densities_id = tN
        lu = self._factorize(self._density_matrix(tN))

        self.densities = self._solve_linear(lu, np.diag(tN)).sum(axis=0)
        self.entropy_density = float(np.sum(self._solve_linear(lu, self._entropy_id())))

        self.calculate_feeddown()
        self.calculated = True
        return self.state()

    def calculate_densities_iter(self) -> CrosstermsState:
        """Densities from the Picard pressure solution (transposed single solve)."""
        self.fluctuations_calculated = False
        self.ill_conditioned = False

        self.solve_pressure_iter()

        tN = self.densities_id_at(self.partial_pressures)
        self.densities_id = tN

        # (I + diag(n^id) Bᵀ) n = n^id
        lu_t = self._factorize(np.eye(self.n_species) + tN[:, None] * self.virial.T)
        self.densities = self._solve_linear(lu_t, tN)

        lu = self._factorize(self._density_matrix(tN))
        self.entropy_density = float(np.sum(self._solve_linear(lu, self._entropy_id())))

        self.calculate_feeddown()
        self.calculated = True
        return self.state()

    def calculate_feeddown(self):
        """Total densities n_i + Σ_r <n_i>_r n_r for the current stability flags."""
        self.densities_total = self.densities + self.system.decay_mean_matrix.T @ self.densities

    def state(self) -> CrosstermsState:
        return CrosstermsState(
            parameters=self.parameters.copy(),
            chemical_potentials=self.chem.copy(),
            partial_pressures=self.partial_pressures.copy(),
            mu_shifts=self.mu_shifts(),
            densities_id=self.densities_id.copy(),
            densities=self.densities.copy(),
            densities_total=self.densities_total.copy(),
            pressure=self.pressure,
            entropy_density=self.entropy_density,
            energy_density=self.calculate_energy_density(),
            success=self.success,
            status=self.status,
            iterations=self.iterations,
            max_difference=self.max_difference,
            ill_conditioned=self.ill_conditioned,
        )

    def _ensure_calculated(self):
        if not self.calculated:
            self.calculate_densities()

    # -------------------------------------------------------------------------
    # Thermodynamic functions
    # -------------------------------------------------------------------------
    def calculate_pressure(self) -> float:
        self._ensure_calculated()
        return self.pressure

    def calculate_entropy_density(self) -> float:
        self._ensure_calculated()
        return self.entropy_density

    def calculate_energy_density(self) -> float:
        """ε = T s - P + Σ_i μ_i n_i (GeV/fm³)."""
        self._ensure_calculated()
        return (self.parameters.T * self.entropy_density - self.pressure
                + float(self.chem @ self.densities))

    def calculate_hadron_density(self) -> float:
        self._ensure_calculated()
        return float(np.sum(self.densities))

    def calculate_charge_density(self, which: ConservedCharge) -> float:
        self._ensure_calculated()
        return float(self.system.charges(which) @ self.densities)

    def calculate_baryon_density(self) -> float:
        return self.calculate_charge_density(ConservedCharge.BARYON)

    def calculate_electric_charge_density(self) -> float:
        return self.calculate_charge_density(ConservedCharge.ELECTRIC)

    def calculate_strangeness_density(self) -> float:
        return self.calculate_charge_density(ConservedCharge.STRANGENESS)

    def calculate_charm_density(self) -> float:
        return self.calculate_charge_density(ConservedCharge.CHARM)

    def pressure_over_T4(self) -> float:
        return over_T4(self.calculate_pressure(), self.parameters.T)

    def energy_density_over_T4(self) -> float:
        return over_T4(self.calculate_energy_density(), self.parameters.T)

    def trace_anomaly_over_T4(self) -> float:
        return over_T4(self.calculate_energy_density() - 3.0 * self.calculate_pressure(),
                       self.parameters.T)

    def entropy_density_over_T3(self) -> float:
        return over_T3(self.calculate_entropy_density(), self.parameters.T)

    def _charged_mask(self, sign: int, final: bool) -> np.ndarray:
        Q = self.system.charges(ConservedCharge.ELECTRIC)
        if sign == 0:
            mask = Q != 0.0
        elif sign > 0:
            mask = Q > 0.0
        else:
            mask = Q < 0.0
        if final:
            mask &= np.array([p.stable for p in self.system.particles])
        return mask.astype(float)

    def charged_density(self, sign: int = 0, final: bool = False) -> float:
        """Density of charged (sign 0), positive (+1) or negative (-1) hadrons."""
        self._ensure_calculated()
        dens = self.densities_total if final else self.densities
        return float(self._charged_mask(sign, final) @ dens)

    def charged_scaled_variance(self, sign: int = 0, final: bool = False) -> float:
        if not self.fluctuations_calculated:
            self.calculate_fluctuations()
        c = self._charged_mask(sign, final)
        correl = self.total_correl if final else self.prim_correl
        dens = self.charged_density(sign, final)
        if dens <= 0.0:
            return 1.0
        return float(c @ correl @ c) * self.parameters.T / dens

    # -------------------------------------------------------------------------
    # Fluctuations
    # -------------------------------------------------------------------------
    def calculate_two_particle_correlations(self):
        """
        Primordial and total two-particle correlations ⟨ΔN_i ΔN_j⟩/(VT) (fm⁻³/GeV).

        The primordial correlator follows from the response of the densities
        to the chemical potentials through the density matrix A:

            D = A⁻¹ diag(n^id),  C = I - B D
            ⟨ΔN_i ΔN_j⟩/(VT) = Σ_l u_l (n_l^id ω_l^id / T) C_li C_lj,  u = A⁻ᵀ 1

        Totals fold in feed-down means and decay-induced covariances.
        """
        self._ensure_calculated()
        T = self.parameters.T
        N = self.n_species
        mu_shift = self.mu_shifts()

        tN = self.densities_id_at(self.partial_pressures)
        tW = np.array([scaled_variance(p, self.parameters, self.use_width,
                                       self.chem[i], mu_shift[i])
                       for i, p in enumerate(self.system.particles)])

        lu = self._factorize(self._density_matrix(tN))
        ders = self._solve_linear(lu, np.diag(tN))
        coefs = np.eye(N) - self.virial @ ders

        u = self._solve_linear(lu, np.ones(N), trans=1)
        weights = u * tN / T * tW
        self.prim_correl = coefs.T @ (weights[:, None] * coefs)

        self.wprim = np.ones(N)
        positive = self.densities > 0.0
        self.wprim[positive] = (np.diag(self.prim_correl)[positive] * T
                                / self.densities[positive])

        self.calculate_susceptibility_matrix()
        self.calculate_two_particle_fluctuations_decays()
        self.calculate_proxy_susceptibility_matrix()

    def calculate_two_particle_fluctuations_decays(self):
        """Total correlations and scaled variances after resonance decays."""
        T = self.parameters.T
        N = self.n_species
        G = np.eye(N) + self.system.decay_mean_matrix
        self.total_correl = (G.T @ self.prim_correl @ G
                             + self.system.decay_covariance_sum(self.densities / T))

        self.wtot = np.ones(N)
        positive = self.densities_total > 0.0
        self.wtot[positive] = (np.diag(self.total_correl)[positive] * T
                               / self.densities_total[positive])

    def calculate_susceptibility_matrix(self):
        """χ_ab = Σ_ij q_a,i q_b,j ⟨ΔN_i ΔN_j⟩/(VT) / T² (dimensionless)."""
        T = self.parameters.T
        q = np.array([self.system.charges(c) for c in _CHARGES])
        self.susc_matrix = q @ self.prim_correl @ q.T / T**2 / GEV_TO_IFM3

    def calculate_proxy_susceptibility_matrix(self):
        """
        Susceptibilities of final-state proxies: net protons (B), stable
        charged hadrons (Q) and net kaons (S). Charm proxy is left empty.
        """
        T = self.parameters.T
        N = self.n_species
        q = np.zeros((4, N))
        for i, p in enumerate(self.system.particles):
            if not p.stable:
                continue
            if abs(p.pdg) == 2212:
                q[0, i] = p.baryon_charge
            q[1, i] = p.electric_charge
            if abs(p.pdg) == 321:
                q[2, i] = p.strangeness
        self.proxy_susc_matrix = q @ self.total_correl @ q.T / T**2 / GEV_TO_IFM3

    def susc(self, a: ConservedCharge, b: ConservedCharge) -> float:
        if not self.fluctuations_calculated:
            self.calculate_fluctuations()
        return float(self.susc_matrix[_CHARGES.index(a), _CHARGES.index(b)])

    def proxy_susc(self, a: ConservedCharge, b: ConservedCharge) -> float:
        if not self.fluctuations_calculated:
            self.calculate_fluctuations()
        return float(self.proxy_susc_matrix[_CHARGES.index(a), _CHARGES.index(b)])

    def calculate_fluctuations(self):
        """
        Correlations, scaled variances, skewness (C3/C2) and kurtosis (C4/C2)
        of every species, primordial and after decays.
        """
        self.calculate_two_particle_correlations()
        N = self.n_species

        chis = self._charge_ladder(np.eye(N), 4)
        self.skewprim = np.ones(N)
        self.kurtprim = np.ones(N)
        positive = chis[1] > 0.0
        self.skewprim[positive] = chis[2][positive] / chis[1][positive]
        self.kurtprim[positive] = chis[3][positive] / chis[1][positive]

        n, w, sk, ku = self.densities, self.wprim, self.skewprim, self.kurtprim
        for i in range(N):
            tmp2 = n[i] * w[i]
            tmp3 = n[i] * w[i] * sk[i]
            tmp4 = n[i] * w[i] * ku[i]
            for (ni, r), (sigma, _), (cumul, _) in zip(self.system.decay_contributions[i],
                                                       self.system.decay_sigmas[i],
                                                       self.system.decay_cumulants[i]):
                tmp2 += n[r] * (w[r] * ni * ni + sigma)
                tmp3 += n[r] * w[r] * (sk[r] * ni**3 + 3.0 * ni * cumul[1])
                tmp3 += n[r] * cumul[2]
                tmp4 += n[r] * w[r] * (ku[r] * ni**4
                                       + 6.0 * sk[r] * ni * ni * cumul[1]
                                       + 3.0 * cumul[1]**2
                                       + 4.0 * ni * cumul[2])
                tmp4 += n[r] * cumul[3]
            if tmp2 > 0.0:
                self.skewtot[i] = tmp3 / tmp2
                self.kurttot[i] = tmp4 / tmp2
            else:
                self.skewtot[i] = self.kurttot[i] = 1.0

        self.fluctuations_calculated = True

    def calculate_charge_fluctuations(self, charges: Sequence[float], order: int = 4) -> np.ndarray:
        """
        Susceptibilities χ1..χ_order (order ≤ 4) of the charge Σ_i q_i N_i,
        normalized as ∂ⁿ(P/T⁴)/∂(μ_q/T)ⁿ.
        """
        charges = np.asarray(charges, dtype=float)
        if charges.shape != (self.n_species,):
            raise ValueError(
                f"Charge vector of length {charges.size} does not match {self.n_species} species"
            )
        if not 1 <= order <= 4:
            raise ValueError(f"Charge fluctuation order must be between 1 and 4, got {order}")
        self._ensure_calculated()
        return np.array([row[0] for row in self._charge_ladder(charges[:, None], order)])

    def _charge_ladder(self, charges: np.ndarray, order: int) -> List[np.ndarray]:
        """
        Perturbative ladder for the columns of charges (N×K).

        Unknowns of the 2N system at each order are the derivatives of the
        primordial densities (dn) and of the shifted chemical potentials (dμ*).
        Returns a list [χ1, ..., χ_order], each of length K.
        """
        T = self.parameters.T
        N = self.n_species
        B = self.virial
        g3 = GEV_TO_IFM3
        n = self.densities

        ret = [over_T3(charges.T @ n, T)]
        if order < 2:
            return ret

        mu_star = self.chem + self.mu_shifts()
        parts = self.system.particles
        dens_id = np.array([density(p, self.parameters, IdealGasQuantity.PARTICLE_DENSITY,
                                    self.use_width, mu_star[i], 0.0)
                            for i, p in enumerate(parts)])
        chi2id = np.array([chi(2, p, self.parameters, self.use_width, mu_star[i], 0.0)
                           for i, p in enumerate(parts)])

        tmps = B.T @ n

        matrix = np.zeros((2 * N, 2 * N))
        matrix[:N, :N] = np.eye(N) + dens_id[:, None] * B.T
        matrix[:N, N:] = np.diag((tmps - 1.0) * chi2id * g3 * T * T)
        matrix[N:, N:] = np.eye(N) + B * dens_id[None, :]
        lu = self._factorize(matrix)

        # chi2
        rhs = np.zeros((2 * N, charges.shape[1]))
        rhs[N:] = charges
        sol = self._solve_linear(lu, rhs)
        dni, dmus = sol[:N], sol[N:]
        ret.append(np.sum(charges * dni, axis=0) / (T**2 * g3))
        if order < 3:
            return ret

        # chi3
        chi3id = np.array([chi(3, p, self.parameters, self.use_width, mu_star[i], 0.0)
                           for i, p in enumerate(parts)])[:, None]
        c2 = chi2id[:, None]
        ts = tmps[:, None]

        rhs = np.zeros_like(rhs)
        rhs[:N] = (-2.0 * (B.T @ dni) * c2 * g3 * T * T * dmus
                   - (ts - 1.0) * chi3id * g3 * T * dmus**2)
        rhs[N:] = -B @ (dmus * c2 * g3 * T * T * dmus)
        sol = self._solve_linear(lu, rhs)
        d2ni, d2mus = sol[:N], sol[N:]
        ret.append(np.sum(charges * d2ni, axis=0) / (T * g3))
        if order < 4:
            return ret

        # chi4
        chi4id = np.array([chi(4, p, self.parameters, self.use_width, mu_star[i], 0.0)
                           for i, p in enumerate(parts)])[:, None]
        dnis = c2 * g3 * T * T * dmus
        d2nis = chi3id * g3 * T * dmus**2 + c2 * g3 * T * T * d2mus

        rhs = np.zeros_like(rhs)
        rhs[:N] = (-3.0 * (B.T @ dni) * d2nis
                   - 3.0 * (B.T @ d2ni) * dnis
                   - (ts - 1.0) * chi3id * g3 * T * d2mus * 3.0 * dmus
                   - (ts - 1.0) * chi4id * g3 * dmus**3)
        rhs[N:] = -2.0 * B @ (d2mus * dnis) - B @ (dmus * d2nis)
        sol = self._solve_linear(lu, rhs)
        d3ni = sol[:N]
        ret.append(np.sum(charges * d3ni, axis=0) / g3)
        return ret

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------
    def summary(self):
        """Print parameters and results."""
        self._ensure_calculated()
        p = self.parameters
        print("Parameters:")
        print(f"  {'T':20s} = {p.T*1e3:.4f} MeV")
        print(f"  {'mu_B':20s} = {p.muB*1e3:.4f} MeV")
        print(f"  {'mu_Q':20s} = {p.muQ*1e3:.4f} MeV")
        print(f"  {'mu_S':20s} = {p.muS*1e3:.4f} MeV")
        if self.system.has_charm():
            print(f"  {'mu_C':20s} = {p.muC*1e3:.4f} MeV")
        print(f"  {'gamma_q':20s} = {p.gammaq:.4f}")
        print(f"  {'gamma_S':20s} = {p.gammaS:.4f}")
        print(f"  {'Volume':20s} = {p.V:.4f} fm^3")
        print(f"  {'Finite widths':20s} = {'Yes' if self.use_width else 'No'}")
        quantum = any(part.statistics != 0 for part in self.system.particles)
        print(f"  {'Quantum statistics':20s} = {'Yes' if quantum else 'No'}")

        print("\nCalculation results:")
        print(f"  {'Total hadron density':25s} = {self.calculate_hadron_density():.6e} fm^-3")
        print(f"  {'Net baryon density':25s} = {self.calculate_baryon_density():.6e} fm^-3")
        print(f"  {'Electric charge density':25s} = {self.calculate_electric_charge_density():.6e} fm^-3")
        print(f"  {'Net strangeness density':25s} = {self.calculate_strangeness_density():.6e} fm^-3")
        print(f"  {'Net charm density':25s} = {self.calculate_charm_density():.6e} fm^-3")
        print(f"  {'Energy density':25s} = {self.calculate_energy_density()*1e3:.6f} MeV/fm^3")
        print(f"  {'Pressure':25s} = {self.calculate_pressure()*1e3:.6f} MeV/fm^3")
        print(f"  {'Entropy density':25s} = {self.calculate_entropy_density():.6f} fm^-3")
        print(f"  {'p/T^4':25s} = {self.pressure_over_T4():.6f}")
        print(f"  {'(e-3p)/T^4':25s} = {self.trace_anomaly_over_T4():.6f}")
        print(f"  {'e/T^4':25s} = {self.energy_density_over_T4():.6f}")
        print(f"  {'s/T^3':25s} = {self.entropy_density_over_T3():.6f}")
        print(f"  {'Converged':25s} = {self.success} ({self.iterations} iterations, "
              f"max diff {self.max_difference:.2e})")

        if self.fluctuations_calculated:
            names = ['B', 'Q', 'S', 'C']
            print("\nSusceptibilities:")
            for a in range(3):
                for b in range(a, 3):
                    print(f"  chi2_{names[a]}{names[b]:22s} = {self.susc_matrix[a, b]:.6f}")


# =============================================================================
# SELF-TEST
# =============================================================================
if __name__ == "__main__":
    from hrg_particles import get_light_hadron_system

    system = get_light_hadron_system(quantum_statistics=True)
    model = ExcludedVolumeCrosstermsModel(system, get_default_parameters(), radius=0.3)
    model.calculate_densities()
    model.calculate_fluctuations()
    model.summary()

    B = system.charges(ConservedCharge.BARYON)
    print("\nNet-baryon χ1..χ4:", model.calculate_charge_fluctuations(B))
