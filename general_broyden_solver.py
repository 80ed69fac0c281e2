"""
general_broyden_solver.py
====================
Model-independent multivariate root finder based on Broyden's method.

This module provides:
1. Abstract equation system (vector of unknowns -> vector of residuals)
2. Jacobian providers (forward finite differences, or model-specific closed forms)
3. Solution criteria (absolute and relative residual tests)
4. The Broyden solver itself, with an optional full-Newton mode

The solver never raises on numerical trouble. A singular Jacobian or an
exhausted iteration budget is reported through SolverStatus on the returned
BroydenResult; only structural misuse (no equations bound, wrong dimension)
raises SolverConfigurationError.

Usage:
    from general_broyden_solver import BroydenSolver, FunctionEquationSystem

    eqs = FunctionEquationSystem(lambda x: x**2 - 2.0, dimension=1)
    result = BroydenSolver(eqs).solve([1.0])
    print(result.x, result.iterations, result.converged)
"""
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Sequence
import warnings


# =============================================================================
# SOLVER DEFAULTS
# =============================================================================
EPS = 1.0e-6          # Default relative finite-difference step
TOL = 1.0e-10         # Default residual tolerance
MAX_ITERS = 200       # Default iteration budget


# =============================================================================
# ENUMERATIONS AND ERRORS
# =============================================================================
class SolverStatus(Enum):
    """Outcome of a Broyden solve."""
    CONVERGED = auto()           # Solution criterion met
    NOT_CONVERGED = auto()       # Iteration budget exhausted
    SINGULAR_JACOBIAN = auto()   # Jacobian could not be inverted
    CANCELLED = auto()           # Stopped by the caller's should_stop hook


class SolverConfigurationError(ValueError):
    """Structural misuse of the solver: missing equations or dimension mismatch."""


# =============================================================================
# EQUATION SYSTEMS
# =============================================================================
class EquationSystem(ABC):
    """
    A mapping from a vector of unknowns to a vector of residuals.

    Subclasses implement equations(x); the dimension is fixed at construction.
    """

    def __init__(self, dimension: int):
        self._dimension = int(dimension)

    def dimension(self) -> int:
        return self._dimension

    @abstractmethod
    def equations(self, x: np.ndarray) -> np.ndarray:
        """Return the residual vector f(x) (same length as x)."""
        pass


class FunctionEquationSystem(EquationSystem):
    """Equation system defined by a plain callable f(x) -> residuals."""

    def __init__(self, func: Callable[[np.ndarray], np.ndarray], dimension: int):
        super().__init__(dimension)
        self._func = func

    def equations(self, x: np.ndarray) -> np.ndarray:
        return np.asarray(self._func(np.asarray(x, dtype=float)), dtype=float)


# =============================================================================
# JACOBIAN PROVIDERS
# =============================================================================
class FiniteDifferenceJacobian:
    """
    Forward-difference Jacobian of an equation system.

        J[i, j] = (f_i(x + h_j e_j) - f_i(x)) / h_j,   h_j = dx |x_j|  (dx if x_j = 0)

    Subclasses may override jacobian() with a closed-form expression.
    """

    def __init__(self, equations: Optional[EquationSystem] = None, dx: float = EPS):
        self.equations = equations
        self.dx = dx

    def set_dx(self, dx: float):
        self.dx = dx

    def jacobian(self, x: np.ndarray) -> np.ndarray:
        if self.equations is None:
            raise SolverConfigurationError("Jacobian: equations to solve not specified")
        x = np.asarray(x, dtype=float)
        N = self.equations.dimension()
        if x.shape != (N,):
            raise SolverConfigurationError(
                f"Jacobian: equations dimension {N} does not match input of length {x.size}"
            )

        h = self.dx * np.abs(x)
        h[h == 0.0] = self.dx

        fx = self.equations.equations(x)
        jac = np.empty((N, N))
        for j in range(N):
            xh = x.copy()
            xh[j] += h[j]
            jac[:, j] = (self.equations.equations(xh) - fx) / h[j]
        return jac


# =============================================================================
# SOLUTION CRITERIA
# =============================================================================
class SolutionCriterion:
    """Converged when max_i |f_i| < tolerance."""

    def __init__(self, tolerance: float = TOL):
        self.tolerance = tolerance

    def is_solved(self, x: np.ndarray, f: np.ndarray, xdelta: np.ndarray) -> bool:
        return bool(np.max(np.abs(f)) < self.tolerance)


class RelativeSolutionCriterion(SolutionCriterion):
    """
    Converged when max_i |f_i| / |x_i| < tolerance.

    Components with x_i = 0 are tested on |f_i| alone.
    """

    def is_solved(self, x: np.ndarray, f: np.ndarray, xdelta: np.ndarray) -> bool:
        ax = np.abs(x)
        scale = np.where(ax > 0.0, ax, 1.0)
        return bool(np.max(np.abs(f) / scale) < self.tolerance)


# =============================================================================
# RESULT
# =============================================================================
@dataclass
class BroydenResult:
    """
    Result of a Broyden solve.

    Attributes:
        x: Last iterate (the input itself for a singular initial Jacobian)
        status: SolverStatus of the solve
        iterations: Number of iterations performed
        max_iterations: Iteration budget of the solve
        max_difference: max_i |f_i| at the last iterate
    """
    x: np.ndarray
    status: SolverStatus
    iterations: int
    max_iterations: int
    max_difference: float

    @property
    def converged(self) -> bool:
        return self.status == SolverStatus.CONVERGED


# =============================================================================
# SOLVER
# =============================================================================
def _is_singular(jac: np.ndarray) -> bool:
    """Non-finite, exactly singular, or numerically singular matrix."""
    if not np.all(np.isfinite(jac)):
        return True
    if np.linalg.det(jac) == 0.0:
        return True
    try:
        return np.linalg.cond(jac) > 1.0 / np.finfo(float).eps
    except np.linalg.LinAlgError:
        return True


class BroydenSolver:
    """
    Broyden's quasi-Newton root finder.

    The inverse Jacobian is computed once from the JacobianProvider and then
    corrected by rank-one secant updates. With use_newton=True the exact
    Jacobian is recomputed and inverted at every iteration instead.

    Diagnostics of the last solve are also kept on the instance
    (iterations, max_iterations, max_difference).
    """

    def __init__(
        self,
        equations: Optional[EquationSystem] = None,
        jacobian: Optional[FiniteDifferenceJacobian] = None,
        use_newton: bool = False
    ):
        self.equations = equations
        self.jacobian = jacobian
        self.use_newton = use_newton
        self.iterations = 0
        self.max_iterations = MAX_ITERS
        self.max_difference = 0.0

    def solve(
        self,
        x0: Sequence[float],
        criterion: Optional[SolutionCriterion] = None,
        max_iterations: int = MAX_ITERS,
        should_stop: Optional[Callable[[int, np.ndarray, np.ndarray], bool]] = None,
        verbose: bool = False
    ) -> BroydenResult:
        """
        Solve equations(x) = 0 starting from x0.

        Args:
            x0: Initial guess, length must equal the equation dimension
            criterion: Solution criterion (default: max|f| < TOL)
            max_iterations: Iteration budget
            should_stop: Optional hook called between iterations with
                (iteration, x, f); returning True cancels the solve
            verbose: Print the residual at every iteration

        Returns:
            BroydenResult
        """
        if self.equations is None:
            raise SolverConfigurationError("Broyden: equations to solve not specified")

        N = self.equations.dimension()
        xcur = np.array(x0, dtype=float)
        if xcur.shape != (N,):
            raise SolverConfigurationError(
                f"Broyden: equations dimension {N} does not match initial guess of length {xcur.size}"
            )

        if criterion is None:
            criterion = SolutionCriterion(TOL)
        jac_provider = self.jacobian
        if jac_provider is None:
            jac_provider = FiniteDifferenceJacobian(self.equations)

        self.max_iterations = max_iterations
        self.iterations = 0
        self.max_difference = 0.0

        with np.errstate(over='ignore', invalid='ignore', divide='ignore'):
            jac = jac_provider.jacobian(xcur)
            if _is_singular(jac):
                warnings.warn("Singular Jacobian in BroydenSolver.solve", RuntimeWarning)
                return BroydenResult(xcur, SolverStatus.SINGULAR_JACOBIAN, 0,
                                     max_iterations, np.inf)

            jinv = np.linalg.inv(jac)
            xold = xcur.copy()
            fold = self.equations.equations(xold)
            self.max_difference = float(np.max(np.abs(fold)))

            status = SolverStatus.NOT_CONVERGED
            self.iterations = max_iterations
            for iteration in range(1, max_iterations):
                xnew = xold - jinv @ fold
                fnew = self.equations.equations(xnew)
                xcur = xnew

                self.max_difference = float(np.max(np.abs(fnew)))
                if verbose:
                    print(f"  Broyden iter {iteration:4d}: max|f| = {self.max_difference:.3e}")

                xdelta = xnew - xold
                fdelta = fnew - fold

                if criterion.is_solved(xnew, fnew, xdelta):
                    self.iterations = iteration
                    status = SolverStatus.CONVERGED
                    break

                if should_stop is not None and should_stop(iteration, xnew, fnew):
                    self.iterations = iteration
                    status = SolverStatus.CANCELLED
                    break

                if not self.use_newton:
                    jf = jinv @ fdelta
                    norm = xdelta @ jf
                    if norm != 0.0 and np.isfinite(norm):
                        p = (xdelta - jf) / norm
                        jinv = jinv + np.outer(p, xdelta) @ jinv
                else:
                    jac = jac_provider.jacobian(xnew)
                    if _is_singular(jac):
                        self.iterations = iteration
                        status = SolverStatus.SINGULAR_JACOBIAN
                        break
                    jinv = np.linalg.inv(jac)

                xold = xnew
                fold = fnew

        return BroydenResult(xcur, status, self.iterations, max_iterations,
                             self.max_difference)


# =============================================================================
# SELF-TEST
# =============================================================================
if __name__ == "__main__":
    print("Broyden Solver Framework")
    print("=" * 60)

    eqs = FunctionEquationSystem(
        lambda x: np.array([x[0]**2 + x[1]**2 - 4.0, x[0] - x[1]]), dimension=2
    )
    for newton in (False, True):
        res = BroydenSolver(eqs, use_newton=newton).solve([1.0, 0.5])
        label = "Newton " if newton else "Broyden"
        print(f"{label}: x = {res.x}, iterations = {res.iterations}, "
              f"status = {res.status.name}, max|f| = {res.max_difference:.2e}")
