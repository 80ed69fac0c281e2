import numpy as np
import pytest

from general_broyden_solver import (
    BroydenSolver, FiniteDifferenceJacobian, FunctionEquationSystem,
    RelativeSolutionCriterion, SolutionCriterion, SolverConfigurationError, SolverStatus
)


class IdentityJacobian(FiniteDifferenceJacobian):
    def jacobian(self, x):
        return np.eye(len(x))


def test_linear_system_with_exact_jacobian_converges_in_one_iteration():
    c = np.array([1.0, -2.0, 0.5])
    eqs = FunctionEquationSystem(lambda x: x - c, dimension=3)
    result = BroydenSolver(eqs, IdentityJacobian(eqs)).solve(np.zeros(3))

    assert result.converged
    assert result.iterations == 1
    np.testing.assert_allclose(result.x, c)
    assert result.max_difference == 0.0


def test_nonlinear_system_broyden_and_newton():
    eqs = FunctionEquationSystem(
        lambda x: np.array([x[0]**2 + x[1]**2 - 4.0, x[0] - x[1]]), dimension=2
    )
    for newton in (False, True):
        result = BroydenSolver(eqs, use_newton=newton).solve([1.0, 0.5])
        assert result.status == SolverStatus.CONVERGED
        assert result.iterations < result.max_iterations
        np.testing.assert_allclose(result.x, [np.sqrt(2.0), np.sqrt(2.0)], rtol=1e-8)


def test_no_root_exhausts_budget():
    eqs = FunctionEquationSystem(lambda x: x**2 + 1.0, dimension=1)
    result = BroydenSolver(eqs).solve([1.0], max_iterations=50)

    assert not result.converged
    assert result.status == SolverStatus.NOT_CONVERGED
    assert result.iterations == result.max_iterations == 50


def test_singular_initial_jacobian_returns_input():
    eqs = FunctionEquationSystem(lambda x: np.array([x[0] + x[1], x[0] + x[1]]), dimension=2)
    with pytest.warns(RuntimeWarning):
        result = BroydenSolver(eqs).solve([1.0, 2.0])

    assert result.status == SolverStatus.SINGULAR_JACOBIAN
    assert result.iterations == 0
    np.testing.assert_array_equal(result.x, [1.0, 2.0])


def test_dimension_mismatch_raises():
    eqs = FunctionEquationSystem(lambda x: x, dimension=2)
    with pytest.raises(SolverConfigurationError):
        BroydenSolver(eqs).solve([1.0, 2.0, 3.0])
    with pytest.raises(SolverConfigurationError):
        FiniteDifferenceJacobian(eqs).jacobian(np.zeros(3))
    with pytest.raises(SolverConfigurationError):
        BroydenSolver().solve([1.0])


def test_finite_difference_jacobian():
    eqs = FunctionEquationSystem(lambda x: np.array([x[0] * x[1], np.sin(x[0])]), dimension=2)
    jac = FiniteDifferenceJacobian(eqs, dx=1e-7).jacobian(np.array([0.5, 0.0]))
    expected = np.array([[0.0, 0.5], [np.cos(0.5), 0.0]])
    np.testing.assert_allclose(jac, expected, atol=1e-6)


def test_should_stop_cancels_solve():
    eqs = FunctionEquationSystem(lambda x: x**2 + 1.0, dimension=1)
    calls = []

    def stop(iteration, x, f):
        calls.append(iteration)
        return iteration >= 3

    result = BroydenSolver(eqs).solve([1.0], should_stop=stop)
    assert result.status == SolverStatus.CANCELLED
    assert result.iterations == 3
    assert calls == [1, 2, 3]


def test_relative_criterion():
    crit = RelativeSolutionCriterion(1e-6)
    assert crit.is_solved(np.array([1e3, 0.0]), np.array([1e-4, 1e-7]), np.zeros(2))
    assert not crit.is_solved(np.array([1e-3, 1.0]), np.array([1e-8, 0.0]), np.zeros(2))
    # Negative iterates are tested by magnitude
    assert not crit.is_solved(np.array([-1.0]), np.array([0.5]), np.zeros(1))
    assert SolutionCriterion(1e-3).is_solved(np.zeros(1), np.array([1e-4]), np.zeros(1))


def test_relative_criterion_zero_component_uses_absolute_residual():
    crit = RelativeSolutionCriterion(1e-10)
    x = np.array([2.0, 0.0])
    assert crit.is_solved(x, np.array([1e-11, 5e-11]), np.zeros(2))
    assert not crit.is_solved(x, np.array([1e-11, 5e-10]), np.zeros(2))
    # A vanishing component with a vanishing residual never blocks convergence
    assert crit.is_solved(x, np.array([1e-11, 0.0]), np.zeros(2))
