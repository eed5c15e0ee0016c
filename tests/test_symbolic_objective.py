"""
Tests for the SymPy based smooth-term builder (nmipiano_utility/symbolic_objective.py).
"""

import numpy as np
import pytest
import sympy as sp

from nmipiano_utility.symbolic_objective import (
    NMIPIANO_SymbolicObjective,
    extract_parameters_from_cost_expression,
)
from python_nmipiano.nmipiano import NMIPIANO_Config, NMIPIANO_Optimizer
from python_nmipiano.proximal_operators import make_zero_term


@pytest.fixture
def shifted_quadratic():
    x0, x1, a = sp.symbols('x0 x1 a', real=True)
    x_syms = sp.Matrix([[x0], [x1]])
    cost = (x0 - a) ** 2 + 2 * (x1 + 1) ** 2
    return x_syms, cost


def test_parameters_are_extracted_by_name(shifted_quadratic):
    x_syms, cost = shifted_quadratic

    params = extract_parameters_from_cost_expression(cost, x_syms)

    assert [p.name for p in params] == ['a']


def test_value_and_gradient(shifted_quadratic):
    x_syms, cost = shifted_quadratic
    objective = NMIPIANO_SymbolicObjective(x_syms, cost, {'a': 3.0})

    x = np.array([1.0, 2.0])

    assert objective.value(x) == pytest.approx(4.0 + 18.0)
    assert np.allclose(objective.gradient(x), [-4.0, 12.0])
    assert objective.gradient(x).shape == (2,)


def test_gradient_keeps_column_shape(shifted_quadratic):
    x_syms, cost = shifted_quadratic
    objective = NMIPIANO_SymbolicObjective(x_syms, cost, {'a': 0.0})

    g = objective.gradient(np.array([[1.0], [-1.0]]))

    assert g.shape == (2, 1)
    assert np.allclose(g, [[2.0], [0.0]])


def test_constant_gradient_entry():
    x0, x1 = sp.symbols('x0 x1', real=True)
    objective = NMIPIANO_SymbolicObjective(
        sp.Matrix([x0, x1]), x0 ** 2 + 5 * x1)

    assert np.allclose(objective.gradient(np.array([2.0, 7.0])), [4.0, 5.0])


def test_missing_parameter_is_rejected(shifted_quadratic):
    x_syms, cost = shifted_quadratic

    with pytest.raises(ValueError):
        NMIPIANO_SymbolicObjective(x_syms, cost)


def test_wrong_size_input_is_rejected(shifted_quadratic):
    x_syms, cost = shifted_quadratic
    objective = NMIPIANO_SymbolicObjective(x_syms, cost, {'a': 1.0})

    with pytest.raises(ValueError):
        objective.value(np.zeros(3))


def test_symbolic_objective_drives_optimizer(shifted_quadratic):
    x_syms, cost = shifted_quadratic
    objective = NMIPIANO_SymbolicObjective(x_syms, cost, {'a': 3.0})
    g, prox_g = make_zero_term()
    config = NMIPIANO_Config(
        x0=np.array([[0.0], [0.0]]), max_iter=500, beta=0.3, eta=1.2,
        epsilon=1e-10)
    solver = NMIPIANO_Optimizer(
        value_func=objective.value,
        gradient_func=objective.gradient,
        nonsmooth_func=g,
        prox_func=prox_g,
        config=config,
    )

    x_star, f_star = solver.optimize()

    assert np.allclose(x_star, [[3.0], [-1.0]], atol=1e-4)
    assert f_star == pytest.approx(0.0, abs=1e-6)
