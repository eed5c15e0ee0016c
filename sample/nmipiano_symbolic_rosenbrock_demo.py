"""
File: nmipiano_symbolic_rosenbrock_demo.py

This script demonstrates the nmiPiano solver on the Rosenbrock function
with box constraints, where cost and gradient are generated from a
SymPy expression.

Problem:
    min  f(u) = (a - u0)^2 + b * (u1 - u0^2)^2
    s.t. -1.5 <= u0 <= 1.5
         -0.5 <= u1 <= 2.5

The unconstrained minimum is at (a, a^2) = (1, 1), which is feasible.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np
import sympy as sp

from nmipiano_utility.symbolic_objective import NMIPIANO_SymbolicObjective
from python_nmipiano.nmipiano import NMIPIANO_Config, NMIPIANO_Optimizer
from python_nmipiano.proximal_operators import make_box_term

logging.basicConfig(level=logging.INFO)

# ============================================================
# 1. Define the problem
# ============================================================
u0, u1, a, b = sp.symbols('u0 u1 a b', real=True)
u_syms = sp.Matrix([[u0], [u1]])
rosenbrock = (a - u0) ** 2 + b * (u1 - u0 ** 2) ** 2

objective = NMIPIANO_SymbolicObjective(
    x_syms=u_syms,
    cost_expression=rosenbrock,
    parameters={'a': 1.0, 'b': 100.0},
)

print(f"Gradient      : {list(objective.gradient_expression)}")

# Box constraints
u_min = np.array([[-1.5], [-0.5]])
u_max = np.array([[1.5], [2.5]])
g, prox_g = make_box_term(u_min, u_max)

# ============================================================
# 2. Create configuration and solver
# ============================================================
config = NMIPIANO_Config(
    x0=np.array([[-1.0], [2.0]]),
    max_iter=5000,
    beta=0.5,
    eta=1.5,
    L_init=1.0,
    epsilon=1e-10,
)

solver = NMIPIANO_Optimizer(
    value_func=objective.value,
    gradient_func=objective.gradient,
    nonsmooth_func=g,
    prox_func=prox_g,
    config=config,
)

# ============================================================
# 3. Solve
# ============================================================
u_star, f_star = solver.optimize()

# ============================================================
# 4. Print results
# ============================================================
print("--- nmiPiano result ---")
print(f"Solution      : u = {u_star.flatten()}")
print(f"Cost at sol.  : f(u) = {f_star:.10f}")

# Verify feasibility
assert np.all(u_star >= u_min - 1e-12) and np.all(u_star <= u_max + 1e-12), \
    "Solution violates box constraints!"
print("Feasibility check: OK")
print(
    f"Distance to true optimum (1, 1): {np.linalg.norm(u_star - np.array([[1.0], [1.0]])):.2e}")
