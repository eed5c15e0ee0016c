"""
File: symbolic_objective.py

A utility module for building the smooth-term callables of the nmiPiano
solver from a symbolic cost expression.

The gradient is derived symbolically with SymPy and both the cost and its
gradient are compiled to NumPy functions with ``sympy.lambdify``, so that
the solver only sees plain ``value(x)`` and ``gradient(x)`` callables.

This module provides:
- Extraction of model parameters (free symbols that are not decision variables).
- Symbolic gradient of the cost function.
- Numerical evaluation of cost and gradient for (n,) or (n, 1) arrays.
"""
from typing import Dict, Optional

import numpy as np
import sympy as sp


def extract_parameters_from_cost_expression(
        cost_expression: sp.Expr,
        x_syms: sp.Matrix
):
    """
    Extracts parameters from the cost expression, given the decision
    variable symbols x_syms.
    Parameters are defined as free symbols in the cost that are not
    part of x_syms.
    Returns a list of parameter symbols sorted by name.
    """
    params = set(cost_expression.free_symbols) - set(x_syms)
    return sorted(params, key=lambda s: s.name)


class NMIPIANO_SymbolicObjective:
    """
    Smooth term f(x) of an nmiPiano problem defined by a SymPy expression.

    Attributes:
        x_syms (sp.Matrix): Decision variable symbols (column).
        cost (sp.Expr): Cost expression with parameters substituted.
        gradient_expression (sp.Matrix): Symbolic gradient (column).
        Parameters (list): Parameter symbols found in the original expression.
        nx (int): Number of decision variables.
    """

    def __init__(
            self,
            x_syms: sp.Matrix,
            cost_expression: sp.Expr,
            parameters: Optional[Dict[str, float]] = None
    ):
        self.x_syms = sp.Matrix(x_syms).reshape(len(x_syms), 1)
        self.nx = self.x_syms.shape[0]

        self.Parameters = extract_parameters_from_cost_expression(
            cost_expression=cost_expression,
            x_syms=self.x_syms
        )

        if parameters is None:
            parameters = {}
        missing = [p.name for p in self.Parameters if p.name not in parameters]
        if missing:
            raise ValueError(
                f"No value given for parameter(s): {', '.join(missing)}")

        substitution = {p: parameters[p.name] for p in self.Parameters}
        self.cost = sp.sympify(cost_expression).subs(substitution)

        self.gradient_expression = \
            sp.Matrix([self.cost]).jacobian(self.x_syms).T

        x_list = list(self.x_syms)
        self._cost_function = sp.lambdify(
            [x_list], self.cost, modules="numpy")
        self._gradient_function = sp.lambdify(
            [x_list], self.gradient_expression, modules="numpy")

    def _flatten(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        if x.size != self.nx:
            raise ValueError(
                f"x must have {self.nx} elements, got shape {x.shape}")
        return x.reshape(self.nx)

    def value(self, x: np.ndarray) -> float:
        """
        Evaluates the cost function.
        Args:
            x (np.ndarray): Decision variables of shape (nx,) or (nx, 1).
        Returns:
            float: Cost value.
        """
        return float(self._cost_function(self._flatten(x)))

    def gradient(self, x: np.ndarray) -> np.ndarray:
        """
        Evaluates the gradient of the cost function.
        Args:
            x (np.ndarray): Decision variables of shape (nx,) or (nx, 1).
        Returns:
            np.ndarray: Gradient with the same shape as x.
        """
        x = np.asarray(x, dtype=float)
        g = np.array(self._gradient_function(self._flatten(x)), dtype=float)
        return g.reshape(x.shape)
