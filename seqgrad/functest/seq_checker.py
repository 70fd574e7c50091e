# seqgrad/functest/seq_checker.py
"""
Finite-difference checking of sequence functions.

A sequence function maps a batch of input sequences (of Variables) to a batch
of output sequences, and supports reverse-mode and R-operator propagation
(see :class:`seqgrad.rnn.seq_func.BlockSeqFunc`). The checker compares every
analytic quantity with a central-difference estimate:

    df/dθ_j    ~ (f(θ + δ e_j) - f(θ - δ e_j)) / 2δ
    R{f}       ~ (f(θ + δ v)   - f(θ - δ v))   / 2δ

where v is the checker's direction ``rv``. Perturbations are applied in place
to the variables' vectors and always undone afterwards.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.gradient import Gradient, RVector, new_gradient, new_r_gradient
from ..core.var import RVariable, Variable

logger = logging.getLogger(__name__)

DEFAULT_DELTA = 1e-4
DEFAULT_PREC = 1e-5


def vecs_equal(a: np.ndarray, b: np.ndarray, prec: float = DEFAULT_PREC) -> bool:
    """
    Elementwise comparison up to ``prec``.

    Two NaNs compare equal; a NaN never equals a finite value.
    Vectors of different length are never equal.
    """
    if a is None or b is None:
        return a is None and b is None
    if len(a) != len(b):
        return False
    for x, y in zip(a, b):
        if math.isnan(x) != math.isnan(y):
            return False
        if abs(x - y) > prec:
            return False
    return True


@dataclass
class ScenarioResult:
    name: str
    failures: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures


def assert_passed(results: Sequence[ScenarioResult]) -> None:
    """Raise AssertionError listing every failure of every scenario."""
    messages = [f"[{r.name}] {msg}" for r in results for msg in r.failures]
    if messages:
        raise AssertionError(f"{len(messages)} check(s) failed:\n" + "\n".join(messages))


def log_result(result: ScenarioResult) -> ScenarioResult:
    if result.passed:
        logger.info("%s: passed", result.name)
    else:
        logger.warning("%s: %d failure(s)", result.name, len(result.failures))
    return result


def _flatten(seqs: Sequence[Sequence[np.ndarray]]) -> np.ndarray:
    parts = [np.asarray(v, dtype=np.float64) for seq in seqs for v in seq]
    if not parts:
        return np.zeros(0)
    return np.concatenate(parts)


@dataclass
class SeqRFuncChecker:
    """
    Gradient checker for a sequence function.

    Attributes:
        f: object with ``apply_seqs(seqs)`` and ``apply_seqs_r(rv, seqs)``
        inputs: input sequences; ``inputs[i][t]`` is a Variable
        variables: tracked variables (parameters and/or input Variables)
        rv: optional direction; R scenarios are skipped when None
        delta: finite-difference step
        prec: comparison tolerance
    """
    f: object
    inputs: List[List[Variable]]
    variables: List[Variable]
    rv: Optional[RVector] = None
    delta: float = DEFAULT_DELTA
    prec: float = DEFAULT_PREC

    def full_check(self) -> List[ScenarioResult]:
        results = [self.check_consistency(), self.check_jacobian()]
        if self.rv is not None:
            results.append(self.check_r_output())
            results.append(self.check_r_gradient())
        return results

    # ---- evaluation helpers ---- #
    def _r_inputs(self, rv: RVector) -> List[List[RVariable]]:
        return [[RVariable(v, rv) for v in seq] for seq in self.inputs]

    def _eval(self) -> np.ndarray:
        return _flatten(self.f.apply_seqs(self.inputs).output_seqs()).copy()

    def _output_slots(self, out_seqs) -> List[Tuple[int, int, int]]:
        """(sequence, step, component) for every flattened output element."""
        return [(i, t, k)
                for i, seq in enumerate(out_seqs)
                for t, vec in enumerate(seq)
                for k in range(len(vec))]

    @staticmethod
    def _one_hot_upstream(out_seqs, slot: Tuple[int, int, int]):
        i, t, k = slot
        upstream: List[Optional[List[Optional[np.ndarray]]]] = [None] * len(out_seqs)
        steps: List[Optional[np.ndarray]] = [None] * len(out_seqs[i])
        vec = np.zeros(len(out_seqs[i][t]))
        vec[k] = 1.0
        steps[t] = vec
        upstream[i] = steps
        return upstream

    def _analytic_gradient(self, slot) -> Gradient:
        res = self.f.apply_seqs(self.inputs)
        g = new_gradient(self.variables)
        res.propagate_gradient(self._one_hot_upstream(res.output_seqs(), slot), g)
        return g

    def _stacked_gradient(self, slot) -> np.ndarray:
        """Analytic gradients of all tracked variables, concatenated in order."""
        g = self._analytic_gradient(slot)
        return _flatten([[g[var] for var in self.variables]])

    def _direction_vars(self) -> List[Variable]:
        """Every variable with an entry in ``rv``, tracked or not."""
        return [var for var, _ in self.rv.items_vars()]

    def _numeric_along(self, fn: Callable[[], np.ndarray]) -> np.ndarray:
        moved = self._direction_vars()
        saved = [var.vector.copy() for var in moved]
        try:
            for var, old in zip(moved, saved):
                var.vector[...] = old + self.delta * self.rv[var]
            plus = fn()
            for var, old in zip(moved, saved):
                var.vector[...] = old - self.delta * self.rv[var]
            minus = fn()
        finally:
            for var, old in zip(moved, saved):
                var.vector[...] = old
        return (plus - minus) / (2.0 * self.delta)

    # ---- scenarios ---- #
    def check_consistency(self) -> ScenarioResult:
        """Plain and R evaluation agree on outputs and on gradients."""
        result = ScenarioResult("consistency")
        rv = self.rv if self.rv is not None else RVector()
        plain = self.f.apply_seqs(self.inputs)
        dual = self.f.apply_seqs_r(rv, self._r_inputs(rv))

        out_plain = _flatten(plain.output_seqs())
        out_dual = _flatten(dual.output_seqs())
        if not vecs_equal(out_plain, out_dual, self.prec):
            result.failures.append(f"outputs differ: expected {out_plain}, got {out_dual}")
            return log_result(result)

        for slot in self._output_slots(plain.output_seqs()):
            g1 = new_gradient(self.variables)
            plain.propagate_gradient(self._one_hot_upstream(plain.output_seqs(), slot), g1)
            g2 = new_gradient(self.variables)
            rg = new_r_gradient(self.variables)
            dual.propagate_r_gradient(self._one_hot_upstream(dual.output_seqs(), slot),
                                      None, rg, g2)
            for n, var in enumerate(self.variables):
                if not vecs_equal(g1[var], g2[var], self.prec):
                    result.failures.append(
                        f"output {slot} var {n}: gradient {g1[var]} but R pass gave {g2[var]}"
                    )
        return log_result(result)

    def check_jacobian(self) -> ScenarioResult:
        """Analytic gradients match central differences, element by element."""
        result = ScenarioResult("jacobian")
        out_seqs = self.f.apply_seqs(self.inputs).output_seqs()
        slots = self._output_slots(out_seqs)

        # numeric[n][j] = d(flattened output)/d(variables[n][j])
        numeric: List[List[np.ndarray]] = []
        for var in self.variables:
            columns = []
            for j in range(len(var.vector)):
                old = var.vector[j]
                var.vector[j] = old + self.delta
                try:
                    plus = self._eval()
                    var.vector[j] = old - self.delta
                    minus = self._eval()
                finally:
                    var.vector[j] = old
                columns.append((plus - minus) / (2.0 * self.delta))
            numeric.append(columns)

        for idx, slot in enumerate(slots):
            g = self._analytic_gradient(slot)
            for n, var in enumerate(self.variables):
                expected = np.array([col[idx] for col in numeric[n]])
                if not vecs_equal(expected, g[var], self.prec):
                    result.failures.append(
                        f"output {slot} var {n}: expected gradient {expected}, got {g[var]}"
                    )
        return log_result(result)

    def check_r_output(self) -> ScenarioResult:
        """R outputs match central differences along ``rv``."""
        result = ScenarioResult("r_output")
        res = self.f.apply_seqs_r(self.rv, self._r_inputs(self.rv))
        actual = _flatten(res.r_output_seqs())
        expected = self._numeric_along(self._eval)
        if not vecs_equal(expected, actual, self.prec):
            result.failures.append(f"expected r-output {expected}, got {actual}")
        return log_result(result)

    def check_r_gradient(self) -> ScenarioResult:
        """
        R-gradients match central differences of the gradient along ``rv``.

        Upstream and R-upstream are both the one-hot vector, so the expected
        R-gradient is d/dε grad(θ + ε·rv) plus the gradient itself.
        """
        result = ScenarioResult("r_gradient")
        out_seqs = self.f.apply_seqs(self.inputs).output_seqs()
        for slot in self._output_slots(out_seqs):
            res = self.f.apply_seqs_r(self.rv, self._r_inputs(self.rv))
            up = self._one_hot_upstream(res.output_seqs(), slot)
            g = new_gradient(self.variables)
            rg = new_r_gradient(self.variables)
            res.propagate_r_gradient(up, up, rg, g)

            base = self._analytic_gradient(slot)
            numeric = self._numeric_along(lambda s=slot: self._stacked_gradient(s))
            offset = 0
            for n, var in enumerate(self.variables):
                size = len(var.vector)
                expected = numeric[offset:offset + size] + base[var]
                offset += size
                if not vecs_equal(expected, rg[var], self.prec):
                    result.failures.append(
                        f"output {slot} var {n}: expected r-gradient {expected}, got {rg[var]}"
                    )
        return log_result(result)
