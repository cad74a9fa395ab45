#########################################################################################
##
##                            IDENTIFIABILITY ANALYSIS
##                               (identifiability.py)
##
##         Local sensitivity of the weighted residuals at the solved point:
##         singular value spectrum, weak directions, Fisher information.
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError, IdentifiabilityWarning
from .jacobian import fd_jacobian
from .utils.logger import LoggerManager


__all__ = ["WeakDirection", "IdentifiabilityReport", "IdentifiabilityAnalyzer"]

_log = LoggerManager().get_logger(__name__)


# HELPERS ===============================================================================

def _fim_stats(fim: np.ndarray) -> dict:
    """Covariance, standard errors and correlation from a Fisher information
    matrix. Singular directions are handled by the pseudo-inverse."""
    n_p = fim.shape[0]

    covariance = np.linalg.pinv(fim)
    std_errors = np.sqrt(np.maximum(np.diag(covariance), 0.0))

    corr = np.eye(n_p)
    for i in range(n_p):
        for j in range(n_p):
            denom = std_errors[i] * std_errors[j]
            if i != j and denom > 0.0:
                corr[i, j] = covariance[i, j] / denom

    return dict(covariance=covariance, std_errors=std_errors, correlation=corr)


def _format_combination(vector, names) -> str:
    terms = [
        f"{'+' if v >= 0 else '-'}{abs(v):.2f}·{n}"
        for v, n in zip(vector, names) if abs(v) >= 0.005
    ]
    return " ".join(terms)


def _merge_groups(sets):
    groups = []
    for s in sets:
        s = set(s)
        overlapping = [g for g in groups if g & s]
        for g in overlapping:
            s |= g
            groups.remove(g)
        groups.append(s)
    return groups


# DATA ==================================================================================

@dataclass(frozen=True, eq=False)
class WeakDirection:
    """Non-identifiable direction in normalized parameter space.

    Attributes
    ----------
    singular_value : float
        Singular value of the normalized Jacobian along this direction.
    relative : float
        ``singular_value / sigma_max``.
    vector : np.ndarray
        Unit direction (right singular vector), largest entry positive.
    parameters : tuple of str
        Parameters whose component magnitude reaches the participation
        threshold.
    explanation : str
        Human-readable description of the trade-off.
    """

    singular_value: float
    relative: float
    vector: np.ndarray
    parameters: tuple
    explanation: str


    def to_dict(self) -> dict:
        return {
            "singular_value": float(self.singular_value),
            "relative": float(self.relative),
            "vector": [float(v) for v in self.vector],
            "parameters": list(self.parameters),
            "explanation": self.explanation,
        }


class IdentifiabilityReport:
    """Identifiability diagnostics at one derived-parameter vector.

    All statistics derive from the Jacobian **J** of the weighted residual
    vector ``sqrt(w) * r`` w.r.t. the derived parameters. Identifiability
    decisions use the column-normalized Jacobian ``J diag(|p|)`` (unit
    scale for zero-valued parameters) so that parameters of very different
    magnitude are compared by relative sensitivity.

    Attributes
    ----------
    jacobian : np.ndarray
        Weighted Jacobian, shape ``(n_residuals, n_params)``.
    normalized_jacobian : np.ndarray
        Column-normalized Jacobian.
    singular_values : np.ndarray
        Singular values of the normalized Jacobian, descending, length
        ``n_params`` (zero-padded when there are fewer residuals).
    right_vectors : np.ndarray
        Right singular vectors as rows, shape ``(n_params, n_params)``.
    condition_number : float
        ``sigma_max / sigma_min`` of the normalized Jacobian.
    fim : np.ndarray
        Fisher information ``J^T J``.
    covariance, std_errors, correlation : np.ndarray
        Pseudo-inverse based statistics of the Fisher information.
    weak_directions : list[WeakDirection]
        Directions with ``sigma < threshold * sigma_max``.
    flagged : list[str]
        Parameters taking part in any weak direction.
    groups : list[tuple[str, ...]]
        Flagged parameters grouped by shared weak directions.
    correlated_pairs : list[tuple[str, str, float]]
        Pairs with ``|r| > correlation_threshold``.
    """

    def __init__(self, jacobian, param_names, param_values, *, threshold=1e-3,
                 participation=0.3, correlation_threshold=0.9):
        self.jacobian = np.asarray(jacobian, dtype=float)
        self.param_names = list(param_names)
        self.param_values = np.asarray(param_values, dtype=float).reshape(-1)
        self.threshold = float(threshold)
        self.participation = float(participation)
        self.correlation_threshold = float(correlation_threshold)

        n_p = len(self.param_names)
        if self.jacobian.ndim != 2 or self.jacobian.shape[1] != n_p:
            raise ConfigurationError(
                f"Jacobian shape {self.jacobian.shape} does not match {n_p} parameters"
            )

        scale = np.where(np.abs(self.param_values) > 0.0, np.abs(self.param_values), 1.0)
        self.normalized_jacobian = self.jacobian * scale

        # SVD of the normalized Jacobian
        if self.jacobian.shape[0] > 0:
            _, s, vt = np.linalg.svd(self.normalized_jacobian, full_matrices=True)
        else:
            s, vt = np.zeros(0), np.eye(n_p)
        self.singular_values = np.concatenate([s, np.zeros(n_p - s.size)])
        self.right_vectors = vt

        s_max = self.singular_values[0] if n_p else 0.0
        s_min = self.singular_values[-1] if n_p else 0.0
        self.condition_number = float(s_max / s_min) if s_min > 0.0 else np.inf

        # Fisher information
        self.fim = self.jacobian.T @ self.jacobian
        stats = _fim_stats(self.fim)
        self.covariance = stats["covariance"]
        self.std_errors = stats["std_errors"]
        self.correlation = stats["correlation"]

        self.weak_directions = self._weak_directions(s_max)

        flagged = set()
        for d in self.weak_directions:
            flagged.update(d.parameters)
        self.flagged = [n for n in self.param_names if n in flagged]

        order = {n: i for i, n in enumerate(self.param_names)}
        self.groups = sorted(
            (tuple(sorted(g, key=order.get)) for g in
             _merge_groups(d.parameters for d in self.weak_directions if d.parameters)),
            key=lambda g: order[g[0]],
        )

        self.correlated_pairs = [
            (self.param_names[i], self.param_names[j], float(self.correlation[i, j]))
            for i in range(n_p) for j in range(i + 1, n_p)
            if abs(self.correlation[i, j]) > self.correlation_threshold
        ]


    def _weak_directions(self, s_max):
        out = []
        for k, s in enumerate(self.singular_values):
            rel = s / s_max if s_max > 0.0 else 0.0
            if rel >= self.threshold:
                continue

            v = np.array(self.right_vectors[k], dtype=float)
            if v[np.argmax(np.abs(v))] < 0.0:
                v = -v

            members = tuple(
                n for n, c in zip(self.param_names, v) if abs(c) >= self.participation
            )
            combo = _format_combination(v, self.param_names)

            if len(members) >= 2:
                text = (
                    f"{' and '.join([', '.join(members[:-1]), members[-1]])} trade off "
                    f"along {combo}; only the orthogonal combination is determined"
                )
            elif len(members) == 1:
                text = f"{members[0]} has no measurable effect on the constraints"
            else:
                text = f"weak direction {combo} spread over many parameters"

            out.append(WeakDirection(float(s), float(rel), v, members, text))
        return out


    # PROPERTIES ------------------------------------------------------------------------

    @property
    def identifiable(self) -> bool:
        """True when no weak direction was found."""
        return not self.weak_directions


    @property
    def explanations(self) -> list[str]:
        return [d.explanation for d in self.weak_directions]


    def to_dict(self) -> dict:
        cn = self.condition_number
        return {
            "parameters": list(self.param_names),
            "values": [float(v) for v in self.param_values],
            "singular_values": [float(v) for v in self.singular_values],
            "condition_number": float(cn) if np.isfinite(cn) else None,
            "std_errors": [float(v) for v in self.std_errors],
            "correlation": self.correlation.tolist(),
            "flagged": list(self.flagged),
            "groups": [list(g) for g in self.groups],
            "weak_directions": [d.to_dict() for d in self.weak_directions],
            "correlated_pairs": [list(p) for p in self.correlated_pairs],
        }


    def __repr__(self):
        return (
            f"IdentifiabilityReport(condition_number={self.condition_number:.3g}, "
            f"flagged={self.flagged})"
        )


    # DISPLAY ===========================================================================

    def display(self) -> None:
        """Print the singular value spectrum, parameter table and findings."""
        W = 72
        line = "=" * W
        dash = "-" * W

        print(line)
        print("  Identifiability Analysis")
        print(line)
        print(f"  {'Parameter':<22} {'Value':>12} {'Std Error':>12}  {'Flag':>6}")
        print(dash)
        for name, val, se in zip(self.param_names, self.param_values, self.std_errors):
            flag = "weak" if name in self.flagged else ""
            print(f"  {name:<22} {val:>12.4g} {se:>12.4g}  {flag:>6}")
        print(dash)

        sv = ", ".join(f"{s:.3g}" for s in self.singular_values)
        print(f"  singular values      : {sv}")
        print(f"  condition number     : {self.condition_number:.3g}")

        if self.weak_directions:
            print(f"\n  Non-identifiable directions (sigma < {self.threshold:g} sigma_max):")
            for d in self.weak_directions:
                print(f"    - {d.explanation}")
        else:
            print("\n  All parameters are locally identifiable.")

        if self.correlated_pairs:
            print(f"\n  Highly correlated pairs (|r| > {self.correlation_threshold:.2f}):")
            for a, b, r in self.correlated_pairs:
                print(f"    {a} <-> {b}  :  r = {r:+.3f}")
        print(line)


    # PLOT ==============================================================================

    def plot(self, *, figsize: tuple = (11, 4.5)):
        """Plot the singular value spectrum and the correlation heatmap.

        Returns
        -------
        fig : matplotlib.figure.Figure
        axes : np.ndarray of matplotlib.axes.Axes, shape (2,)
        """
        import matplotlib.pyplot as plt
        import matplotlib.colors as mcolors

        n_p = len(self.param_names)
        fig, axes = plt.subplots(1, 2, figsize=figsize)

        ax = axes[0]
        s = self.singular_values
        s_max = s[0] if s.size and s[0] > 0.0 else 1.0
        weak = s < self.threshold * s_max
        colors = ["salmon" if w else "steelblue" for w in weak]
        ax.bar(range(s.size), np.maximum(s, np.finfo(float).tiny), color=colors)
        ax.axhline(self.threshold * s_max, color="0.4", linestyle="--", linewidth=1.0)
        ax.set_yscale("log")
        ax.set_xticks(range(s.size))
        ax.set_xticklabels([f"σ{i + 1}" for i in range(s.size)], fontsize=9)
        ax.set_ylabel("Singular value")
        ax.set_title("Normalized Jacobian Spectrum")
        ax.grid(True, axis="y", alpha=0.3)

        ax2 = axes[1]
        norm = mcolors.TwoSlopeNorm(vmin=-1.0, vcenter=0.0, vmax=1.0)
        im = ax2.imshow(self.correlation, cmap="RdBu_r", norm=norm, aspect="auto")
        fig.colorbar(im, ax=ax2, label="Correlation")
        ax2.set_xticks(range(n_p))
        ax2.set_yticks(range(n_p))
        ax2.set_xticklabels(self.param_names, rotation=45, ha="right", fontsize=9)
        ax2.set_yticklabels(self.param_names, fontsize=9)
        ax2.set_title("Parameter Correlation Matrix")

        fig.suptitle("Identifiability Analysis", fontweight="bold")
        plt.tight_layout()
        return fig, axes


# ANALYZER ==============================================================================

class IdentifiabilityAnalyzer:
    """Builds :class:`IdentifiabilityReport` objects.

    Parameters
    ----------
    threshold : float
        Relative singular value threshold (``1e-3`` corresponds to a Fisher
        information condition number of ``1e6``).
    participation : float
        Minimum absolute component for a parameter to be flagged in a weak
        direction.
    correlation_threshold : float
        Absolute correlation above which pairs are reported.
    eps : float
        Relative central-difference step.
    """

    def __init__(self, threshold=1e-3, participation=0.3, correlation_threshold=0.9,
                 eps=1e-5):
        if not 0.0 < threshold < 1.0:
            raise ConfigurationError(f"threshold must lie in (0, 1), got {threshold}")
        self.threshold = float(threshold)
        self.participation = float(participation)
        self.correlation_threshold = float(correlation_threshold)
        self.eps = float(eps)


    @classmethod
    def from_config(cls, config):
        return cls(
            threshold=config.identifiability_threshold,
            participation=config.participation_threshold,
            correlation_threshold=config.correlation_threshold,
        )


    def from_jacobian(self, jacobian, names, values, *, warn=True) -> IdentifiabilityReport:
        """Report from an already computed weighted Jacobian."""
        report = IdentifiabilityReport(
            jacobian, names, values,
            threshold=self.threshold,
            participation=self.participation,
            correlation_threshold=self.correlation_threshold,
        )
        if warn and report.weak_directions:
            for text in report.explanations:
                _log.warning("identifiability: %s", text)
            warnings.warn(
                f"poorly identifiable parameters {report.flagged} "
                f"(condition number {report.condition_number:.3g})",
                IdentifiabilityWarning,
            )
        return report


    def analyze(self, residual_fn, x, names, *, lower=None, upper=None, executor=None,
                warn=True) -> IdentifiabilityReport:
        """Central-difference Jacobian of ``residual_fn`` at ``x`` and its report."""
        J = fd_jacobian(
            residual_fn, x, rel_step=self.eps, lower=lower, upper=upper,
            central=True, executor=executor,
        )
        return self.from_jacobian(J, names, x, warn=warn)
