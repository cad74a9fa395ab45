#########################################################################################
##
##                           FINITE DIFFERENCE JACOBIANS
##                                  (jacobian.py)
##
##                                  Kevin McBride 2026
##
#########################################################################################

# IMPORTS ===============================================================================

import numpy as np


__all__ = ["fd_steps", "fd_jacobian"]


# FUNCTIONS =============================================================================

def fd_steps(x, rel_step=1e-6, lower=None, upper=None):
    """Signed forward-difference steps ``rel_step * max(1, |x|)``.

    Steps that would leave the box are flipped to point inward. When the
    flipped step would cross ``lower`` as well, it is shortened to the
    wider of the two gaps to the bounds.
    """
    x = np.asarray(x, dtype=float)
    h = rel_step * np.maximum(1.0, np.abs(x))
    if upper is not None:
        room_up = np.asarray(upper, dtype=float) - x
        flip = h > room_up
        h = np.where(flip, -h, h)
        if lower is not None:
            room_down = x - np.asarray(lower, dtype=float)
            h = np.where(
                flip & (-h > room_down),
                np.where(room_up >= room_down, room_up, -room_down),
                h,
            )
    return h


def _probe(fun, executor, points):
    if executor is None:
        return [np.asarray(fun(p), dtype=float) for p in points]
    # map preserves submission order
    return [np.asarray(r, dtype=float) for r in executor.map(fun, points)]


def fd_jacobian(fun, x, f0=None, *, rel_step=1e-6, lower=None, upper=None,
                central=False, executor=None):
    """Finite-difference Jacobian of a vector function.

    Parameters
    ----------
    fun : callable
        ``fun(x) -> np.ndarray`` of shape ``(m,)``.
    x : array_like
        Evaluation point, shape ``(n,)``.
    f0 : array_like, optional
        ``fun(x)`` if already known (forward differences only).
    rel_step : float
        Relative step size.
    lower, upper : array_like, optional
        Box bounds; probes are kept inside.
    central : bool
        Use central differences where both probes fit in the box.
    executor : concurrent.futures.Executor, optional
        Evaluate probes in parallel. Results are reduced in submission
        order, so the Jacobian does not depend on completion order.

    Returns
    -------
    np.ndarray
        Jacobian of shape ``(m, n)``.
    """
    x = np.asarray(x, dtype=float).reshape(-1)
    n = x.size
    lo = np.full(n, -np.inf) if lower is None else np.asarray(lower, dtype=float)
    hi = np.full(n, np.inf) if upper is None else np.asarray(upper, dtype=float)

    if not central:
        h = fd_steps(x, rel_step, lo, hi)
        points = []
        for i in range(n):
            xp = x.copy()
            xp[i] += h[i]
            points.append(xp)

        if f0 is None:
            values = _probe(fun, executor, [x] + points)
            f0, values = values[0], values[1:]
        else:
            f0 = np.asarray(f0, dtype=float)
            values = _probe(fun, executor, points)

        J = np.empty((f0.size, n))
        for i in range(n):
            J[:, i] = (values[i] - f0) / h[i]
        return J

    h = rel_step * np.maximum(1.0, np.abs(x))
    plus, minus = x + h, x - h
    up = np.minimum(plus, hi)
    dn = np.maximum(minus, lo)

    points = []
    for i in range(n):
        xp, xm = x.copy(), x.copy()
        xp[i], xm[i] = up[i], dn[i]
        points.extend([xp, xm])

    values = _probe(fun, executor, points)
    m = values[0].size
    J = np.empty((m, n))
    for i in range(n):
        J[:, i] = (values[2*i] - values[2*i + 1]) / (up[i] - dn[i])
    return J
