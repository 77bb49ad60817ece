"""
Matrix operations for phylogenetic likelihood calculations.

This module provides core matrix operations needed for computing transition
probabilities and likelihood calculations.
"""

import numpy as np
from scipy.linalg import expm


def matrix_exponential(Q: np.ndarray, t: float) -> np.ndarray:
    """
    Compute transition probability matrix P(t) = exp(Q*t).

    Uses scipy's matrix exponential (Padé approximation with scaling and
    squaring). Works for any rate matrix, reversible or not.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Rate matrix (instantaneous substitution rate matrix)
    t : float
        Branch length (time)

    Returns
    -------
    P : ndarray, shape (n, n)
        Transition probability matrix where P[i,j] is the probability
        of state i transitioning to state j over time t
    """
    return expm(Q * t)


def eigen_decompose_rev(Q: np.ndarray, pi: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Eigendecompose reversible rate matrix Q = U @ diag(eigenvalues) @ V.

    Uses symmetrization trick for reversible (time-reversible) rate matrices:
    Transform Q to symmetric matrix Q' = √D @ Q @ √D^(-1), where D = diag(pi),
    then eigendecompose Q' and transform back.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Reversible rate matrix satisfying detailed balance: π_i * Q[i,j] = π_j * Q[j,i]
    pi : ndarray, shape (n,)
        Stationary distribution (equilibrium frequencies)

    Returns
    -------
    eigenvalues : ndarray, shape (n,)
        Eigenvalues of Q, sorted in ascending order
    U : ndarray, shape (n, n)
        Left eigenvector matrix
    V : ndarray, shape (n, n)
        Right eigenvector matrix

    Notes
    -----
    The decomposition satisfies:
    - Q = U @ diag(eigenvalues) @ V
    - P(t) = U @ diag(exp(eigenvalues * t)) @ V
    """
    sqrt_pi = np.sqrt(pi)

    # Symmetrize: Q' = √D @ Q @ √D^(-1)
    Q_sym = Q * sqrt_pi[:, np.newaxis] / sqrt_pi[np.newaxis, :]
    # Remove rounding asymmetry before eigh
    Q_sym = 0.5 * (Q_sym + Q_sym.T)

    eigenvalues, eigenvectors = np.linalg.eigh(Q_sym)

    # Transform back to original basis
    U = eigenvectors / sqrt_pi[:, np.newaxis]
    V = eigenvectors.T * sqrt_pi[np.newaxis, :]

    return eigenvalues, U, V


def transition_matrices(
    eigen: tuple[np.ndarray, np.ndarray, np.ndarray], lengths: np.ndarray
) -> np.ndarray:
    """
    Transition matrices for many branch lengths at once.

    Parameters
    ----------
    eigen : tuple
        Output of :func:`eigen_decompose_rev`
    lengths : ndarray, shape (n_branches,)
        Branch lengths

    Returns
    -------
    P : ndarray, shape (n_branches, n, n)
        P[b] = exp(Q * lengths[b]), clipped to [0, 1]
    """
    eigenvalues, U, V = eigen
    lengths = np.asarray(lengths, dtype=float)
    exp_terms = np.exp(lengths[:, np.newaxis] * eigenvalues[np.newaxis, :])
    P = np.einsum('ik,bk,kj->bij', U, exp_terms, V)
    return np.clip(P, 0.0, 1.0)


def create_reversible_Q(
    rates: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Create a reversible rate matrix from exchangeability rates and stationary distribution.

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Symmetric exchangeability matrix (r[i,j] = r[j,i])
    pi : ndarray, shape (n,)
        Stationary distribution (equilibrium frequencies)
    normalize : bool, default=True
        If True, scale Q so that expected rate is 1 substitution per time unit

    Returns
    -------
    Q : ndarray, shape (n, n)
        Reversible rate matrix satisfying detailed balance

    Notes
    -----
    The rate matrix is constructed as Q[i,j] = r[i,j] * pi[j] for i ≠ j,
    and Q[i,i] = -sum(Q[i,j] for j ≠ i).

    Examples
    --------
    >>> # JC69 model
    >>> rates = np.ones((4, 4)) - np.eye(4)  # All rates equal
    >>> pi = np.ones(4) / 4
    >>> Q = create_reversible_Q(rates, pi)
    """
    Q = rates * pi[np.newaxis, :]

    np.fill_diagonal(Q, 0.0)
    row_sums = np.sum(Q, axis=1)
    np.fill_diagonal(Q, -row_sums)

    if normalize:
        # Expected rate = -sum(π_i * Q[i,i])
        expected_rate = -np.dot(pi, Q.diagonal())
        if expected_rate <= 0:
            raise ValueError("Rate matrix has no substitutions (all rates zero)")
        Q /= expected_rate

    return Q
