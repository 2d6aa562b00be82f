from warnings import warn

import numpy as np

import scipy.sparse
import scipy.sparse.csgraph
import scipy.sparse.linalg


def spectral_layout(graph, dim, random_state, tol=0.0, maxiter=0):
    """
    Given a graph compute the spectral embedding of the graph. This is
    simply the eigenvectors of the laplacian of the graph. Here we use the
    normalized laplacian.

    Graphs with more than one connected component, or for which the
    eigensolver fails, fall back to a random layout with a warning.

    Parameters
    ----------
    graph: sparse matrix
        The (weighted) adjacency matrix of the graph as a sparse matrix.

    dim: int
        The dimension of the space into which to embed.

    random_state: numpy RandomState or equivalent
        A state capable being used as a numpy random state.

    tol: float, default chosen by implementation
        Stopping tolerance for the numerical algorithm computing the embedding.

    maxiter: int, default chosen by implementation
        Number of iterations the numerical algorithm will go through at most as it
        attempts to compute the embedding.

    Returns
    -------
    embedding: array of shape (n_vertices, dim)
        The spectral embedding of the graph.
    """
    graph = scipy.sparse.csr_matrix(graph)
    n_samples = graph.shape[0]
    n_components, labels = scipy.sparse.csgraph.connected_components(graph)

    # eigsh needs strictly fewer eigenpairs than rows
    if n_components > 1 or n_samples <= dim + 1:
        warn(
            "Spectral initialisation requires a connected graph with more\n"
            "than n_components + 1 vertices.\n\n"
            "Falling back to random initialisation!"
        )
        return random_state.uniform(low=-10.0, high=10.0, size=(n_samples, dim))

    sqrt_deg = np.sqrt(np.asarray(graph.sum(axis=0)).squeeze())
    # Normalized Laplacian
    I = scipy.sparse.identity(n_samples, dtype=np.float64)
    D = scipy.sparse.spdiags(1.0 / sqrt_deg, 0, n_samples, n_samples)
    L = I - D * graph * D

    k = dim + 1
    num_lanczos_vectors = min(n_samples, max(2 * k + 1, int(np.sqrt(n_samples))))

    try:
        eigenvalues, eigenvectors = scipy.sparse.linalg.eigsh(
            L,
            k,
            which="SM",
            ncv=num_lanczos_vectors,
            tol=tol or 1e-4,
            v0=np.ones(n_samples),
            maxiter=maxiter or n_samples * 5,
        )
        order = np.argsort(eigenvalues)[1:k]
        return eigenvectors[:, order]
    except scipy.sparse.linalg.ArpackError:
        warn(
            "Spectral initialisation failed! The eigenvector solver\n"
            "failed. This is likely due to too small an eigengap. Consider\n"
            "adding some noise or jitter to your data.\n\n"
            "Falling back to random initialisation!"
        )
        return random_state.uniform(low=-10.0, high=10.0, size=(n_samples, dim))
