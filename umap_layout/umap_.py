# Author: Leland McInnes <leland.mcinnes@gmail.com>
#
# License: BSD 3 clause
from warnings import warn

from scipy.optimize import curve_fit
from sklearn.base import BaseEstimator
from sklearn.utils import check_random_state
from sklearn.utils.validation import check_is_fitted

import numpy as np
import scipy.sparse
import numba

from umap_layout.utils import ts
from umap_layout.spectral import spectral_layout
from umap_layout.layouts import optimize_layout_euclidean


def default_n_epochs(n_vertices):
    """The number of training epochs used when none is given: smaller
    graphs can afford more epochs."""
    if n_vertices <= 10000:
        return 500
    else:
        return 200


def default_transform_n_epochs(n_vertices):
    """The number of epochs used when embedding new points against an
    existing embedding and none is given."""
    if n_vertices <= 10000:
        return 100
    else:
        return 30


def make_epochs_per_sample(weights, n_epochs):
    """Given a set of weights and number of epochs generate the number of
    epochs per sample for each weight.

    Parameters
    ----------
    weights: array of shape (n_1_simplices)
        The weights of how much we wish to sample each 1-simplex.

    n_epochs: int
        The total number of epochs we want to train for.

    Returns
    -------
    An array of number of epochs per sample, one for each 1-simplex.
    1-simplices that would never be sampled get -1.
    """
    weights = np.asarray(weights, dtype=np.float64)
    result = -1.0 * np.ones(weights.shape[0], dtype=np.float64)
    if weights.shape[0] == 0 or weights.max() <= 0.0:
        return result
    n_samples = n_epochs * (weights / weights.max())
    result[n_samples > 0] = float(n_epochs) / np.float64(n_samples[n_samples > 0])
    return result


def prune_graph(graph, n_epochs):
    """Remove the 1-simplices too weak to ever be sampled within
    ``n_epochs``, i.e. those with weight below ``max_weight / n_epochs``.

    Parameters
    ----------
    graph: sparse matrix
        The weighted 1-skeleton. It is not modified.

    n_epochs: int
        The number of training epochs.

    Returns
    -------
    graph: coo_matrix
        A pruned copy of the graph with duplicates summed and explicit zeros
        removed.
    """
    graph = scipy.sparse.coo_matrix(graph, dtype=np.float64, copy=True)
    graph.sum_duplicates()
    if graph.nnz > 0:
        graph.data[graph.data < (graph.data.max() / float(n_epochs))] = 0.0
    graph.eliminate_zeros()
    return graph


# scale coords so that the largest coordinate is max_coords, then add normal-distributed
# noise with standard deviation noise
def noisy_scale_coords(coords, random_state, max_coord=10.0, noise=0.0001):
    expansion = max_coord / np.abs(coords).max()
    coords = (coords * expansion).astype(np.float32)
    return coords + random_state.normal(scale=noise, size=coords.shape).astype(
        np.float32
    )


def init_graph_transform(graph, embedding):
    """Given a bipartite graph representing the 1-simplices and strengths between the
    new points and the original data set along with an embedding of the original points
    initialize the positions of new points relative to the strengths (of their neighbors in the source data).

    If a point is in our original data set it embeds at the original points coordinates.
    If a point has no neighbours in our original dataset it embeds as the np.nan vector.
    Otherwise a point is the weighted average of it's neighbours embedding locations.

    Parameters
    ----------
    graph: csr_matrix (n_new_samples, n_samples)
        A matrix indicating the 1-simplices and their associated strengths.  These strengths should
        be values between zero and one and not normalized.  One indicating that the new point was identical
        to one of our original points.

    embedding: array of shape (n_samples, dim)
        The original embedding of the source data.

    Returns
    -------
    new_embedding: array of shape (n_new_samples, dim)
        An initial embedding of the new sample points.
    """
    graph = scipy.sparse.csr_matrix(graph)
    graph.eliminate_zeros()
    result = np.zeros((graph.shape[0], embedding.shape[1]), dtype=np.float32)

    for row_index in range(graph.shape[0]):
        graph_row = graph[row_index]
        if graph_row.nnz == 0:
            result[row_index] = np.nan
            continue
        row_sum = graph_row.sum()
        for graph_value, col_index in zip(graph_row.data, graph_row.indices):
            if graph_value == 1:
                result[row_index, :] = embedding[col_index, :]
                break
            result[row_index] += graph_value / row_sum * embedding[col_index]

    return result


def find_ab_params(spread, min_dist):
    """Fit a, b params for the differentiable curve used in lower
    dimensional fuzzy simplicial complex construction. We want the
    smooth curve (from a pre-defined family with simple gradient) that
    best matches an offset exponential decay.
    """

    def curve(x, a, b):
        return 1.0 / (1.0 + a * x ** (2 * b))

    xv = np.linspace(0, spread * 3, 300)
    yv = np.zeros(xv.shape)
    yv[xv < min_dist] = 1.0
    yv[xv >= min_dist] = np.exp(-(xv[xv >= min_dist] - min_dist) / spread)
    params, covar = curve_fit(curve, xv, yv)
    return params[0], params[1]


def _check_graph(graph):
    if not scipy.sparse.issparse(graph):
        raise ValueError("graph must be a scipy sparse matrix")
    graph = graph.tocoo()
    if graph.nnz > 0 and graph.data.min() < 0.0:
        raise ValueError("graph weights cannot be negative")
    return graph


def _check_embedding(embedding, n_rows, name="embedding"):
    if not isinstance(embedding, np.ndarray) or embedding.ndim != 2:
        raise ValueError("{} must be a 2 dimensional numpy array".format(name))
    if embedding.dtype != np.float32 or not embedding.flags.c_contiguous:
        raise ValueError("{} must be a C-contiguous float32 array".format(name))
    if not embedding.flags.writeable:
        raise ValueError("{} must be writeable".format(name))
    if embedding.shape[0] != n_rows:
        raise ValueError(
            "{} has {} rows but the graph has {} vertices".format(
                name, embedding.shape[0], n_rows
            )
        )


def _check_n_epochs(n_epochs):
    if n_epochs is not None and (n_epochs < 0 or n_epochs % 1 != 0):
        raise ValueError("n_epochs must be a nonnegative integer")


def simplicial_set_embedding(
    graph,
    embedding,
    a,
    b,
    gamma,
    initial_alpha,
    negative_sample_rate,
    n_epochs=None,
    random_state=None,
    parallel=True,
    verbose=False,
    tqdm_kwds=None,
    callback=None,
):
    """Perform a fuzzy simplicial set embedding by minimizing the fuzzy set
    cross entropy between the 1-skeletons of the high and low dimensional
    fuzzy simplicial sets.

    Parameters
    ----------
    graph: sparse matrix of shape (n_samples, n_samples)
        The 1-skeleton of the high dimensional fuzzy simplicial set as
        represented by a graph for which we require a sparse matrix for the
        (weighted) adjacency matrix. It is not modified.

    embedding: array of shape (n_samples, n_components)
        The initial embedding, C-contiguous float32. It is optimized in place.

    a: float
        Parameter of differentiable approximation of right adjoint functor

    b: float
        Parameter of differentiable approximation of right adjoint functor

    gamma: float
        Weight to apply to negative samples.

    initial_alpha: float
        Initial learning rate for the SGD.

    negative_sample_rate: int
        The number of negative samples to select per positive sample
        in the optimization process. Increasing this value will result
        in greater repulsive force being applied, greater optimization
        cost, but slightly more accuracy.

    n_epochs: int (optional, default None)
        The number of training epochs to be used in optimizing the
        low dimensional embedding. Larger values result in more accurate
        embeddings. If None or 0 is specified a value will be selected based on
        the size of the input dataset (200 for large datasets, 500 for small).

    random_state: int, RandomState instance or None (optional, default None)
        Seeds the negative sampling. If None the seeds are taken from the
        wall clock and the result is not reproducible.

    parallel: bool (optional, default True)
        Whether to run the computation using numba parallel.

    verbose: bool (optional, default False)
        Whether to report information on the current progress of the algorithm.

    tqdm_kwds: dict
        Key word arguments to be used by the tqdm progress bar.

    callback: callable (optional, default None)
        Called after every epoch with a read-only view of the embedding.

    Returns
    -------
    embedding: array of shape (n_samples, n_components)
        The optimized of ``graph`` into an ``n_components`` dimensional
        euclidean space; the same array as was passed in.
    """
    graph = _check_graph(graph)
    if graph.shape[0] != graph.shape[1]:
        raise ValueError("graph must be square")
    _check_embedding(embedding, graph.shape[0])
    _check_n_epochs(n_epochs)

    n_vertices = graph.shape[0]

    if not n_epochs:
        n_epochs = default_n_epochs(n_vertices)
    n_epochs = int(n_epochs)

    graph = prune_graph(graph, n_epochs)
    if graph.nnz == 0:
        warn(
            "No 1-simplices remain after pruning weak edges; "
            "the embedding will not be changed."
        )

    epochs_per_sample = make_epochs_per_sample(graph.data, n_epochs)

    if verbose:
        print(ts(), "epochs_per_sample:", epochs_per_sample)

    if random_state is not None:
        random_state = check_random_state(random_state)

    return optimize_layout_euclidean(
        embedding,
        embedding,
        graph.row,
        graph.col,
        n_epochs,
        n_vertices,
        epochs_per_sample,
        a,
        b,
        gamma,
        initial_alpha,
        negative_sample_rate,
        parallel=parallel,
        verbose=verbose,
        tqdm_kwds=tqdm_kwds,
        move_other=True,
        callback=callback,
        random_state=random_state,
    )


def simplicial_set_transform(
    graph,
    embedding,
    reference_embedding,
    a,
    b,
    gamma,
    initial_alpha,
    negative_sample_rate,
    n_epochs=None,
    random_state=None,
    parallel=True,
    verbose=False,
    tqdm_kwds=None,
    callback=None,
):
    """Embed new points with respect to an existing, fixed embedding.

    Parameters
    ----------
    graph: sparse matrix of shape (n_new_samples, n_samples)
        The 1-simplices between the new points and the points of the
        reference embedding, with their membership strengths.

    embedding: array of shape (n_new_samples, n_components)
        The initial positions of the new points, C-contiguous float32. It is
        optimized in place.

    reference_embedding: array of shape (n_samples, n_components)
        The existing embedding; never modified.

    n_epochs: int (optional, default None)
        The number of training epochs. If None or 0 a value is chosen from
        the number of new points (100 for small sets, 30 for large ones).

    See ``simplicial_set_embedding`` for the remaining parameters.

    Returns
    -------
    embedding: array of shape (n_new_samples, n_components)
        The optimized positions of the new points.
    """
    graph = _check_graph(graph)
    _check_embedding(embedding, graph.shape[0])
    reference_embedding = np.asarray(reference_embedding)
    if reference_embedding.ndim != 2 or reference_embedding.shape[0] != graph.shape[1]:
        raise ValueError(
            "reference_embedding must have one row per column of the graph"
        )
    if reference_embedding.shape[1] != embedding.shape[1]:
        raise ValueError(
            "embedding and reference_embedding must have the same number of columns"
        )
    _check_n_epochs(n_epochs)

    if not n_epochs:
        n_epochs = default_transform_n_epochs(graph.shape[0])
    n_epochs = int(n_epochs)

    graph = prune_graph(graph, n_epochs)
    if graph.nnz == 0:
        warn(
            "No 1-simplices remain after pruning weak edges; "
            "the embedding will not be changed."
        )

    epochs_per_sample = make_epochs_per_sample(graph.data, n_epochs)

    if verbose:
        print(ts(), "epochs_per_sample:", epochs_per_sample)

    if random_state is not None:
        random_state = check_random_state(random_state)

    return optimize_layout_euclidean(
        embedding,
        reference_embedding.astype(np.float32, order="C", copy=True),
        graph.row,
        graph.col,
        n_epochs,
        graph.shape[1],
        epochs_per_sample,
        a,
        b,
        gamma,
        initial_alpha,
        negative_sample_rate,
        parallel=parallel,
        verbose=verbose,
        tqdm_kwds=tqdm_kwds,
        move_other=False,
        callback=callback,
        random_state=random_state,
    )


class SimplicialSetEmbedding(BaseEstimator):
    """Embed the 1-skeleton of a fuzzy simplicial set in euclidean space

    Lays out a weighted graph (such as the fuzzy simplicial set UMAP builds
    from a dataset) in a low dimensional space by stochastic gradient
    descent, and places new points relative to an existing layout.

    Parameters
    ----------
    n_components: int (optional, default 2)
        The dimension of the space to embed into.

    n_epochs: int (optional, default None)
        The number of training epochs to be used in optimizing the
        low dimensional embedding. If None (or 0) a value will be selected
        based on the size of the graph (200 for large graphs, 500 for small).

    learning_rate: float (optional, default 1.0)
        The initial learning rate for the embedding optimization.

    init: string or array (optional, default 'spectral')
        How to initialize the low dimensional embedding. Options are:

            * 'spectral': use a spectral embedding of the fuzzy 1-skeleton
            * 'random': assign initial embedding positions at random.
            * A numpy array of initial embedding positions.

    min_dist: float (optional, default 0.1)
        The effective minimum distance between embedded points. Used with
        ``spread`` to fit ``a`` and ``b``.

    spread: float (optional, default 1.0)
        The effective scale of embedded points.

    repulsion_strength: float (optional, default 1.0)
        Weighting applied to negative samples in low dimensional embedding
        optimization.

    negative_sample_rate: int (optional, default 5)
        The number of negative samples to select per positive sample.

    a: float (optional, default None)
        More specific parameters controlling the embedding. If None these
        values are set automatically as determined by ``min_dist`` and
        ``spread``.
    b: float (optional, default None)
        More specific parameters controlling the embedding. If None these
        values are set automatically as determined by ``min_dist`` and
        ``spread``.

    random_state: int, RandomState instance or None (optional, default None)
        If int, random_state is the seed used by the random number generator;
        If RandomState instance, random_state is the random number generator;
        If None, negative sampling is seeded from the wall clock.

    callback: callable (optional, default None)
        Called after every epoch with a read-only view of the embedding.

    n_jobs: int (optional, default -1)
        The number of numba threads to use; -1 uses all of them.

    verbose: bool (optional, default False)
        Controls verbosity of logging.

    tqdm_kwds: dict (optional, default None)
        Key word arguments to be used by the tqdm progress bar.
    """

    def __init__(
        self,
        n_components=2,
        n_epochs=None,
        learning_rate=1.0,
        init="spectral",
        min_dist=0.1,
        spread=1.0,
        repulsion_strength=1.0,
        negative_sample_rate=5,
        a=None,
        b=None,
        random_state=None,
        callback=None,
        n_jobs=-1,
        verbose=False,
        tqdm_kwds=None,
    ):
        self.n_components = n_components
        self.n_epochs = n_epochs
        self.learning_rate = learning_rate
        self.init = init
        self.min_dist = min_dist
        self.spread = spread
        self.repulsion_strength = repulsion_strength
        self.negative_sample_rate = negative_sample_rate
        self.a = a
        self.b = b
        self.random_state = random_state
        self.callback = callback
        self.n_jobs = n_jobs
        self.verbose = verbose
        self.tqdm_kwds = tqdm_kwds

    def _validate_parameters(self):
        if self.repulsion_strength < 0.0:
            raise ValueError("repulsion_strength cannot be negative")
        if self.min_dist > self.spread:
            raise ValueError("min_dist must be less than or equal to spread")
        if self.min_dist < 0.0:
            raise ValueError("min_dist cannot be negative")
        if self.negative_sample_rate < 0:
            raise ValueError("negative sample rate must be positive")
        if self.learning_rate < 0.0:
            raise ValueError("learning_rate must be positive")
        if not isinstance(self.init, str) and not isinstance(self.init, np.ndarray):
            raise ValueError("init must be a string or ndarray")
        if isinstance(self.init, str) and self.init not in ("spectral", "random"):
            raise ValueError('string init values must be "spectral" or "random"')
        if not isinstance(self.n_components, int):
            if isinstance(self.n_components, str):
                raise ValueError("n_components must be an int")
            if self.n_components % 1 != 0:
                raise ValueError("n_components must be a whole number")
            try:
                # this will convert other types of int (eg. numpy int64)
                # to Python int
                self.n_components = int(self.n_components)
            except ValueError:
                raise ValueError("n_components must be an int")
        if self.n_components < 1:
            raise ValueError("n_components must be greater than 0")
        if (
            isinstance(self.init, np.ndarray)
            and (self.init.ndim != 2 or self.init.shape[1] != self.n_components)
        ):
            raise ValueError("init ndarray must match n_components value")
        if self.n_epochs is not None and (
            self.n_epochs < 0 or not isinstance(self.n_epochs, (int, np.integer))
        ):
            raise ValueError("n_epochs must be a nonnegative integer")
        if self.callback is not None and not callable(self.callback):
            raise ValueError("callback must be callable")
        if self.n_jobs < -1 or self.n_jobs == 0:
            raise ValueError("n_jobs must be a postive integer, or -1 (for all cores)")

        if self.a is None or self.b is None:
            self._a, self._b = find_ab_params(self.spread, self.min_dist)
        else:
            self._a = self.a
            self._b = self.b

        self._initial_alpha = self.learning_rate

    def _initial_embedding(self, graph, random_state):
        if isinstance(self.init, str) and self.init == "random":
            embedding = random_state.uniform(
                low=-10.0, high=10.0, size=(graph.shape[0], self.n_components)
            ).astype(np.float32)
        elif isinstance(self.init, str) and self.init == "spectral":
            embedding = spectral_layout(graph, self.n_components, random_state)
            # We add a little noise to avoid local minima for optimization to come
            embedding = noisy_scale_coords(
                embedding, random_state, max_coord=10, noise=0.0001
            )
        else:
            embedding = np.array(self.init, dtype=np.float32)
            if embedding.shape[0] != graph.shape[0]:
                raise ValueError("init ndarray must have one row per graph vertex")

        if embedding.shape[0] > 1:
            span = np.max(embedding, 0) - np.min(embedding, 0)
            span[span == 0.0] = 1.0
            embedding = 10.0 * (embedding - np.min(embedding, 0)) / span

        return np.ascontiguousarray(embedding, dtype=np.float32)

    def fit(self, X, y=None):
        """Lay out the graph X.

        Parameters
        ----------
        X : sparse matrix, shape (n_samples, n_samples)
            The weighted 1-skeleton to embed.

        y : Ignored

        Returns
        -------
        self
        """
        self._validate_parameters()
        graph = _check_graph(X)
        if graph.shape[0] != graph.shape[1]:
            raise ValueError("graph must be square")

        if self.verbose:
            print(str(self))

        random_state = check_random_state(self.random_state)

        self._original_n_threads = numba.get_num_threads()
        if self.n_jobs > 0 and self.n_jobs is not None:
            numba.set_num_threads(self.n_jobs)

        try:
            if self.verbose:
                print(ts(), "Construct embedding")

            embedding = self._initial_embedding(graph, random_state)

            self.embedding_ = simplicial_set_embedding(
                graph,
                embedding,
                self._a,
                self._b,
                self.repulsion_strength,
                self._initial_alpha,
                self.negative_sample_rate,
                n_epochs=self.n_epochs,
                random_state=None if self.random_state is None else random_state,
                verbose=self.verbose,
                tqdm_kwds=self.tqdm_kwds,
                callback=self.callback,
            )
        finally:
            numba.set_num_threads(self._original_n_threads)

        if self.verbose:
            print(ts() + " Finished embedding")

        self.graph_ = graph.tocsr()
        return self

    def fit_transform(self, X, y=None):
        """Lay out the graph X and return the embedding.

        Parameters
        ----------
        X : sparse matrix, shape (n_samples, n_samples)
            The weighted 1-skeleton to embed.

        y : Ignored

        Returns
        -------
        X_new : array, shape (n_samples, n_components)
            Embedding of the graph in low-dimensional space.
        """
        self.fit(X, y)
        return self.embedding_

    def transform(self, X):
        """Place new points into the existing embedded space.

        Parameters
        ----------
        X : sparse matrix, shape (n_new_samples, n_samples)
            The 1-simplices from each new point to the points of the fitted
            graph.

        Returns
        -------
        X_new : array, shape (n_new_samples, n_components)
            Embedding of the new points in low-dimensional space. Points
            with no 1-simplices are returned as NaN.
        """
        check_is_fitted(self, "embedding_")
        graph = _check_graph(X)
        if graph.shape[1] != self.embedding_.shape[0]:
            raise ValueError(
                "graph must have one column per point of the fitted embedding"
            )

        embedding = np.ascontiguousarray(
            init_graph_transform(graph, self.embedding_), dtype=np.float32
        )

        if self.n_epochs:
            n_epochs = max(1, int(self.n_epochs // 3.0))
        else:
            n_epochs = None

        random_state = (
            None if self.random_state is None else check_random_state(self.random_state)
        )

        self._original_n_threads = numba.get_num_threads()
        if self.n_jobs > 0 and self.n_jobs is not None:
            numba.set_num_threads(self.n_jobs)

        try:
            embedding = simplicial_set_transform(
                graph,
                embedding,
                self.embedding_,
                self._a,
                self._b,
                self.repulsion_strength,
                self._initial_alpha / 4.0,
                self.negative_sample_rate,
                n_epochs=n_epochs,
                random_state=random_state,
                verbose=self.verbose,
                tqdm_kwds=self.tqdm_kwds,
                callback=self.callback,
            )
        finally:
            numba.set_num_threads(self._original_n_threads)

        return embedding
