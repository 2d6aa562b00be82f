import numba
import numpy as np
from numba.core.errors import NumbaError, TypingError
from tqdm.auto import tqdm

from umap_layout.utils import draw_epoch_seed, philox_rand_int


class LayoutDispatchError(RuntimeError):
    """An epoch of the layout optimization could not be run. The embedding
    is left in a partially optimized state."""


@numba.njit()
def clip(val, lb=-4.0, ub=4.0):
    """Standard clamping of a value into a fixed range (by default -4.0 to
    4.0)

    Parameters
    ----------
    val: float
        The value to be clamped.

    lb: float (optional, default -4.0)
        The lower bound.

    ub: float (optional, default 4.0)
        The upper bound.

    Returns
    -------
    The clamped value, now fixed to be in the range lb to ub.
    """
    if val > ub:
        return ub
    elif val < lb:
        return lb
    else:
        return val


@numba.njit(
    "f4(f4[::1],f4[::1])",
    fastmath=True,
    cache=True,
    locals={
        "result": numba.types.float32,
        "diff": numba.types.float32,
        "dim": numba.types.intp,
        "i": numba.types.intp,
    },
)
def rdist(x, y):
    """Reduced Euclidean distance.

    Parameters
    ----------
    x: array of shape (embedding_dim,)
    y: array of shape (embedding_dim,)

    Returns
    -------
    The squared euclidean distance between x and y
    """
    result = 0.0
    dim = x.shape[0]
    for i in range(dim):
        diff = x[i] - y[i]
        result += diff * diff

    return result


@numba.njit(inline="always")
def attractive_grad(dist_squared, a, b):
    """Gradient coefficient of the attractive term between two points
    joined by a 1-simplex. Only defined for ``dist_squared > 0``."""
    grad_coeff = -2.0 * a * b * pow(dist_squared, b - 1.0)
    grad_coeff /= a * pow(dist_squared, b) + 1.0
    return grad_coeff


@numba.njit(inline="always")
def repulsive_grad(dist_squared, gamma, a, b):
    """Gradient coefficient of the repulsive term against a negative sample."""
    grad_coeff = 2.0 * gamma * b
    grad_coeff /= (0.001 + dist_squared) * (a * pow(dist_squared, b) + 1.0)
    return grad_coeff


def _optimize_layout_euclidean_single_epoch(
    head_embedding,
    tail_embedding,
    head,
    tail,
    n_vertices,
    epochs_per_sample,
    a,
    b,
    gamma,
    dim,
    move_other,
    alpha,
    epochs_per_negative_sample,
    epoch_of_next_negative_sample,
    epoch_of_next_sample,
    n,
    seed,
    head_updates,
    tail_updates,
):
    # Each edge only ever writes to its own row of head_updates/tail_updates;
    # the embeddings are read-only here and updated by _apply_layout_updates.
    for i in numba.prange(epochs_per_sample.shape[0]):
        for d in range(dim):
            head_updates[i, d] = 0.0
            tail_updates[i, d] = 0.0

        if epochs_per_sample[i] > 0.0 and epoch_of_next_sample[i] <= n:
            j = head[i]
            k = tail[i]

            current = head_embedding[j].copy()
            other = tail_embedding[k].copy()

            dist_squared = rdist(current, other)

            if dist_squared > 0.0:
                grad_coeff = attractive_grad(dist_squared, a, b)
            else:
                grad_coeff = 0.0

            for d in range(dim):
                grad_d = clip(grad_coeff * (current[d] - other[d]))

                current[d] += grad_d * alpha
                head_updates[i, d] += grad_d * alpha
                if move_other:
                    other[d] += -grad_d * alpha
                    tail_updates[i, d] += -grad_d * alpha

            epoch_of_next_sample[i] += epochs_per_sample[i]

            n_neg_samples = 0
            if epochs_per_negative_sample[i] > 0.0:
                n_neg_samples = int(
                    (n - epoch_of_next_negative_sample[i])
                    / epochs_per_negative_sample[i]
                )

            for p in range(n_neg_samples):
                t = philox_rand_int(seed, i, p) % n_vertices

                # head and tail are one buffer when move_other is set, so the
                # edge's own endpoints must be read back with its updates
                if move_other and t == j:
                    negative_sample = current
                elif move_other and t == k:
                    negative_sample = other
                else:
                    negative_sample = tail_embedding[t]

                dist_squared = rdist(current, negative_sample)

                if dist_squared > 0.0:
                    grad_coeff = repulsive_grad(dist_squared, gamma, a, b)
                    for d in range(dim):
                        grad_d = clip(grad_coeff * (current[d] - negative_sample[d]))
                        current[d] += grad_d * alpha
                        head_updates[i, d] += grad_d * alpha
                elif j == t:
                    continue
                else:
                    # Coincident distinct points get the maximal push.
                    for d in range(dim):
                        current[d] += 4.0 * alpha
                        head_updates[i, d] += 4.0 * alpha

            epoch_of_next_negative_sample[i] += (
                n_neg_samples * epochs_per_negative_sample[i]
            )


def _apply_layout_updates(embedding, indptr, edge_order, updates):
    # Every vertex is owned by exactly one iteration, which adds the updates
    # of all edges touching it in a fixed order.
    for v in numba.prange(indptr.shape[0] - 1):
        for idx in range(indptr[v], indptr[v + 1]):
            i = edge_order[idx]
            for d in range(embedding.shape[1]):
                embedding[v, d] += updates[i, d]


_nb_optimize_layout_euclidean_single_epoch = numba.njit(
    _optimize_layout_euclidean_single_epoch, fastmath=True, parallel=False
)

_nb_optimize_layout_euclidean_single_epoch_parallel = numba.njit(
    _optimize_layout_euclidean_single_epoch, fastmath=True, parallel=True
)

_nb_apply_layout_updates = numba.njit(_apply_layout_updates, parallel=False)

_nb_apply_layout_updates_parallel = numba.njit(_apply_layout_updates, parallel=True)


def _get_optimize_layout_euclidean_single_epoch_fn(parallel: bool = False):
    if parallel:
        return _nb_optimize_layout_euclidean_single_epoch_parallel
    else:
        return _nb_optimize_layout_euclidean_single_epoch


def _get_apply_layout_updates_fn(parallel: bool = False):
    if parallel:
        return _nb_apply_layout_updates_parallel
    else:
        return _nb_apply_layout_updates


def edge_partition(vertices, n_vertices):
    """Group edges by the vertex they update.

    Parameters
    ----------
    vertices: array of shape (n_1_simplices)
        The vertex index at one end of each 1-simplex.

    n_vertices: int
        The number of rows of the embedding being updated.

    Returns
    -------
    indptr: array of int64, shape (n_vertices + 1)
        The edges updating vertex ``v`` are
        ``edge_order[indptr[v]:indptr[v + 1]]``.

    edge_order: array of int64, shape (n_1_simplices)
        Edge indices sorted (stably) by vertex.
    """
    vertices = np.asarray(vertices)
    edge_order = np.argsort(vertices, kind="stable").astype(np.int64)
    indptr = np.searchsorted(
        vertices[edge_order], np.arange(n_vertices + 1), side="left"
    ).astype(np.int64)
    return indptr, edge_order


def make_alpha_schedule(initial_alpha, n_epochs):
    """Linearly decaying learning rate, ``initial_alpha * (1 - n / n_epochs)``
    for each epoch ``n``."""
    return np.linspace(initial_alpha, 0.0, n_epochs, endpoint=False)


def _read_only_view(embedding):
    view = embedding.view()
    view.flags.writeable = False
    return view


def optimize_layout_euclidean(
    head_embedding,
    tail_embedding,
    head,
    tail,
    n_epochs,
    n_vertices,
    epochs_per_sample,
    a,
    b,
    gamma=1.0,
    initial_alpha=1.0,
    negative_sample_rate=5.0,
    parallel=True,
    verbose=False,
    tqdm_kwds=None,
    move_other=None,
    callback=None,
    random_state=None,
):
    """Improve an embedding using stochastic gradient descent to minimize the
    fuzzy set cross entropy between the 1-skeletons of the high dimensional
    and low dimensional fuzzy simplicial sets. In practice this is done by
    sampling edges based on their membership strength (with the (1-p) terms
    coming from negative sampling similar to word2vec).

    Each epoch every edge is considered independently. Edges that are due
    fire an attractive update between their endpoints followed by the
    negative samples owed since their last firing. Updates are accumulated
    per edge and then summed into the embedding one vertex at a time, so no
    update is lost however many edges share a vertex, and the result does
    not depend on thread scheduling.

    Parameters
    ----------
    head_embedding: array of shape (n_samples, n_components)
        The initial embedding to be improved by SGD. Must be C-contiguous
        float32; it is modified in place.
    tail_embedding: array of shape (source_samples, n_components)
        The reference embedding of embedded points. If not embedding new
        previously unseen points with respect to an existing embedding this
        is simply the head_embedding (again); otherwise it provides the
        existing embedding to embed with respect to.
    head: array of shape (n_1_simplices)
        The indices of the heads of 1-simplices with non-zero membership.
    tail: array of shape (n_1_simplices)
        The indices of the tails of 1-simplices with non-zero membership.
    n_epochs: int
        The number of training epochs to use in optimization.
    n_vertices: int
        The number of vertices negative samples are drawn from (the rows of
        ``tail_embedding``).
    epochs_per_sample: array of shape (n_1_simplices)
        A float value of the number of epochs per 1-simplex. 1-simplices with
        weaker membership strength will have more epochs between being sampled.
        Non-positive values mark 1-simplices that are never sampled.
    a: float
        Parameter of differentiable approximation of right adjoint functor
    b: float
        Parameter of differentiable approximation of right adjoint functor
    gamma: float (optional, default 1.0)
        Weight to apply to negative samples.
    initial_alpha: float (optional, default 1.0)
        Initial learning rate for the SGD.
    negative_sample_rate: int (optional, default 5)
        Number of negative samples to use per positive sample. Zero disables
        negative sampling.
    parallel: bool (optional, default True)
        Whether to run the computation using numba parallel. The result is
        the same either way.
    verbose: bool (optional, default False)
        Whether to report information on the current progress of the algorithm.
    tqdm_kwds: dict (optional, default None)
        Keyword arguments for tqdm progress bar.
    move_other: bool (optional, default None)
        Whether to adjust tail_embedding alongside head_embedding. Defaults
        to whether the two embeddings are the same array.
    callback: callable (optional, default None)
        Called after every epoch with a read-only view of head_embedding.
    random_state: np.random.RandomState (optional, default None)
        Source of the per-epoch negative sampling seeds. If None the seeds
        are taken from the wall clock.

    Returns
    -------
    embedding: array of shape (n_samples, n_components)
        The optimized embedding.
    """
    for name, embedding in (
        ("head_embedding", head_embedding),
        ("tail_embedding", tail_embedding),
    ):
        if (
            embedding.ndim != 2
            or embedding.dtype != np.float32
            or not embedding.flags.c_contiguous
        ):
            raise ValueError(
                "{} must be a 2 dimensional C-contiguous float32 array".format(name)
            )
    if head_embedding.shape[1] != tail_embedding.shape[1]:
        raise ValueError(
            "head_embedding and tail_embedding must have the same number of columns"
        )

    dim = head_embedding.shape[1]
    if move_other is None:
        move_other = head_embedding is tail_embedding

    head = np.ascontiguousarray(head)
    tail = np.ascontiguousarray(tail)
    epochs_per_sample = np.ascontiguousarray(epochs_per_sample, dtype=np.float64)

    if negative_sample_rate > 0:
        epochs_per_negative_sample = epochs_per_sample / negative_sample_rate
    else:
        epochs_per_negative_sample = np.full_like(epochs_per_sample, -1.0)
    epoch_of_next_negative_sample = epochs_per_negative_sample.copy()
    epoch_of_next_sample = epochs_per_sample.copy()

    head_updates = np.zeros((epochs_per_sample.shape[0], dim), dtype=np.float32)
    tail_updates = np.zeros((epochs_per_sample.shape[0], dim), dtype=np.float32)
    head_indptr, head_order = edge_partition(head, head_embedding.shape[0])
    if move_other:
        tail_indptr, tail_order = edge_partition(tail, tail_embedding.shape[0])

    alpha_schedule = make_alpha_schedule(initial_alpha, n_epochs)

    optimize_fn = _get_optimize_layout_euclidean_single_epoch_fn(parallel)
    apply_fn = _get_apply_layout_updates_fn(parallel)

    if tqdm_kwds is None:
        tqdm_kwds = {}

    if "disable" not in tqdm_kwds:
        tqdm_kwds["disable"] = not verbose

    for n in tqdm(range(n_epochs), **tqdm_kwds):
        seed = draw_epoch_seed(random_state)

        try:
            optimize_fn(
                head_embedding,
                tail_embedding,
                head,
                tail,
                n_vertices,
                epochs_per_sample,
                a,
                b,
                gamma,
                dim,
                move_other,
                alpha_schedule[n],
                epochs_per_negative_sample,
                epoch_of_next_negative_sample,
                epoch_of_next_sample,
                n,
                seed,
                head_updates,
                tail_updates,
            )
            apply_fn(head_embedding, head_indptr, head_order, head_updates)
            if move_other:
                apply_fn(tail_embedding, tail_indptr, tail_order, tail_updates)
        except TypingError:
            raise
        except (MemoryError, NumbaError) as e:
            raise LayoutDispatchError(
                "Layout optimization failed in epoch {} of {}".format(n, n_epochs)
            ) from e

        if callback is not None:
            callback(_read_only_view(head_embedding))

    return head_embedding
