# ===================================================
#  Scheduling, launching and estimator Test cases
# ===================================================

import warnings

import numpy as np
import pytest
import scipy.sparse
from numpy.testing import assert_array_equal, assert_allclose
from sklearn.exceptions import NotFittedError

from umap_layout import SimplicialSetEmbedding
from umap_layout.spectral import spectral_layout
from umap_layout.umap_ import (
    default_n_epochs,
    find_ab_params,
    init_graph_transform,
    make_epochs_per_sample,
    prune_graph,
    simplicial_set_embedding,
    simplicial_set_transform,
)

A, B = find_ab_params(1.0, 0.1)


def _pairwise(embedding, i, j):
    return np.linalg.norm(embedding[i] - embedding[j])


# Epoch scheduling
# ----------------
def test_epochs_per_sample_at_least_one():
    weights = np.random.uniform(0.0, 1.0, size=500)
    weights[::7] = 0.0
    result = make_epochs_per_sample(weights, 200)
    assert np.all(result[weights > 0] >= 1.0)
    assert np.all(result[weights == 0] == -1.0)
    assert_allclose(result[weights > 0], weights.max() / weights[weights > 0])


def test_epochs_per_sample_heaviest_every_epoch():
    result = make_epochs_per_sample(np.array([0.5, 1.0, 0.25]), 100)
    assert_allclose(result, [2.0, 1.0, 4.0])


def test_epochs_per_sample_degenerate():
    assert make_epochs_per_sample(np.zeros(0), 10).shape == (0,)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert_array_equal(make_epochs_per_sample(np.zeros(3), 10), [-1.0] * 3)


def test_default_n_epochs():
    assert default_n_epochs(10) == 500
    assert default_n_epochs(10000) == 500
    assert default_n_epochs(10001) == 200


# Pruning
# -------
def test_prune_weak_edge():
    graph = scipy.sparse.coo_matrix(
        ([100.0, 0.0001], ([0, 1], [1, 2])), shape=(3, 3)
    )
    pruned = prune_graph(graph, 10)
    assert pruned.nnz == 1
    assert (pruned.row[0], pruned.col[0]) == (0, 1)
    epochs_per_sample = make_epochs_per_sample(pruned.data, 10)
    assert epochs_per_sample.shape == (1,)
    assert epochs_per_sample[0] == pytest.approx(1.0)
    # the input graph is left alone
    assert graph.nnz == 2


def test_prune_sums_duplicates():
    graph = scipy.sparse.coo_matrix(
        ([0.06, 0.06, 1.0], ([0, 0, 1], [1, 1, 2])), shape=(3, 3)
    )
    pruned = prune_graph(graph, 10)
    assert pruned.nnz == 2
    assert_allclose(sorted(pruned.data), [0.12, 1.0])


# Launching
# ---------
def test_chain_layout(chain_graph, square_embedding):
    embedding = simplicial_set_embedding(
        chain_graph,
        square_embedding,
        A,
        B,
        1.0,
        1.0,
        5,
        n_epochs=50,
        random_state=42,
    )
    assert embedding is square_embedding
    assert np.all(np.isfinite(embedding))
    connected = np.mean([_pairwise(embedding, i, i + 1) for i in range(3)])
    assert connected < _pairwise(embedding, 0, 3)


def test_embedding_reproducible(random_graph, random_embedding):
    results = []
    for _ in range(2):
        embedding = random_embedding.copy()
        simplicial_set_embedding(
            random_graph, embedding, A, B, 1.0, 1.0, 5, n_epochs=25, random_state=7
        )
        results.append(embedding)
    assert_array_equal(results[0], results[1])


def test_embedding_callback(random_graph, random_embedding):
    calls = []
    simplicial_set_embedding(
        random_graph,
        random_embedding,
        A,
        B,
        1.0,
        1.0,
        5,
        n_epochs=15,
        random_state=0,
        callback=lambda embedding: calls.append(embedding.shape),
    )
    assert calls == [random_embedding.shape] * 15


def test_embedding_leaves_graph_alone(random_graph, random_embedding):
    data = random_graph.data.copy()
    simplicial_set_embedding(
        random_graph, random_embedding, A, B, 1.0, 1.0, 5, n_epochs=3, random_state=0
    )
    assert_array_equal(random_graph.data, data)


def test_empty_graph_warns(random_embedding):
    graph = scipy.sparse.coo_matrix(
        ([0.0, 0.0], ([0, 1], [1, 0])), shape=(40, 40)
    )
    embedding = random_embedding.copy()
    with pytest.warns(UserWarning):
        simplicial_set_embedding(
            graph, embedding, A, B, 1.0, 1.0, 5, n_epochs=10, random_state=0
        )
    assert_array_equal(embedding, random_embedding)


def test_verbose_prints_schedule(chain_graph, square_embedding, capsys):
    simplicial_set_embedding(
        chain_graph,
        square_embedding,
        A,
        B,
        1.0,
        1.0,
        5,
        n_epochs=5,
        random_state=0,
        verbose=True,
        tqdm_kwds={"disable": True},
    )
    assert "epochs_per_sample" in capsys.readouterr().out


def test_transform_keeps_reference(random_graph, random_embedding, transform_graph):
    reference = random_embedding.copy()
    embedding = np.ascontiguousarray(
        init_graph_transform(transform_graph, reference), dtype=np.float32
    )
    result = simplicial_set_transform(
        transform_graph,
        embedding,
        reference,
        A,
        B,
        1.0,
        0.25,
        5,
        n_epochs=20,
        random_state=0,
    )
    assert_array_equal(reference, random_embedding)
    assert result.shape == (3, 2)
    assert np.all(np.isfinite(result[:2]))
    assert np.all(np.isnan(result[2]))


def test_init_graph_transform():
    embedding = np.array([[0.0, 0.0], [2.0, 4.0], [9.0, 9.0]], dtype=np.float32)
    graph = scipy.sparse.csr_matrix(
        np.array([[0.5, 0.5, 0.0], [0.0, 0.0, 1.0], [0.0, 0.0, 0.0]])
    )
    result = init_graph_transform(graph, embedding)
    assert_allclose(result[0], [1.0, 2.0])
    assert_allclose(result[1], [9.0, 9.0])
    assert np.all(np.isnan(result[2]))


def test_find_ab_params():
    a, b = find_ab_params(1.0, 0.1)
    assert a == pytest.approx(1.577, rel=1e-2)
    assert b == pytest.approx(0.895, rel=1e-2)


# Spectral initialisation
# -----------------------
def test_spectral_layout_ring(ring_graph):
    embedding = spectral_layout(ring_graph, 2, np.random.RandomState(0))
    assert embedding.shape == (30, 2)
    assert np.all(np.isfinite(embedding))


def test_spectral_layout_disconnected_falls_back(two_cliques_graph):
    with pytest.warns(UserWarning):
        embedding = spectral_layout(two_cliques_graph, 2, np.random.RandomState(0))
    assert embedding.shape == (20, 2)
    assert np.all(np.abs(embedding) <= 10.0)


# The estimator
# -------------
def test_two_cliques_separate(two_cliques_graph):
    embedding = SimplicialSetEmbedding(
        init="random", n_epochs=100, random_state=42
    ).fit_transform(two_cliques_graph)
    assert embedding.shape == (20, 2)
    first, second = embedding[:10], embedding[10:]
    spread = max(
        np.linalg.norm(first - first.mean(axis=0), axis=1).mean(),
        np.linalg.norm(second - second.mean(axis=0), axis=1).mean(),
    )
    assert np.linalg.norm(first.mean(axis=0) - second.mean(axis=0)) > spread


def test_estimator_spectral_init(ring_graph):
    model = SimplicialSetEmbedding(n_epochs=50, random_state=1).fit(ring_graph)
    assert model.embedding_.shape == (30, 2)
    assert model.embedding_.dtype == np.float32
    assert np.all(np.isfinite(model.embedding_))
    assert model.graph_.shape == (30, 30)


def test_estimator_array_init(chain_graph, square_embedding):
    model = SimplicialSetEmbedding(
        init=square_embedding, n_epochs=20, random_state=3
    ).fit(chain_graph)
    assert model.embedding_.shape == (4, 2)
    # the init array is copied, not optimized in place
    assert model.embedding_ is not square_embedding


def test_estimator_reproducible(random_graph):
    first = SimplicialSetEmbedding(
        init="random", n_epochs=30, random_state=11
    ).fit_transform(random_graph)
    second = SimplicialSetEmbedding(
        init="random", n_epochs=30, random_state=11
    ).fit_transform(random_graph)
    assert_array_equal(first, second)


def test_estimator_transform(random_graph, transform_graph):
    model = SimplicialSetEmbedding(init="random", n_epochs=30, random_state=5)
    model.fit(random_graph)
    fitted = model.embedding_.copy()
    result = model.transform(transform_graph)
    assert result.shape == (3, 2)
    assert np.all(np.isfinite(result[:2]))
    assert np.all(np.isnan(result[2]))
    assert_array_equal(model.embedding_, fitted)


def test_estimator_transform_before_fit(transform_graph):
    with pytest.raises(NotFittedError):
        SimplicialSetEmbedding().transform(transform_graph)


def test_estimator_restores_threads(chain_graph):
    import numba

    n_threads = numba.get_num_threads()
    SimplicialSetEmbedding(init="random", n_epochs=5, n_jobs=1, random_state=0).fit(
        chain_graph
    )
    assert numba.get_num_threads() == n_threads


def test_estimator_restores_threads_on_bad_random_state(chain_graph):
    import numba

    n_threads = numba.get_num_threads()
    with pytest.raises(ValueError):
        SimplicialSetEmbedding(
            init="random", n_epochs=5, n_jobs=1, random_state="bad"
        ).fit(chain_graph)
    assert numba.get_num_threads() == n_threads


def test_estimator_transform_callback(random_graph, transform_graph):
    calls = []
    model = SimplicialSetEmbedding(
        init="random",
        n_epochs=30,
        random_state=5,
        callback=lambda embedding: calls.append(embedding.shape),
    )
    model.fit(random_graph)
    assert calls == [(40, 2)] * 30
    del calls[:]
    model.transform(transform_graph)
    assert calls == [(3, 2)] * 10
