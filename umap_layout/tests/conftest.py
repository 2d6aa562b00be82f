# ===========================
#  Testing (session) Fixture
# ==========================

import pytest
import numpy as np
import scipy.sparse

# Globals, used for all the tests
SEED = 189212  # 0b101110001100011100
np.random.seed(SEED)


def symmetric_graph(rows, cols, vals, n_vertices):
    graph = scipy.sparse.coo_matrix((vals, (rows, cols)), shape=(n_vertices, n_vertices))
    return (graph + graph.T).tocoo()


# Small Graphs
# ------------
@pytest.fixture(scope="session")
def chain_graph():
    # 0 - 1 - 2 - 3, as a symmetric fuzzy simplicial set
    return symmetric_graph([0, 1, 2], [1, 2, 3], [1.0, 1.0, 1.0], 4)


@pytest.fixture
def square_embedding():
    random_state = np.random.RandomState(SEED)
    square = np.array([[0.0, 0.0], [0.0, 1.0], [1.0, 1.0], [1.0, 0.0]])
    jitter = random_state.normal(scale=0.05, size=square.shape)
    return np.ascontiguousarray(square + jitter, dtype=np.float32)


@pytest.fixture(scope="session")
def random_graph():
    graph = scipy.sparse.random(
        40, 40, density=0.15, random_state=SEED, format="coo"
    )
    graph = (graph + graph.T).tocoo()
    off_diagonal = graph.row != graph.col
    return scipy.sparse.coo_matrix(
        (graph.data[off_diagonal], (graph.row[off_diagonal], graph.col[off_diagonal])),
        shape=graph.shape,
    )


@pytest.fixture
def random_embedding(random_graph):
    random_state = np.random.RandomState(SEED)
    return random_state.uniform(
        low=0.0, high=10.0, size=(random_graph.shape[0], 2)
    ).astype(np.float32)


# Graphs With Structure
# ---------------------
@pytest.fixture(scope="session")
def two_cliques_graph():
    # Two disconnected cliques of ten vertices each
    rows = []
    cols = []
    for offset in (0, 10):
        for i in range(10):
            for j in range(10):
                if i != j:
                    rows.append(offset + i)
                    cols.append(offset + j)
    vals = np.ones(len(rows))
    return scipy.sparse.coo_matrix((vals, (rows, cols)), shape=(20, 20))


@pytest.fixture(scope="session")
def ring_graph():
    n_vertices = 30
    rows = np.arange(n_vertices)
    cols = (rows + 1) % n_vertices
    return symmetric_graph(rows, cols, np.ones(n_vertices), n_vertices)


@pytest.fixture(scope="session")
def transform_graph():
    # Three new points joined to vertices of random_graph; the last one has
    # no 1-simplices at all.
    rows = [0, 0, 0, 1, 1]
    cols = [0, 1, 2, 10, 11]
    vals = [0.5, 0.8, 0.3, 0.9, 0.6]
    return scipy.sparse.coo_matrix((vals, (rows, cols)), shape=(3, 40))
