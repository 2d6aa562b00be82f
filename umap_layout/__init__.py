from .umap_ import (
    SimplicialSetEmbedding,
    simplicial_set_embedding,
    simplicial_set_transform,
    make_epochs_per_sample,
    find_ab_params,
)
from .layouts import optimize_layout_euclidean, LayoutDispatchError

# Workaround: https://github.com/numba/numba/issues/3341
import numba

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("umap-layout")
except PackageNotFoundError:
    __version__ = "0.1-dev"
