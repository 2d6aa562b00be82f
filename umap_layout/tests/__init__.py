"""
Test Suite for umap_layout to ensure things are working as expected.

Backend
-------
pytest is the reference backend for testing environment and execution.

Fixtures
--------
All data dependency has been implemented
as test fixtures (preferred to shared global variables).
All the fixtures shared by multiple test cases
are defined in the `conftest.py` module.

Modules in Tests (to keep up to date)
-------------------------------------
- conftest: pytest fixtures
- test_layouts: gradient model, single epoch updates and the layout driver
- test_sampler: the Philox counter based negative sampler
- test_umap_ops: epoch scheduling, pruning and end to end layouts
- test_umap_validation_params: parameter validation

"""
