"""
Pacing engine test suite.

Test modules:
- test_schedule: Planning record normalisation
- test_expected: Expected-to-date (per burst and month bucket)
- test_classification: Pace band and deliverable metric mapping
- test_windows: Window clamping, presets and the business clock
- test_delivery_gateway: Warehouse fetch, retry, deadline, cancel, truncation
- test_rollup: Campaign / client / portfolio roll-ups
- test_plans: Media plan reader over a patched asyncpg seam
- test_pacing_pipeline: Pipeline entry points
- test_core: Cache, retry and error taxonomy
- test_api: FastAPI router through TestClient

Running:
    pip install -e ".[test]"
    pytest
    pytest -m "not slow"
"""
