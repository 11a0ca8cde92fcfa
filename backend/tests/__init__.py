"""
Test suite for the disaster response hub backend.

This package contains:
- test_api.py: End-to-end API tests through the Flask test client
- test_store.py, test_resource_index.py: In-memory store and proximity search
- test_cache_manager.py, test_broadcaster.py: Expiring cache and live update fan-out
- test_location_extractor.py: AI -> heuristics location fallback chain
- test_*_service.py: External provider wrappers (all network calls mocked)

Run tests:
    pip install -e ".[test]"
    python -m pytest
"""
