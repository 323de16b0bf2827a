"""
Test suite for the propel training engine.

Run all tests:
    pytest tests/ -v

Run specific test suites:
    pytest tests/test_controller.py -v     # Controller lifecycle and determinism
    pytest tests/test_continuation.py -v   # Pause/resume
    pytest tests/test_strategies.py -v     # Strategy chain

Run with markers:
    pytest -m "not torch" -v   # Skip the torch adapter tests
"""
