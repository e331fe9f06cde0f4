"""Tests package for the scheduled buyback engine.

Covers the eligibility gate, routing arithmetic, the orchestrator and its
collaborators, configuration handling and the treasury simulation. Tests are
plain functions so they run with tests/run_tests.py or pytest.
"""
