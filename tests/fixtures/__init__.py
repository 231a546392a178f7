"""Test fixtures for pool, strategy and EVM testing."""
