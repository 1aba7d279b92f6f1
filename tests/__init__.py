"""
Test Suite for Portfolio Rolling Statistics

Includes:
- Unit tests for calculations (analysis/tests)
- Integration tests for ingestion and pipeline jobs
"""
