"""
Test Suite for seisnear

This package contains unit tests and integration tests for:
- KD-tree construction and extent search
- Adaptive-radius nearest matching and batch assignment
- Ordered key table and key stacking

Run tests with: pytest -v
"""
