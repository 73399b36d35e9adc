"""
DirAuth Test Suite

Test organization:
- unit/: Unit tests for individual modules
- property/: Property-based tests using Hypothesis
- data/: LDIF fixtures for the in-memory directory
"""
