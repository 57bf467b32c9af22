"""
dirauth Test Suite

Test organization:
- unit/: Unit tests for individual modules
- property/: Property-based tests using Hypothesis
- integration/: Directory integration tests (requires a real LDAP server)
"""
