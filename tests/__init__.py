"""
OrgTrust Test Suite
===================

Test organization:
- tests/unit/              - Shared clients, codecs and the mock ledger
- tests/services/<name>/   - Service behavior against the mock ledger

Run tests:
    pytest                          # All tests
    pytest tests/unit               # Unit tests only
    pytest tests/services/accounts  # One service
"""
