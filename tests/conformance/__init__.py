"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the lending engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - All-or-nothing operations, including custody failures
2. solvency.py - Non-negative balances, borrow capping, liquidation threshold
3. interest.py - Settlement split tolerance, dormant positions
4. custody.py - Custodied totals match holdings plus reserves
5. determinism.py - Identical operation sequences give identical records

These tests use hypothesis for property-based testing.
"""
