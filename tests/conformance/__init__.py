"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - A failed operation leaves no observable trace
2. solvency.py - Ledger totals, token holdings and health after every operation
3. monotonicity.py - Health factor ordering and the zero-debt boundary
4. reentrancy.py - One state-changing operation at a time

These tests use hypothesis for property-based testing.
"""
