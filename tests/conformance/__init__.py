"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the stable engine.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. solvency.py - No operation leaves an account it touched undercollateralized
2. atomicity.py - All-or-nothing operation semantics
3. conversions.py - USD/asset conversions round-trip within one unit
4. zero_effect.py - Deposit then redeem restores every balance
5. liquidation_properties.py - Liquidation strictly improves the target

These tests use hypothesis for property-based testing.
"""
