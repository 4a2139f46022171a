"""Core mathematics and configuration for the College Edge pipeline.

This package contains pure, sport-agnostic building blocks:

- ``sport_config``: per-sport constants (Elo K, home field, edge floors)
- ``odds_math``: American odds conversion, payouts, vig removal
- ``elo``: expected score, margin multiplier, zero-sum update
- ``opponent_adjustment``: PPA opponent adjustment and the blended update
- ``projection``: model spread/total, edge sign rule, confidence tiers
- ``lines``: opening/closing market-line tick selection
- ``grading``: the single cover rule, profit, CLV, summaries
- ``batch``: per-run summary object returned by every job

Nothing in this package imports from ``college_edge.services`` or
``college_edge.models``.  All modules are side-effect-free and unit-testable
in isolation.
"""
