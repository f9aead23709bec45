"""
Benefit and commission settlement core.

Derives day-indexed payout schedules from confirmed purchases and settles
them against an external ledger through an idempotent sweep.
"""
