"""Wellness sync infrastructure.

Modules:
    engine - One sync pass: fan-out fetch, reconcile, store (non-reentrant)
    dedup  - Interval union and repeated-record removal
"""
