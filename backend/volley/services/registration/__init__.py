"""Registration domain services: time windows, roster invariants, priority
ordering and the per-participant lifecycle.

Everything in this package except ``persistence`` and ``notifications`` is
pure and works on immutable roster snapshots, so HTTP routes can load a
snapshot inside a transaction, decide, and write back the difference.
"""
