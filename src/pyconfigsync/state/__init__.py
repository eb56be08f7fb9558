"""State layer.

Holds the in-memory config mapping that flushes and external reloads are
reconciled against.
"""
