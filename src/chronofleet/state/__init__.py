"""State/store layer.

The single place where position samples and status transitions are
merged into a per-driver view.
"""
