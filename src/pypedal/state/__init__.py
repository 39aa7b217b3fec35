"""State/store layer.

Single source of truth for the current calibrated brake snapshot. Every
signal source (serial board, simulator, manual injection) converts its
input into a :class:`~pypedal.state.events.RawReadingEvent`; only the store
turns those into snapshots.
"""
