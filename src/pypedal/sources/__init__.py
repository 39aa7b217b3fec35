"""Signal sources.

Adapters that produce raw readings (serial pedal board, synthetic
generator) and emit them as :class:`~pypedal.state.events.RawReadingEvent`
to whoever is subscribed.
"""

__all__: list[str] = []
