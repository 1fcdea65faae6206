"""Provider endpoint modules (directions, legacy directions, geocoding).

Internal to chronofleet and may change at any time.
"""
