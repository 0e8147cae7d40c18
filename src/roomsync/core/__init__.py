"""Primitives shared by every layer: encoding, errors, IDs, signals, timers."""
