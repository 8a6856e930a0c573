"""Gaugewatch - operator dashboard with a multi-camera gauge reading grid."""

__version__ = "0.1.0"
