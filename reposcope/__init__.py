"""reposcope: static repository analysis engine."""

__version__ = "0.3.0"
