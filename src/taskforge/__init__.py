"""Route development tasks to external AI coding CLIs."""

__version__ = "0.1.0"
