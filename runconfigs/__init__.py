"""Run/debug configuration editor for launch.json and tasks.json."""

__version__ = "1.0.0"
