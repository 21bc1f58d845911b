"""HTTP backend for a gamified task, skill and coaching-chat tracker."""

__version__ = "0.1.0"