"""Timer coordination engine for the Orasan time tracker."""

__version__ = "0.1.0"
