"""Web control panel for switching the active WireGuard tunnel configuration."""

__version__ = "1.0.0"
