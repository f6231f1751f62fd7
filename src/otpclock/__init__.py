"""otpclock — network-synchronized TOTP code display."""

__version__ = "0.1.0"
