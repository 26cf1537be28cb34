"""Webhook protector: hides Discord webhook URLs behind opaque ids."""

__version__ = "1.0.0"
