"""meshgate - bridge local devices to a Meshblu cloud registry."""

__version__ = "0.1.0"
__logo__ = "📡"
