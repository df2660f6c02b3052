"""KCP transport, JSON API routing, key-value storage and a UART-to-TCP bridge."""

__version__ = "0.1.0"