"""Docker-API-compatible container service core with an in-memory store and a pluggable backend."""

__version__ = "0.1.0"