"""A fake Bitcoin Core JSON-RPC server with in-memory chain and wallet state for tests."""

__version__ = "0.1.0"

__all__ = ["handle", "primitives", "server", "state"]