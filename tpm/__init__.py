"""tpm - command-line front end of the Trellis plugin manager."""

__all__ = []
