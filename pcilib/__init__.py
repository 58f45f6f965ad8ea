"""PCI configuration space access, capabilities, filters, bus dumps and ID name hashing."""

__version__ = "3.8.0"
__all__ = ["access", "caps", "generic", "filter", "emulated", "dump", "names", "methods", "options", "example"]