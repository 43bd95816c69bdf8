"""Xbox 360 executable loading, delta patching, XDBF parsing and guest data layouts."""

__version__ = "0.1.0"