"""showrelay: publish recorded radio shows to several platforms and archive them."""

__version__ = "0.1.0"
