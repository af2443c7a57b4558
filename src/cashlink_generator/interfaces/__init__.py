"""Protocol interfaces for cashlink_generator components."""

from cashlink_generator.interfaces.node import NodeClient

__all__ = ["NodeClient"]
