"""Persistence of cashlink batches."""

from cashlink_generator.storage.files import export_cashlinks, import_cashlinks

__all__ = ["export_cashlinks", "import_cashlinks"]
