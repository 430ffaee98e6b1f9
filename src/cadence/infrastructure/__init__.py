from .plugin_data import JsonBuriedStore, PluginData
from .vault import FileSystemVault

__all__ = ["FileSystemVault", "JsonBuriedStore", "PluginData"]
