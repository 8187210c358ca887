"""Collaborator layer — artifact generation and notification via pluggy.

Discovery: entry_points (pip-installed) via pluggy setuptools entrypoints,
plus built-in collaborators registered by the Store.
"""

from entitlectl.plugins.manager import PluginManager

__all__ = ["PluginManager"]
