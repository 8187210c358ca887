"""Tests for PluginManager registration, hook precedence, and local discovery."""

from __future__ import annotations

from pathlib import Path

import pluggy

from entitlectl.plugins.builtins.artifacts import FileArtifactPlugin
from entitlectl.plugins.builtins.notifier import LogNotifierPlugin
from entitlectl.plugins.manager import PluginManager

hookimpl = pluggy.HookimplMarker("entitlectl")

# -- Plugin source code used in tests ------------------------------------------

_VALID_PLUGIN_SRC = """\
import pluggy

hookimpl = pluggy.HookimplMarker("entitlectl")


class PdfArtifactPlugin:
    \"\"\"A minimal local artifact plugin.\"\"\"

    @hookimpl
    def generate_artifact(self, subject_id: str, public_link: str) -> str | None:
        return f"pdf://{subject_id}"
"""

_SYNTAX_ERROR_SRC = """\
def broken(
    # missing closing paren and colon
"""

_NO_HOOKS_SRC = """\
class PlainClass:
    def hello(self) -> str:
        return "world"
"""


class _StubArtifacts:
    @hookimpl
    def generate_artifact(self, subject_id: str, public_link: str) -> str | None:
        return f"stub://{subject_id}"


class _Abstaining:
    @hookimpl
    def generate_artifact(self, subject_id: str, public_link: str) -> str | None:
        return None


class TestRegistration:
    def test_register_and_list(self) -> None:
        pm = PluginManager()
        pm.register_plugin(_StubArtifacts(), name="stub")
        assert pm.list_plugin_names() == ["stub"]

    def test_unregister(self) -> None:
        pm = PluginManager()
        plugin = _StubArtifacts()
        pm.register_plugin(plugin, name="stub")
        pm.unregister(plugin)
        assert pm.list_plugin_names() == []

    def test_not_loaded_until_discovery(self, tmp_path: Path) -> None:
        pm = PluginManager()
        assert not pm.is_loaded
        pm.discover_and_load(local_dir=tmp_path / "missing")
        assert pm.is_loaded


class TestHookPrecedence:
    def test_installed_plugin_beats_builtin(self, tmp_path: Path) -> None:
        pm = PluginManager()
        pm.register_plugin(FileArtifactPlugin(tmp_path), name="file-artifacts-builtin")
        pm.register_plugin(_StubArtifacts(), name="stub")

        ref = pm.hook.generate_artifact(subject_id="sub_1", public_link="https://x/1")

        assert ref == "stub://sub_1"
        assert not (tmp_path / "sub_1.txt").exists()

    def test_none_falls_through_to_builtin(self, tmp_path: Path) -> None:
        pm = PluginManager()
        pm.register_plugin(FileArtifactPlugin(tmp_path), name="file-artifacts-builtin")
        pm.register_plugin(_Abstaining(), name="abstain")

        ref = pm.hook.generate_artifact(subject_id="sub_1", public_link="https://x/1")

        assert ref == str(tmp_path / "sub_1.txt")

    def test_no_implementation_returns_none(self) -> None:
        pm = PluginManager()
        assert pm.hook.generate_artifact(subject_id="sub_1", public_link="x") is None

    def test_log_notifier_reports_sent(self) -> None:
        pm = PluginManager()
        pm.register_plugin(LogNotifierPlugin(), name="log-notifier-builtin")
        sent = pm.hook.send_notification(
            recipient="o@example.com", public_link="https://x/1", artifact_ref="ref"
        )
        assert sent is True


class TestLocalDiscovery:
    def test_loads_valid_plugin(self, tmp_path: Path) -> None:
        (tmp_path / "pdf_artifacts.py").write_text(_VALID_PLUGIN_SRC)
        pm = PluginManager()

        names = pm.discover_and_load(local_dir=tmp_path)

        assert "entitlectl_local_plugin_pdf_artifacts" in names
        assert pm.hook.generate_artifact(subject_id="s", public_link="l") == "pdf://s"

    def test_broken_and_plain_files_are_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "broken.py").write_text(_SYNTAX_ERROR_SRC)
        (tmp_path / "plain.py").write_text(_NO_HOOKS_SRC)
        (tmp_path / "_private.py").write_text(_VALID_PLUGIN_SRC)
        pm = PluginManager()

        names = pm.discover_and_load(local_dir=tmp_path)

        assert not any(n.startswith("entitlectl_local_plugin_") for n in names)
