"""Unit tests for deploy artifact rendering."""

from __future__ import annotations

import ast
import os
import stat
import zipfile
from pathlib import Path

import pytest

from holdfast.deploy.artifact import RUNTIME_MODULES, render_main, write_artifact
from holdfast.models.plan import DeploymentPlan
from holdfast.runtime.plan import RuntimePlan


def _plan(**overrides: object) -> DeploymentPlan:
    values: dict[str, object] = {
        "version": "v1",
        "workdir": "/srv/app",
        "project_name": "app",
        "probe_target": "web",
        "services": ["web"],
        "definition": "name: app\nservices:\n  web:\n    image: nginx:1.27\n",
    }
    values.update(overrides)
    return DeploymentPlan(**values)


def _plan_literal(source: str) -> str:
    tree = ast.parse(source)
    for node in tree.body:
        if isinstance(node, ast.Assign) and node.targets[0].id == "PLAN":
            return ast.literal_eval(node.value)
    raise AssertionError("PLAN assignment not found")


class TestRenderMain:
    """Tests for the generated __main__.py."""

    def test_renders_valid_python(self) -> None:
        source = render_main(_plan())

        compile(source, "__main__.py", "exec")
        assert "from holdfast.runtime.entrypoint import main" in source
        assert "sys.exit(main(PLAN))" in source

    def test_plan_round_trips(self) -> None:
        plan = _plan()

        embedded = _plan_literal(render_main(plan))

        assert RuntimePlan.from_json(embedded) == plan.to_runtime()

    def test_hostile_definition_stays_in_literal(self) -> None:
        """Quotes, newlines and template syntax cannot escape the literal."""
        definition = (
            'name: app\nservices:\n  web:\n    image: "x"\n'
            "    command: '\"\"\"; import os; os.system(\"id\") #'\n"
            "    labels: ['{{ 7*7 }}', '{% raw %}', \"\\\\n\"]\n"
        )
        plan = _plan(definition=definition)

        source = render_main(plan)
        tree = ast.parse(source)

        assert RuntimePlan.from_json(_plan_literal(source)).definition == definition
        imports = [
            node for node in ast.walk(tree) if isinstance(node, (ast.Import, ast.ImportFrom))
        ]
        assert len(imports) == 2

    def test_header_comments(self) -> None:
        source = render_main(_plan(version="2026.01.15"))

        assert "# Release:   2026.01.15" in source


class TestWriteArtifact:
    """Tests for write_artifact()."""

    def test_writes_executable_zipapp(self) -> None:
        result = write_artifact(_plan())
        try:
            assert result.path.name.startswith("deploy.")
            assert result.path.suffix == ".pyz"
            assert result.path.stat().st_mode & stat.S_IXUSR
            assert result.size == result.path.stat().st_size
            assert result.path.read_bytes().startswith(b"#!/usr/bin/env python3\n")

            with zipfile.ZipFile(result.path) as archive:
                names = set(archive.namelist())
            assert "__main__.py" in names
            for module in RUNTIME_MODULES:
                assert f"holdfast/{module}" in names
        finally:
            os.unlink(result.path)

    def test_bundled_modules_use_stdlib_only(self) -> None:
        """Bundled runtime modules import nothing outside holdfast and stdlib."""
        import sys

        import holdfast

        root = Path(holdfast.__file__).parent
        for module in RUNTIME_MODULES:
            tree = ast.parse((root / module).read_text(encoding="utf-8"))
            for node in ast.walk(tree):
                if isinstance(node, ast.Import):
                    names = [alias.name for alias in node.names]
                elif isinstance(node, ast.ImportFrom) and node.level == 0:
                    names = [node.module or ""]
                else:
                    continue
                for name in names:
                    top = name.split(".")[0]
                    assert top == "holdfast" or top in sys.stdlib_module_names, (
                        f"{module} imports {name}"
                    )

    def test_explicit_output(self, tmp_path: Path) -> None:
        output = tmp_path / "out" / "deploy-v1.pyz"

        result = write_artifact(_plan(), output)

        assert result.path == output
        assert output.is_file()
        assert result.version == "v1"

    def test_bundled_runtime_modules_listed(self) -> None:
        """Every runtime module is bundled."""
        import holdfast

        runtime_dir = Path(holdfast.__file__).parent / "runtime"
        bundled = {m for m in RUNTIME_MODULES if m.startswith("runtime/")}

        for path in runtime_dir.glob("*.py"):
            assert f"runtime/{path.name}" in bundled

    @pytest.mark.parametrize("version", ["v1", "release-2026.01.15"])
    def test_version_recorded(self, version: str, tmp_path: Path) -> None:
        result = write_artifact(_plan(version=version), tmp_path / "a.pyz")

        assert result.version == version
