"""Tests for compose fragment loading and merging."""

from collections.abc import Callable
from pathlib import Path

import pytest
import yaml

from holdfast.config.loader import (
    ComposeLoader,
    merge_documents,
    normalize_project_name,
)
from holdfast.lib.errors import ConfigError, FileNotFoundError

BASE = """
services:
  web:
    image: registry.example.com/web:${TAG:-latest}
    ports:
      - "80:80"
    environment:
      - LOG_LEVEL=info
      - FEATURE_X=off
    healthcheck:
      test: ["CMD", "curl", "-f", "http://localhost/health"]
  worker:
    image: registry.example.com/worker:latest
"""

OVERRIDE = """
services:
  web:
    ports:
      - "80:80"
      - "443:443"
    environment:
      FEATURE_X: "on"
    command: ["serve", "--prod"]
"""


class TestMergeDocuments:
    """Tests for merge_documents()."""

    def test_mappings_merge_recursively(self) -> None:
        base = {"services": {"web": {"image": "a", "restart": "always"}}}

        merge_documents(base, {"services": {"web": {"image": "b"}, "db": {}}})

        assert base == {
            "services": {"web": {"image": "b", "restart": "always"}, "db": {}}
        }

    def test_environment_lists_become_mappings(self) -> None:
        base = {"environment": ["A=1", "B=2", "FLAG"]}

        merge_documents(base, {"environment": {"B": "3"}})

        assert base == {"environment": {"A": "1", "B": "3", "FLAG": None}}

    def test_merged_sequences_are_concatenated(self) -> None:
        base = {"ports": ["80:80"], "volumes": ["data:/data"]}

        merge_documents(base, {"ports": ["80:80", "443:443"], "volumes": ["logs:/logs"]})

        assert base["ports"] == ["80:80", "443:443"]
        assert base["volumes"] == ["data:/data", "logs:/logs"]

    def test_other_sequences_are_replaced(self) -> None:
        base = {"command": ["serve"], "entrypoint": ["/init"]}

        merge_documents(base, {"command": ["serve", "--prod"]})

        assert base == {"command": ["serve", "--prod"], "entrypoint": ["/init"]}


class TestNormalizeProjectName:
    """Tests for project name normalization."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("My App", "myapp"), ("shop_api-2", "shop_api-2"), ("-_edge", "edge")],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_project_name(raw) == expected


class TestComposeLoader:
    """Tests for ComposeLoader.load()."""

    def test_merges_fragments_in_order(
        self, write_compose: Callable[..., Path]
    ) -> None:
        base = write_compose(BASE)
        override = write_compose(OVERRIDE, "compose.prod.yml")

        definition = ComposeLoader(environ={"TAG": "1.4"}).load([base, override])

        web = definition.services["web"]
        assert web["image"] == "registry.example.com/web:1.4"
        assert web["ports"] == ["80:80", "443:443"]
        assert web["environment"] == {"LOG_LEVEL": "info", "FEATURE_X": "on"}
        assert web["command"] == ["serve", "--prod"]
        assert definition.service_names == ["web", "worker"]
        assert definition.sources == [base, override]

    def test_project_name_from_directory(
        self, write_compose: Callable[..., Path], tmp_path: Path
    ) -> None:
        path = write_compose(BASE, "My Shop/compose.yml")

        definition = ComposeLoader(environ={}).load([path])

        assert definition.project_name == "myshop"

    def test_project_name_precedence(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("name: from-file\n" + BASE)
        loader = ComposeLoader(environ={})

        assert loader.load([path]).project_name == "from-file"
        assert loader.load([path], project_name="Override").project_name == "override"

    def test_name_is_first_in_yaml(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose(BASE)

        rendered = ComposeLoader(environ={}).load([path], "app").to_yaml()

        assert rendered.startswith("name: app\n")
        assert yaml.safe_load(rendered)["services"]["worker"]["image"].endswith(
            "worker:latest"
        )

    def test_reads_dotenv_next_to_first_fragment(
        self,
        write_compose: Callable[..., Path],
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("TAG", raising=False)
        path = write_compose(BASE)
        (tmp_path / ".env").write_text("TAG=from-dotenv\n", encoding="utf-8")

        definition = ComposeLoader().load([path])

        assert definition.services["web"]["image"].endswith(":from-dotenv")

    def test_missing_fragment(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ComposeLoader(environ={}).load([tmp_path / "absent.yml"])

    def test_no_fragments(self) -> None:
        with pytest.raises(ConfigError, match="At least one compose file"):
            ComposeLoader(environ={}).load([])

    def test_no_services(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("volumes:\n  data: {}\n")

        with pytest.raises(ConfigError, match="No services defined"):
            ComposeLoader(environ={}).load([path])

    def test_not_a_mapping(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("- just\n- a list\n")

        with pytest.raises(ConfigError, match="YAML mapping"):
            ComposeLoader(environ={}).load([path])

    def test_invalid_yaml(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("services: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            ComposeLoader(environ={}).load([path])

    def test_unset_variable_fails(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("services:\n  web:\n    image: app:${TAG}\n")

        with pytest.raises(ConfigError, match="TAG"):
            ComposeLoader(environ={}).load([path])

    def test_variables_take_precedence(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("services:\n  web:\n    image: app:${VERSION}\n")

        definition = ComposeLoader(environ={"VERSION": "stale"}).load(
            [path], variables={"VERSION": "v2"}
        )

        assert definition.services["web"]["image"] == "app:v2"


class TestSelfContainedDefinition:
    """The resolved definition must not depend on files next to the fragments."""

    def test_relative_bind_mounts_become_absolute(
        self, write_compose: Callable[..., Path], tmp_path: Path
    ) -> None:
        path = write_compose(
            """
services:
  web:
    image: nginx
    volumes:
      - ./data:/data
      - ../shared:/shared:ro
      - cache:/cache
      - /var/log:/logs
      - type: bind
        source: ./static
        target: /static
"""
        )

        web = ComposeLoader(environ={}).load([path]).services["web"]

        assert web["volumes"][:4] == [
            f"{tmp_path / 'data'}:/data",
            f"{tmp_path.parent / 'shared'}:/shared:ro",
            "cache:/cache",
            "/var/log:/logs",
        ]
        assert web["volumes"][4]["source"] == str(tmp_path / "static")

    def test_build_context_becomes_absolute(
        self, write_compose: Callable[..., Path], tmp_path: Path
    ) -> None:
        path = write_compose(
            """
services:
  web:
    build: ./web
  worker:
    build:
      context: ./worker
      dockerfile: Dockerfile.prod
  remote:
    build: https://github.com/example/app.git
"""
        )

        services = ComposeLoader(environ={}).load([path]).services

        assert services["web"]["build"] == str(tmp_path / "web")
        assert services["worker"]["build"] == {
            "context": str(tmp_path / "worker"),
            "dockerfile": "Dockerfile.prod",
        }
        assert services["remote"]["build"] == "https://github.com/example/app.git"

    def test_override_paths_are_relative_to_first_fragment(
        self, write_compose: Callable[..., Path], tmp_path: Path
    ) -> None:
        base = write_compose("services:\n  web:\n    image: nginx\n")
        override = write_compose(
            "services:\n  web:\n    volumes:\n      - ./conf:/etc/nginx/conf.d\n",
            "overrides/prod.yml",
        )

        web = ComposeLoader(environ={}).load([base, override]).services["web"]

        assert web["volumes"] == [f"{tmp_path / 'conf'}:/etc/nginx/conf.d"]

    def test_env_file_is_inlined(
        self, write_compose: Callable[..., Path], tmp_path: Path
    ) -> None:
        (tmp_path / "app.env").write_text(
            "DB_HOST=db\nLOG_LEVEL=debug\nSECRET='a$b'\n", encoding="utf-8"
        )
        path = write_compose(
            """
services:
  web:
    image: nginx
    env_file: ./app.env
    environment:
      LOG_LEVEL: info
"""
        )

        definition = ComposeLoader(environ={}).load([path])

        web = definition.services["web"]
        assert "env_file" not in web
        assert web["environment"] == {
            "DB_HOST": "db",
            "LOG_LEVEL": "info",
            "SECRET": "a$b",
        }
        assert "app.env" not in definition.to_yaml()

    def test_optional_env_file_may_be_missing(
        self, write_compose: Callable[..., Path]
    ) -> None:
        path = write_compose(
            """
services:
  web:
    image: nginx
    env_file:
      - path: ./local.env
        required: false
"""
        )

        web = ComposeLoader(environ={}).load([path]).services["web"]

        assert "env_file" not in web
        assert web["environment"] == {}

    def test_missing_env_file(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("services:\n  web:\n    env_file: ./absent.env\n")

        with pytest.raises(FileNotFoundError, match="absent.env"):
            ComposeLoader(environ={}).load([path])

    def test_dollar_signs_survive_engine_interpolation(
        self, write_compose: Callable[..., Path]
    ) -> None:
        path = write_compose(
            "services:\n  web:\n    image: nginx\n    command: echo $$HOME\n"
        )

        definition = ComposeLoader(environ={}).load([path])

        assert definition.services["web"]["command"] == "echo $HOME"
        assert "command: echo $$HOME" in definition.to_yaml()

    def test_extends_in_same_file(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose(
            """
services:
  base:
    image: app
    environment:
      MODE: base
    depends_on: [db]
  web:
    extends: base
    environment:
      PORT: "80"
  db:
    image: postgres
"""
        )

        web = ComposeLoader(environ={}).load([path]).services["web"]

        assert web == {"image": "app", "environment": {"MODE": "base", "PORT": "80"}}

    def test_extends_other_file(
        self, write_compose: Callable[..., Path], tmp_path: Path
    ) -> None:
        write_compose(
            "services:\n  common:\n    image: app\n    volumes:\n      - ./data:/data\n",
            "shared/common.yml",
        )
        path = write_compose(
            """
services:
  web:
    extends:
      file: ./shared/common.yml
      service: common
    command: serve
"""
        )

        web = ComposeLoader(environ={}).load([path]).services["web"]

        assert web == {
            "image": "app",
            "volumes": [f"{tmp_path / 'shared' / 'data'}:/data"],
            "command": "serve",
        }

    def test_extends_unknown_service(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose("services:\n  web:\n    extends: missing\n")

        with pytest.raises(ConfigError, match="unknown service 'missing'"):
            ComposeLoader(environ={}).load([path])

    def test_circular_extends(self, write_compose: Callable[..., Path]) -> None:
        path = write_compose(
            "services:\n  a:\n    extends: b\n  b:\n    extends: a\n"
        )

        with pytest.raises(ConfigError, match="Circular extends"):
            ComposeLoader(environ={}).load([path])

    def test_include(self, write_compose: Callable[..., Path], tmp_path: Path) -> None:
        write_compose(
            "services:\n  db:\n    image: postgres\n    env_file: db.env\n",
            "db/compose.yml",
        )
        (tmp_path / "db" / "db.env").write_text("POSTGRES_DB=shop\n", encoding="utf-8")
        path = write_compose(
            "include:\n  - db/compose.yml\nservices:\n  web:\n    image: nginx\n"
        )

        definition = ComposeLoader(environ={}).load([path])

        assert "include" not in definition.document
        assert definition.service_names == ["db", "web"]
        assert definition.services["db"]["environment"] == {"POSTGRES_DB": "shop"}

    def test_circular_include(self, write_compose: Callable[..., Path]) -> None:
        write_compose("include:\n  - compose.yml\n", "other.yml")
        path = write_compose("include:\n  - other.yml\nservices:\n  web: {}\n")

        with pytest.raises(ConfigError, match="Circular include"):
            ComposeLoader(environ={}).load([path])
