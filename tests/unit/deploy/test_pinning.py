"""Unit tests for image digest pinning."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException, NotFound

from holdfast.config.loader import ResolvedDefinition
from holdfast.deploy.pinning import ImageDigestResolver, is_pinned, pinned_reference
from holdfast.lib.errors import DeploymentError, DockerNotAvailableError

DIGEST = "sha256:" + "a" * 64


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.images.get_registry_data.return_value = MagicMock(id=DIGEST)
    return client


def _definition(services: dict) -> ResolvedDefinition:
    return ResolvedDefinition(
        document={"name": "app", "services": services}, sources=[Path("compose.yml")]
    )


class TestHelpers:
    def test_is_pinned(self) -> None:
        assert is_pinned(f"nginx:1.27@{DIGEST}")
        assert not is_pinned("nginx:1.27")

    def test_pinned_reference(self) -> None:
        assert pinned_reference("nginx:1.27", DIGEST) == f"nginx:1.27@{DIGEST}"


class TestImageDigestResolver:
    """Tests for ImageDigestResolver."""

    def test_init_docker_not_available(self) -> None:
        with patch("holdfast.deploy.pinning.docker.from_env") as mock_from_env:
            mock_from_env.side_effect = DockerException("Cannot connect")

            with pytest.raises(DockerNotAvailableError):
                ImageDigestResolver()

    def test_resolve(self, mock_client: MagicMock) -> None:
        assert ImageDigestResolver(client=mock_client).resolve("nginx:1.27") == DIGEST
        mock_client.images.get_registry_data.assert_called_once_with("nginx:1.27")

    def test_resolve_not_found(self, mock_client: MagicMock) -> None:
        mock_client.images.get_registry_data.side_effect = NotFound("nope")

        with pytest.raises(DeploymentError, match="Image not found in registry"):
            ImageDigestResolver(client=mock_client).resolve("ghost:latest")

    def test_resolve_api_error(self, mock_client: MagicMock) -> None:
        mock_client.images.get_registry_data.side_effect = APIError("denied")

        with pytest.raises(DeploymentError, match="Failed to resolve digest"):
            ImageDigestResolver(client=mock_client).resolve("private:latest")

    def test_pin_rewrites_images(self, mock_client: MagicMock) -> None:
        definition = _definition(
            {
                "web": {"image": "nginx:1.27"},
                "proxy": {"image": "nginx:1.27"},
                "built": {"build": "."},
                "fixed": {"image": f"redis:7@{DIGEST}"},
            }
        )

        result = ImageDigestResolver(client=mock_client).pin(definition)

        assert definition.services["web"]["image"] == f"nginx:1.27@{DIGEST}"
        assert result.pinned == {
            "web": f"nginx:1.27@{DIGEST}",
            "proxy": f"nginx:1.27@{DIGEST}",
        }
        assert sorted(result.skipped) == ["built", "fixed"]
        assert definition.services["fixed"]["image"] == f"redis:7@{DIGEST}"
        mock_client.images.get_registry_data.assert_called_once_with("nginx:1.27")
