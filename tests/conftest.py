"""Root pytest configuration for oci-blobs tests."""
import pytest

from oci_blobs.client import BlobClient
from oci_blobs.settings import Settings

from .fakes.fake_registry import FakeRegistry

# Small chunk size so chunked uploads stay cheap in tests
TEST_CHUNK_SIZE = 1024


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Automatically set up test environment variables."""
    monkeypatch.setenv("OCI_BLOBS_REGISTRY_URL", "http://registry.test")
    monkeypatch.setenv("OCI_BLOBS_REGISTRY_INSECURE", "true")
    # Keep the developer's real Docker credentials out of tests
    monkeypatch.setenv("DOCKER_CONFIG", str(tmp_path / "docker"))
    for name in ("OCI_BLOBS_REGISTRY_USERNAME", "OCI_BLOBS_REGISTRY_PASSWORD",
                 "OCI_BLOBS_HTTP_TIMEOUT", "OCI_BLOBS_HTTP_RETRY", "OCI_BLOBS_CHUNK_SIZE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path):
    """Standard test settings."""
    return Settings(
        registry_url="http://registry.test",
        registry_insecure=True,
        docker_config=tmp_path / "docker",
        chunk_size=TEST_CHUNK_SIZE,
    )


@pytest.fixture
def fake_registry():
    """In-memory registry served through httpx.MockTransport."""
    return FakeRegistry()


@pytest.fixture
def client(settings, fake_registry):
    """Blob client wired to the fake registry."""
    with BlobClient(settings, transport=fake_registry.transport()) as blob_client:
        yield blob_client
