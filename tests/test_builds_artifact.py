"""Tests for build artifacts and build state."""

import pytest
from conftest import failed

from meda_builder.builds import Artifact, ArtifactError, BuildState
from meda_builder.builds.state import generate_vm_name


@pytest.fixture
def artifact(make_config):
    return Artifact(
        image_name="ubuntu-docker:latest",
        config=make_config(organization="cirunlabs"),
    )


class TestArtifact:
    """Tests for Artifact."""

    def test_identity(self, artifact):
        """Builder id and id describe the image."""
        assert artifact.builder_id() == "meda.vm"
        assert artifact.id() == "ubuntu-docker:latest"
        assert artifact.files() == []

    def test_str_not_pushed(self, artifact):
        assert str(artifact) == "Meda image: ubuntu-docker:latest"

    def test_str_pushed(self, artifact):
        artifact.pushed_image = "ghcr.io/cirunlabs/ubuntu-docker:latest"
        assert str(artifact) == (
            "Meda image: ubuntu-docker:latest "
            "(pushed to ghcr.io/cirunlabs/ubuntu-docker:latest)"
        )

    def test_state_lookup(self, artifact):
        """Named fields are exposed, unknown names give None."""
        assert artifact.state("image_name") == "ubuntu-docker:latest"
        assert artifact.state("registry") == "ghcr.io"
        assert artifact.state("organization") == "cirunlabs"
        assert artifact.state("pushed_image") == ""
        assert artifact.state("nope") is None

    def test_to_dict(self, artifact):
        assert artifact.to_dict() == {
            "builder_id": "meda.vm",
            "image_name": "ubuntu-docker:latest",
            "pushed_image": "",
            "registry": "ghcr.io",
            "organization": "cirunlabs",
        }


class TestArtifactDestroy:
    """Tests for Artifact.destroy."""

    def test_destroy_deletes_image(self, artifact, transport):
        """The produced image is deleted; a passed transport stays open."""
        artifact.destroy(transport)

        assert transport.calls == [("delete_image", ("ubuntu-docker:latest",))]
        assert transport.closed is False

    def test_destroy_failure(self, artifact, transport):
        """Backend refusal raises ArtifactError."""
        transport.results["delete_image"] = failed(stderr="image in use")

        with pytest.raises(ArtifactError) as exc_info:
            artifact.destroy(transport)

        assert exc_info.value.code == "destroy_failed"
        assert "failed to destroy image ubuntu-docker:latest" in str(exc_info.value)
        assert "image in use" in str(exc_info.value)

    def test_destroy_builds_transport(self, artifact, transport, monkeypatch):
        """Without a transport one is created from the config and closed."""
        monkeypatch.setattr(
            "meda_builder.transport.create_transport", lambda config: transport
        )
        artifact.destroy()

        assert transport.count("delete_image") == 1
        assert transport.closed is True


class TestBuildState:
    """Tests for BuildState."""

    def test_generate_vm_name(self):
        assert generate_vm_name("builder", now=1700000000.7) == (
            "packer-builder-1700000000"
        )

    def test_generated_vars(self, make_config):
        """The address is empty until known."""
        state = BuildState(config=make_config(), vm_name="packer-builder-1")
        assert state.generated_vars() == {
            "MedaVMName": "packer-builder-1",
            "MedaVMIP": "",
        }

        state.vm_ip = "192.168.64.2"
        assert state.generated_vars()["MedaVMIP"] == "192.168.64.2"

    def test_warn(self, make_state):
        state = make_state()
        state.warn("careful")
        assert state.warnings == ["careful"]

    def test_states_do_not_share_events(self, make_state):
        """Each build gets its own cancel event."""
        first, second = make_state(), make_state()
        first.cancel_event.set()
        assert not second.cancel_event.is_set()
