"""
Tests for host precondition checks.
"""

import pytest

from provisioner.core.config.loader import ProvisionerConfig
from provisioner.core.errors import PreconditionError
from provisioner.core.models.recipe import PreconditionSpec
from provisioner.core.services import preconditions
from provisioner.core.services.preconditions import check_preconditions


@pytest.fixture
def good_host(monkeypatch):
    """A Debian-family, non-root, online x86_64 host with room to spare."""
    monkeypatch.setattr(preconditions, "is_debian_family", lambda: True)
    monkeypatch.setattr("provisioner.core.services.preconditions.shutil.which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(preconditions, "is_root", lambda: False)
    monkeypatch.setattr(preconditions, "machine_arch", lambda: "x86_64")
    monkeypatch.setattr(preconditions, "free_disk_gb", lambda path="~": 100.0)
    monkeypatch.setattr(preconditions, "network_reachable", lambda url, timeout=10: (True, "HTTP 200"))
    monkeypatch.setattr(preconditions, "total_ram_gb", lambda: 16.0)
    monkeypatch.setattr(preconditions, "cpu_flags", lambda: {"fpu", "vmx"})
    return monkeypatch


def _check(spec=None, **kwargs):
    return check_preconditions(spec or PreconditionSpec(), ProvisionerConfig(), **kwargs)


class TestHardRequirements:
    def test_all_met(self, good_host):
        spec = PreconditionSpec(architectures=["x86_64"], min_disk_gb=16, min_ram_gb=8, cpu_flags_any=["vmx", "svm"])
        assert _check(spec) == []

    def test_not_debian(self, good_host):
        good_host.setattr(preconditions, "is_debian_family", lambda: False)
        with pytest.raises(PreconditionError) as exc:
            _check()
        assert exc.value.check == "os"
        assert "Debian-based" in exc.value.message

    def test_no_apt_get(self, good_host):
        good_host.setattr("provisioner.core.services.preconditions.shutil.which", lambda name: None)
        with pytest.raises(PreconditionError, match="apt-get not found"):
            _check()

    def test_apt_not_required(self, good_host):
        good_host.setattr(preconditions, "is_debian_family", lambda: False)
        assert _check(PreconditionSpec(requires_apt=False)) == []

    def test_root_refused(self, good_host):
        good_host.setattr(preconditions, "is_root", lambda: True)
        with pytest.raises(PreconditionError) as exc:
            _check()
        assert exc.value.check == "privilege"

    def test_root_allowed(self, good_host):
        good_host.setattr(preconditions, "is_root", lambda: True)
        assert _check(PreconditionSpec(forbid_root=False)) == []

    def test_architecture(self, good_host):
        good_host.setattr(preconditions, "machine_arch", lambda: "aarch64")
        with pytest.raises(PreconditionError, match="Unsupported architecture aarch64") as exc:
            _check(PreconditionSpec(architectures=["x86_64"]))
        assert exc.value.check == "architecture"

    def test_disk(self, good_host):
        good_host.setattr(preconditions, "free_disk_gb", lambda path="~": 4.2)
        with pytest.raises(PreconditionError, match="4.2GB free, 16GB required"):
            _check(PreconditionSpec(min_disk_gb=16))

    def test_network(self, good_host):
        good_host.setattr(preconditions, "network_reachable", lambda url, timeout=10: (False, "timed out"))
        with pytest.raises(PreconditionError) as exc:
            _check()
        assert exc.value.check == "network"
        assert "timed out" in exc.value.message

    def test_network_skipped(self, good_host):
        def boom(url, timeout=10):
            raise AssertionError("network must not be probed")

        good_host.setattr(preconditions, "network_reachable", boom)
        assert _check(skip_network=True) == []


class TestAdvisory:
    def test_low_ram_is_a_warning(self, good_host):
        good_host.setattr(preconditions, "total_ram_gb", lambda: 3.8)
        warnings = _check(PreconditionSpec(min_ram_gb=8))
        assert warnings == ["Only 3.8GB RAM; at least 8GB recommended"]

    def test_unknown_ram(self, good_host):
        good_host.setattr(preconditions, "total_ram_gb", lambda: None)
        assert _check(PreconditionSpec(min_ram_gb=8)) == ["Could not determine installed RAM"]

    def test_missing_cpu_flags(self, good_host):
        good_host.setattr(preconditions, "cpu_flags", lambda: {"fpu"})
        warnings = _check(PreconditionSpec(cpu_flags_any=["vmx", "svm"]))
        assert len(warnings) == 1
        assert "vmx, svm" in warnings[0]


class TestHostFacts:
    def test_arch_alias(self, monkeypatch):
        monkeypatch.setattr("provisioner.core.services.preconditions.platform.machine", lambda: "AMD64")
        assert preconditions.machine_arch() == "x86_64"

    @pytest.mark.parametrize("os_id, like, expected", [
        ("debian", "", True),
        ("ubuntu", "debian", True),
        ("linuxmint", "ubuntu debian", True),
        ("fedora", "", False),
    ])
    def test_debian_family(self, monkeypatch, os_id, like, expected):
        monkeypatch.setattr("provisioner.core.services.preconditions.distro.id", lambda: os_id)
        monkeypatch.setattr("provisioner.core.services.preconditions.distro.like", lambda: like)
        assert preconditions.is_debian_family() is expected
