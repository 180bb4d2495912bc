from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from deblayer.errors import UnsupportedDistributionError
from deblayer.models import (
    CacheRecord,
    LayerEnvironment,
    Notification,
    PackageIndex,
    ReleaseMetadata,
    RequestedPackage,
    compute_fingerprint,
    get_distribution,
)


def test_dependencies_take_first_alternative_and_strip_qualifiers(make_record):
    record = make_record(
        "git",
        pre_depends="dpkg (>= 1.15.6~)",
        depends="libc6 (>= 2.34), libcurl3-gnutls | libcurl4 [amd64], perl:any, zlib1g <!nocheck>, libc6",
    )
    assert record.dependencies() == ["dpkg", "libc6", "libcurl3-gnutls", "perl", "zlib1g"]


def test_dependencies_empty(make_record):
    assert make_record("base-files").dependencies() == []


def test_provided_names_keep_every_entry(make_record):
    record = make_record("mawk", provides="awk, c-shell (= 1.0)")
    assert record.provided_names() == ["awk", "c-shell"]


def test_download_url(make_record):
    record = make_record("git", version="1:2.34.1-1ubuntu1")
    assert record.download_url == "http://mirror.test/ubuntu/pool/main/g/git/git_1:2.34.1-1ubuntu1_amd64.deb"


def test_index_lookup_single_paragraph(make_record):
    record = make_record("zlib1g", "1:1.2.11.dfsg-2ubuntu9")
    index = PackageIndex.from_records([record])
    assert index.get("zlib1g") == record
    assert "zlib1g" in index
    assert len(index) == 1


def test_index_keeps_highest_version(make_record):
    records = [
        make_record("git", "1:2.34.1-1ubuntu1"),
        make_record("git", "1:2.34.1-1ubuntu1.10"),
        make_record("git", "1:2.34.0-1"),
        make_record("git", "2.40.0-1"),
    ]
    index = PackageIndex.from_records(records)
    assert index.get("git").version == "1:2.34.1-1ubuntu1.10"
    assert index.packages_indexed == 4


def test_index_tie_keeps_first_record(make_record):
    first = make_record("git", "1.0")
    second = first.model_copy(update={"repository_uri": "http://other.test/ubuntu"})
    index = PackageIndex.from_records([first, second])
    assert index.get("git").repository_uri == first.repository_uri


def test_index_virtual_packages(make_record):
    index = PackageIndex.from_records(
        [
            make_record("mawk", provides="awk"),
            make_record("gawk", provides="awk"),
            make_record("mawk", "2.0", provides="awk"),
        ]
    )
    assert index.providers("awk") == ["mawk", "gawk"]
    assert index.providers("nothing") == []


@pytest.mark.parametrize("name", ["git", "libc6", "g++", "libstdc++6", "python3.10", "x-y"])
def test_requested_package_accepts_policy_names(name):
    assert RequestedPackage(name=name).name == name


@pytest.mark.parametrize("name", ["", "g", "Git", "-git", "git_core", "git core"])
def test_requested_package_rejects_invalid_names(name):
    with pytest.raises(ValidationError):
        RequestedPackage(name=name)


def test_requested_package_defaults():
    package = RequestedPackage(name="git")
    assert package.skip_dependencies is False
    assert package.force is False
    assert package.env == {}


def test_notification_message():
    notification = Notification(package="git", added=["zlib1g", "perl"])
    assert notification.message.startswith("Added 2 packages required by git: zlib1g, perl.")
    assert "skip_dependencies = true for git" in notification.message


def test_fingerprint_is_order_independent_for_keys():
    assert compute_fingerprint({"a": 1, "b": [1, 2]}) == compute_fingerprint({"b": [1, 2], "a": 1})
    assert compute_fingerprint({"a": 1}) != compute_fingerprint({"a": 2})


def test_cache_record_freshness():
    now = datetime(2024, 1, 10, tzinfo=UTC)
    record = CacheRecord(fingerprint="abc", created_at=now - timedelta(days=3))

    assert record.is_fresh("abc", 7, now)
    assert record.invalidation_reason("abc", 7, now) is None
    assert not record.is_fresh("abc", 2, now)
    assert record.invalidation_reason("abc", 2, now) == "older than 2 days"
    assert record.invalidation_reason("def", 7, now) == "configuration changed"


def test_cache_record_zero_days_always_invalid():
    record = CacheRecord(fingerprint="abc")
    assert not record.is_fresh("abc", 0)
    assert record.invalidation_reason("abc", 0) == "cache disabled"


def test_layer_environment_prepend_keeps_priority_order():
    environment = LayerEnvironment()
    environment.prepend("PATH", ["/layer/usr/bin", "/layer/bin"])
    environment.prepend("PATH", ["/layer/opt/bin", "/layer/bin"])

    assert environment.variables.get("PATH", []) == ["/layer/opt/bin", "/layer/bin", "/layer/usr/bin"]
    assert environment.value_of("PATH") == "/layer/opt/bin:/layer/bin:/layer/usr/bin"
    assert environment.value_of("MISSING") is None


def test_release_staleness():
    now = datetime(2024, 1, 10, tzinfo=UTC)
    assert not ReleaseMetadata().is_stale(now)
    assert ReleaseMetadata(valid_until=datetime(2024, 1, 9)).is_stale(now)
    assert not ReleaseMetadata(valid_until=datetime(2024, 1, 11, tzinfo=UTC)).is_stale(now)


@pytest.mark.parametrize(
    ("architecture", "mirror", "multiarch"),
    [
        ("amd64", "http://archive.ubuntu.com/ubuntu", "x86_64-linux-gnu"),
        ("arm64", "http://ports.ubuntu.com/ubuntu-ports", "aarch64-linux-gnu"),
    ],
)
def test_get_distribution(architecture, mirror, multiarch):
    distribution = get_distribution("noble", architecture)
    assert distribution.version == "24.04"
    assert distribution.multiarch == multiarch
    (source,) = distribution.sources
    assert source.uri == mirror
    assert source.suites == ("noble", "noble-updates", "noble-security")
    assert source.components == ("main", "universe")


def test_get_distribution_unsupported():
    with pytest.raises(UnsupportedDistributionError):
        get_distribution("bionic", "amd64")
    with pytest.raises(UnsupportedDistributionError):
        get_distribution("jammy", "riscv64")
