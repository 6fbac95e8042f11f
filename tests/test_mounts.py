"""Bind mount arguments."""

import dataclasses

import pytest

from dockerexec.mounts import PASSWD_MOUNT, MountSpec, mount_args, mount_specs


def test_empty_dirs_give_no_arguments():
    assert mount_specs([]) == ()
    assert mount_args(mount_specs([])) == []


def test_one_mount_per_directory_at_same_path():
    specs = mount_specs(["/d1", "/d2", "/d3"])
    assert len(specs) == 3
    for spec in specs:
        assert spec.host_path == spec.container_path
    assert mount_args(specs) == ["-v", "/d1:/d1", "-v", "/d2:/d2", "-v", "/d3:/d3"]


def test_duplicates_are_kept_in_order():
    specs = mount_specs(["/d1", "/d2", "/d1"])
    assert [s.path for s in specs] == ["/d1", "/d2", "/d1"]
    assert mount_args(specs).count("/d1:/d1") == 2


def test_mount_spec_is_immutable():
    spec = MountSpec("/d1")
    with pytest.raises(dataclasses.FrozenInstanceError):
        spec.path = "/other"


def test_passwd_mount_is_read_only():
    assert PASSWD_MOUNT == ["-v", "/etc/passwd:/etc/passwd:ro"]
