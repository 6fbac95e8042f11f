"""Launch script rendering."""

import io

import pytest

from dockerexec.script import (
    EXCLUDED_ENV_VARS,
    ShellScriptBuilder,
    build_launch_script,
    excluded_env_vars,
    write_launch_env,
)


class TrackingStream(io.BytesIO):
    """BytesIO that keeps its content readable after close()."""

    def __init__(self, fail_on_write: bool = False, fail_on_close: bool = False) -> None:
        super().__init__()
        self.closed_calls = 0
        self.content = b""
        self._fail_on_write = fail_on_write
        self._fail_on_close = fail_on_close

    def write(self, data):
        if self._fail_on_write:
            raise OSError("disk full")
        return super().write(data)

    def close(self):
        self.closed_calls += 1
        if not self.closed:
            self.content = self.getvalue()
        super().close()
        if self._fail_on_close:
            raise OSError("close failed")


def test_excluded_key_omitted_other_exported():
    script = build_launch_script(
        {"JAVA_HOME": "/usr/lib/jvm", "APP_ENV": "prod"}, None, ["true"]
    ).render()
    assert "export APP_ENV=prod" in script
    assert "JAVA_HOME" not in script


def test_exclusion_set_is_documented_and_enumerable():
    assert EXCLUDED_ENV_VARS == {
        "HADOOP_YARN_HOME",
        "HADOOP_COMMON_HOME",
        "HADOOP_HDFS_HOME",
        "HADOOP_CONF_DIR",
        "JAVA_HOME",
    }
    assert "IMAGE_VAR" in excluded_env_vars("IMAGE_VAR")
    assert excluded_env_vars(None) == EXCLUDED_ENV_VARS


def test_full_rendering():
    script = build_launch_script(
        {"B": "two words", "A": "1"},
        {"/cache/10/job.xml": ["conf/job.xml"], "/cache/11/lib.jar": ["lib.jar"]},
        ["python", "train.py"],
    ).render()
    assert script == (
        "#!/bin/bash\n"
        "\n"
        "export A=1\n"
        "export B='two words'\n"
        "mkdir -p conf\n"
        "ln -sf /cache/10/job.xml conf/job.xml\n"
        "ln -sf /cache/11/lib.jar lib.jar\n"
        "exec /bin/bash -c 'python train.py'\n"
    )


def test_every_link_name_gets_a_symlink():
    script = build_launch_script(
        {}, {"/cache/1/data": ["data", "copy/data"]}, ["true"]
    ).render()
    assert "ln -sf /cache/1/data data\n" in script
    assert "ln -sf /cache/1/data copy/data\n" in script


def test_rendering_is_deterministic_across_mapping_order():
    env_a = {"Z": "1", "A": "2", "M": "3"}
    env_b = {"M": "3", "Z": "1", "A": "2"}
    first = build_launch_script(env_a, None, ["run"]).render()
    second = build_launch_script(env_b, None, ["run"]).render()
    assert first == second


def test_values_are_shell_quoted():
    script = ShellScriptBuilder().env("X", "$(reboot)").render()
    assert "export X='$(reboot)'" in script


def test_command_is_last_line():
    script = build_launch_script({"A": "1"}, {"/r": ["r"]}, ["echo", "hi"]).render()
    assert script.rstrip("\n").splitlines()[-1] == "exec /bin/bash -c 'echo hi'"


def test_write_launch_env_writes_and_closes():
    out = TrackingStream()
    write_launch_env(out, {"A": "1"}, None, ["true"])
    assert out.closed_calls == 1
    assert out.content.decode("utf-8").startswith("#!/bin/bash\n")


def test_write_failure_still_closes_stream():
    out = TrackingStream(fail_on_write=True)
    with pytest.raises(OSError, match="disk full"):
        write_launch_env(out, {"A": "1"}, None, ["true"])
    assert out.closed_calls == 1


def test_close_failure_does_not_mask_render_error():
    out = TrackingStream(fail_on_write=True, fail_on_close=True)
    with pytest.raises(OSError, match="disk full"):
        write_launch_env(out, {"A": "1"}, None, ["true"])


def test_close_failure_alone_is_not_raised():
    out = TrackingStream(fail_on_close=True)
    write_launch_env(out, {"A": "1"}, None, ["true"])
    assert b"export A=1" in out.content
