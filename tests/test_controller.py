"""Launch lifecycle: validation, liveness, invocation, classification, reporting."""

import pytest

from dockerexec.controller import KILLED_ON_REQUEST, LaunchController, classify_result
from dockerexec.exceptions import InvalidImageError
from dockerexec.invoker import InvocationResult, PrivilegedInvoker
from dockerexec.models import ExitCode, ExitCodeClass, classify_exit_code
from dockerexec.strategies import CreateStartRemoveStrategy, DirectRunStrategy
from tests.fakes.recording import (
    RecordingCallbacks,
    RecordingRunner,
    by_verb,
    make_request,
)


def _controller(settings, runner, direct=False):
    invoker = PrivilegedInvoker(settings, runner)
    strategy = DirectRunStrategy(invoker) if direct else CreateStartRemoveStrategy(invoker)
    return LaunchController(settings, strategy)


@pytest.mark.parametrize(
    "code,expected",
    [
        (0, ExitCodeClass.NORMAL),
        (137, ExitCodeClass.FORCED_KILL),
        (143, ExitCodeClass.REQUESTED_TERMINATION),
        (1, ExitCodeClass.INVOCATION_FAILURE),
        (-1, ExitCodeClass.INVOCATION_FAILURE),
    ],
)
def test_classify_exit_code(code, expected):
    assert classify_exit_code(code) is expected


def test_successful_launch_is_silent(settings):
    runner = RecordingRunner(by_verb(create=InvocationResult(0, "3f2a9c\n")))
    callbacks = RecordingCallbacks()
    exit_code = _controller(settings, runner).launch(make_request(), callbacks)
    assert exit_code == 0
    assert callbacks.diagnostics == []
    assert runner.verbs == ["create", "start", "rm"]


def test_inactive_container_never_invokes_helper(settings):
    runner = RecordingRunner()
    callbacks = RecordingCallbacks(active=False)
    outcome = _controller(settings, runner).launch_with_outcome(make_request(), callbacks)
    assert runner.calls == []
    assert outcome.exit_code == ExitCode.INACTIVE
    assert outcome.classification is ExitCodeClass.ALREADY_INACTIVE
    assert callbacks.diagnostics == []


def test_invalid_image_fails_before_liveness_or_spawn(settings):
    runner = RecordingRunner()
    callbacks = RecordingCallbacks()
    with pytest.raises(InvalidImageError):
        _controller(settings, runner).launch(
            make_request(image_reference='"bad image"'), callbacks
        )
    assert runner.calls == []
    assert callbacks.liveness_checks == []
    assert callbacks.diagnostics == []


def test_missing_image_fails(settings):
    with pytest.raises(InvalidImageError):
        _controller(settings, RecordingRunner()).launch(
            make_request(image_reference=None), RecordingCallbacks()
        )


@pytest.mark.parametrize("code", [137, 143])
def test_killed_on_request_is_benign_diagnostic(settings, code):
    runner = RecordingRunner(by_verb(start=InvocationResult(code, "stack trace noise")))
    callbacks = RecordingCallbacks()
    exit_code = _controller(settings, runner).launch(make_request(), callbacks)
    assert exit_code == code
    assert callbacks.diagnostics == [
        ("container_1_0001_01_000002", KILLED_ON_REQUEST.format(exit_code=code))
    ]
    assert "stack trace noise" not in callbacks.diagnostics[0][1]


def test_application_failure_reports_output(settings):
    runner = RecordingRunner(by_verb(start=InvocationResult(1, "Traceback: ValueError")))
    callbacks = RecordingCallbacks()
    outcome = _controller(settings, runner).launch_with_outcome(make_request(), callbacks)
    assert outcome.exit_code == 1
    assert outcome.classification is ExitCodeClass.INVOCATION_FAILURE
    assert len(callbacks.diagnostics) == 1
    message = callbacks.diagnostics[0][1]
    assert "Exception from container-launch" in message
    assert "Traceback: ValueError" in message
    assert "Exit code: 1" in message


def test_helper_spawn_failure_returns_minus_one_without_diagnostics(settings):
    runner = RecordingRunner(lambda argv: InvocationResult.failed_to_start("no such file"))
    callbacks = RecordingCallbacks()
    exit_code = _controller(settings, runner).launch(make_request(), callbacks)
    assert exit_code == -1
    assert callbacks.diagnostics == []
    assert runner.verbs == ["create"]


def test_failed_create_skips_start_and_remove(settings):
    runner = RecordingRunner(by_verb(create=InvocationResult(125, "no such image")))
    callbacks = RecordingCallbacks()
    exit_code = _controller(settings, runner).launch(make_request(), callbacks)
    assert exit_code == 125
    assert runner.verbs == ["create"]
    assert "no such image" in callbacks.diagnostics[0][1]


def test_remove_runs_after_failed_start_and_start_code_wins(settings):
    runner = RecordingRunner(
        by_verb(start=InvocationResult(2, "oops"), rm=InvocationResult(1, "daemon down"))
    )
    exit_code = _controller(settings, runner).launch(make_request(), RecordingCallbacks())
    assert runner.verbs == ["create", "start", "rm"]
    assert exit_code == 2


def test_remove_failure_after_clean_start_is_reported(settings):
    runner = RecordingRunner(by_verb(rm=InvocationResult(1, "daemon down")))
    callbacks = RecordingCallbacks()
    exit_code = _controller(settings, runner).launch(make_request(), callbacks)
    assert exit_code == 1
    assert "daemon down" in callbacks.diagnostics[0][1]


def test_direct_run_single_invocation(settings):
    runner = RecordingRunner()
    exit_code = _controller(settings, runner, direct=True).launch(
        make_request(), RecordingCallbacks()
    )
    assert exit_code == 0
    assert runner.verbs == ["run"]


def test_end_to_end_two_local_dirs(settings):
    runner = RecordingRunner()
    request = make_request(local_dirs=("/d1", "/d2"), log_dirs=())
    callbacks = RecordingCallbacks()
    exit_code = _controller(settings, runner, direct=True).launch(request, callbacks)
    argv, _ = runner.calls[0]
    assert exit_code == 0
    assert callbacks.diagnostics == []
    assert "/d1:/d1" in argv and "/d2:/d2" in argv
    assert "myrepo/worker:1.2" in argv


def test_classify_result_for_start_failure():
    outcome = classify_result(make_request(), InvocationResult.failed_to_start("EACCES"))
    assert outcome.exit_code == -1
    assert outcome.diagnostics is None
