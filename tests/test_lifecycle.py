import pytest

from anthropic_proxy.services.lifecycle import InvalidTransition, RequestLifecycle, RequestPhase

PIPELINE = [
    RequestPhase.AUTHENTICATED,
    RequestPhase.HEADERS_TRANSFORMED,
    RequestPhase.FORWARDING,
    RequestPhase.RELAYING,
    RequestPhase.COMPLETED,
]


def test_phases_advance_in_pipeline_order():
    lifecycle = RequestLifecycle("POST", "/v1/messages")
    assert lifecycle.phase is RequestPhase.RECEIVED
    for phase in PIPELINE:
        lifecycle.advance(phase)
    assert lifecycle.terminal


def test_skipping_a_stage_is_rejected():
    lifecycle = RequestLifecycle("POST", "/v1/messages")
    with pytest.raises(InvalidTransition):
        lifecycle.advance(RequestPhase.FORWARDING)


@pytest.mark.parametrize("stop_after", [0, 3, 4])
def test_failure_from_received_forwarding_and_relaying(stop_after):
    lifecycle = RequestLifecycle("GET", "/v1/models")
    for phase in PIPELINE[:stop_after]:
        lifecycle.advance(phase)
    lifecycle.fail("boom")
    assert lifecycle.phase is RequestPhase.FAILED
    assert lifecycle.failure == "boom"


def test_terminal_phases_are_final():
    done = RequestLifecycle("GET", "/v1/models")
    for phase in PIPELINE:
        done.advance(phase)
    with pytest.raises(InvalidTransition):
        done.fail("late")

    failed = RequestLifecycle("GET", "/v1/models")
    failed.fail("auth")
    with pytest.raises(InvalidTransition):
        failed.advance(RequestPhase.AUTHENTICATED)
    with pytest.raises(InvalidTransition):
        failed.fail("again")
