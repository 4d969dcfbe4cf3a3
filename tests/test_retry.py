import pytest

from conftest import StubDetector, make_surface
from scanner.detectors.base import FrameInput, FrameSkippedError, MalformedResponseError, TransientDetectionError
from scanner.detectors.retry import RetryingDetector

FRAME = FrameInput("frame.jpg", 2.0)


def _failing(times, error_cls=TransientDetectionError):
    state = {'calls': 0}

    def respond(frame):
        state['calls'] += 1
        if state['calls'] <= times:
            raise error_cls("upstream trouble")
        return [make_surface()]

    return respond, state


def test_transient_errors_are_retried_with_backoff() -> None:
    respond, state = _failing(2)
    sleeps = []
    detector = RetryingDetector(StubDetector(respond), max_retries=2, base_delay=2.0, sleep=sleeps.append)

    surfaces = detector.detect(FRAME)

    assert len(surfaces) == 1
    assert state['calls'] == 3
    assert sleeps == [2.0, 4.0]


def test_retry_ceiling_reraises_last_error() -> None:
    respond, state = _failing(10)
    sleeps = []
    detector = RetryingDetector(StubDetector(respond), max_retries=2, base_delay=1.0, sleep=sleeps.append)

    with pytest.raises(TransientDetectionError):
        detector.detect(FRAME)

    assert state['calls'] == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.parametrize("error_cls", [FrameSkippedError, MalformedResponseError])
def test_permanent_errors_are_not_retried(error_cls) -> None:
    respond, state = _failing(1, error_cls)
    sleeps = []
    detector = RetryingDetector(StubDetector(respond), max_retries=3, sleep=sleeps.append)

    with pytest.raises(error_cls):
        detector.detect(FRAME)

    assert state['calls'] == 1
    assert sleeps == []


def test_zero_retries_means_single_attempt() -> None:
    respond, state = _failing(1)
    detector = RetryingDetector(StubDetector(respond), max_retries=0, sleep=lambda s: None)

    with pytest.raises(TransientDetectionError):
        detector.detect(FRAME)
    assert state['calls'] == 1


def test_wrapper_keeps_inner_name() -> None:
    assert RetryingDetector(StubDetector(lambda f: [])).name == "stub"
