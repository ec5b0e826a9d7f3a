from qr_attendance.models import CameraState
from qr_attendance.services import CameraController, CameraErrorKind
from qr_attendance.services.camera import FACING_ENVIRONMENT, FACING_USER

from fakes import OK, FakeSource


def _controller(source, **kwargs):
    sleeps = []
    states = []
    controller = CameraController(
        source,
        sleep=sleeps.append,
        on_state_change=lambda state, error: states.append(state),
        **kwargs,
    )
    return controller, sleeps, states


def test_start_streams_with_desktop_constraints():
    source = FakeSource(OK)
    camera, sleeps, states = _controller(source)

    assert camera.start() is True

    assert camera.state is CameraState.STREAMING
    assert camera.is_streaming
    assert states == [CameraState.ACQUIRING, CameraState.STREAMING]
    request = source.requests[0]
    assert (request.facing_mode, request.width, request.height) == (FACING_ENVIRONMENT, 1280, 720)
    assert camera.read_frame()[0] is True


def test_mobile_devices_request_smaller_frames():
    source = FakeSource(OK)
    camera, _, _ = _controller(source, device_class="mobile")

    camera.start()

    assert (source.requests[0].width, source.requests[0].height) == (640, 480)


def test_busy_camera_walks_fallbacks_then_retries_once_after_delay():
    busy = CameraErrorKind.DEVICE_BUSY
    source = FakeSource(busy, busy, busy, busy, busy)
    camera, sleeps, _ = _controller(source, retry_delay_seconds=1.0)

    assert camera.start() is False

    requests = source.requests
    assert len(requests) == 5
    assert requests[1].any_video is True
    assert requests[2].facing_mode == FACING_USER
    assert (requests[3].width, requests[3].height) == (320, 240)
    assert requests[4] == requests[0]
    assert sleeps == [1.0]
    assert camera.state is CameraState.ERROR
    assert camera.error.kind is CameraErrorKind.DEVICE_BUSY
    assert camera.retry_count == 1


def test_busy_camera_recovers_with_any_video_fallback():
    source = FakeSource(CameraErrorKind.DEVICE_BUSY, OK)
    camera, sleeps, _ = _controller(source)

    assert camera.start() is True
    assert source.requests[1].any_video is True
    assert sleeps == []
    assert camera.retry_count == 0


def test_permission_denied_is_not_retried_automatically():
    source = FakeSource(CameraErrorKind.PERMISSION_DENIED)
    camera, sleeps, _ = _controller(source)

    assert camera.start() is False

    assert len(source.requests) == 1
    assert sleeps == []
    assert camera.error.kind is CameraErrorKind.PERMISSION_DENIED
    assert camera.error.terminal is False
    assert "Allow camera access" in camera.error.hint


def test_missing_camera_disables_scanning():
    source = FakeSource(CameraErrorKind.NO_DEVICE)
    camera, _, _ = _controller(source)

    assert camera.start() is False

    assert camera.scanning_disabled
    assert camera.is_terminal
    assert camera.retry() is False
    assert len(source.requests) == 1


def test_unsupported_mode_flips_facing_once():
    source = FakeSource(CameraErrorKind.UNSUPPORTED, OK)
    camera, _, _ = _controller(source)

    assert camera.start() is True
    assert source.requests[1].facing_mode == FACING_USER
    assert camera.facing_mode == FACING_USER


def test_unsupported_on_both_facings_fails():
    source = FakeSource(CameraErrorKind.UNSUPPORTED)
    camera, _, _ = _controller(source)

    assert camera.start() is False
    assert len(source.requests) == 2
    assert camera.error.kind is CameraErrorKind.UNSUPPORTED


def test_retries_stop_at_the_ceiling():
    source = FakeSource(CameraErrorKind.PERMISSION_DENIED)
    camera, _, states = _controller(source, max_retries=3)

    camera.start()
    assert camera.retry() is False
    assert CameraState.RECOVERING in states
    assert camera.retry() is False

    assert camera.is_terminal
    assert camera.retry_count == 3
    assert camera.retry() is False
    assert camera.start() is False
    assert len(source.requests) == 3


def test_successful_retry_resets_failure_count():
    source = FakeSource(CameraErrorKind.PERMISSION_DENIED, OK)
    camera, _, _ = _controller(source)

    camera.start()
    assert camera.retry_count == 1
    assert camera.retry() is True
    assert camera.retry_count == 0
    assert camera.error is None


def test_reset_clears_terminal_error():
    source = FakeSource(CameraErrorKind.NO_DEVICE, OK)
    camera, _, _ = _controller(source)
    camera.start()

    camera.reset()

    assert camera.state is CameraState.IDLE
    assert not camera.scanning_disabled
    assert camera.start() is True


def test_switch_camera_releases_previous_stream():
    source = FakeSource(OK)
    camera, _, _ = _controller(source)
    camera.start()
    first = source.streams[0]

    assert camera.switch_camera() is True

    assert first.active is False
    assert first in source.released
    assert camera.facing_mode == FACING_USER
    assert source.requests[1].facing_mode == FACING_USER
    assert source.streams[1].active


def test_close_stops_stream_and_returns_to_idle():
    source = FakeSource(OK)
    camera, _, _ = _controller(source)
    camera.start()

    camera.close()

    assert source.streams[0].active is False
    assert camera.state is CameraState.IDLE
    assert not camera.is_streaming
    assert camera.read_frame() == (False, None)


def test_stream_granted_after_close_is_released():
    holder = {}
    source = FakeSource(OK, on_acquire=lambda: holder["camera"].close())
    camera, _, _ = _controller(source)
    holder["camera"] = camera

    assert camera.start() is False

    assert source.streams[0].active is False
    assert source.streams[0] in source.released
    assert camera.state is CameraState.IDLE
    assert camera.error is None
