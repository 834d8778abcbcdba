from page_stitcher import config
from page_stitcher.config.defaults import AppDefaults
from page_stitcher.core.capture_session import CaptureOptions


def test_defaults_match_capture_tool() -> None:
    defaults = AppDefaults()

    assert defaults.STITCH_TIMEOUT == 45.0
    assert defaults.SETTLE_DELAY == 0.12
    assert defaults.OUTPUT_QUALITY == 0.92


def test_from_env(monkeypatch) -> None:
    monkeypatch.setenv("STITCH_TIMEOUT", "10")
    monkeypatch.setenv("HIDE_STICKY", "yes")
    monkeypatch.setenv("OUTPUT_FORMAT", "JPEG")
    monkeypatch.setenv("SERVER_PORT", "9000")

    defaults = AppDefaults.from_env()

    assert defaults.STITCH_TIMEOUT == 10.0
    assert defaults.HIDE_STICKY is True
    assert defaults.OUTPUT_FORMAT == "jpeg"
    assert defaults.SERVER_PORT == 9000


def test_capture_options_follow_loaded_defaults(monkeypatch) -> None:
    monkeypatch.setenv("SETTLE_DELAY", "0.5")
    monkeypatch.setenv("DETECT_HEADER", "1")
    config.load_defaults_from_env()
    try:
        options = CaptureOptions.from_defaults(quality=0.7)
    finally:
        monkeypatch.undo()
        config.load_defaults_from_env()

    assert options.settle_delay == 0.5
    assert options.detect_header is True
    assert options.quality == 0.7
