from datetime import datetime, timezone

from page_stitcher.utils.naming import build_output_filename, sanitize_filename, timestamp_slug


def test_sanitize_filename() -> None:
    assert sanitize_filename('a/b:c*d?"e<f>g|h') == "a_b_c_d_e_f_g_h"
    assert sanitize_filename("") == "page"
    assert sanitize_filename(None) == "page"
    assert len(sanitize_filename("x" * 300)) == 100


def test_timestamp_slug() -> None:
    moment = datetime(2026, 10, 19, 8, 5, 3, 250000, tzinfo=timezone.utc)

    assert timestamp_slug(moment) == "2026-10-19T08-05-03-250Z"


def test_build_output_filename() -> None:
    moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    name = build_output_filename("https://docs.example.org/guide?x=1", "Guide: Intro", "png", moment)

    assert name == "docs.example.org_Guide_ Intro_2026-01-02T03-04-05-000Z.png"
    assert build_output_filename(None, None, "lossy", moment).endswith(".jpg")
    assert build_output_filename(None, None, "jpeg", moment).startswith("example.com_page_")


def test_extension_ignores_format_case() -> None:
    moment = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    assert build_output_filename(None, None, "PNG", moment).endswith(".png")
    assert build_output_filename(None, None, "Lossless", moment).endswith(".png")
    assert build_output_filename(None, None, "JPEG", moment).endswith(".jpg")
