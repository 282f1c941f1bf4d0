import os
from unittest.mock import MagicMock

import pytest
import requests

from processors.gtfs_static.categories import Category
from processors.gtfs_static.download import (
    category_archive_dir,
    cleanup_old_archives,
    fetch_categories,
    fetch_category_archive,
    latest_archive,
    list_downloaded_archives,
)


def _response(chunks=(b"PK\x03\x04", b"", b"rest"), status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.iter_content.return_value = list(chunks)
    return response


def _place_archives(settings, category, names_and_mtimes):
    directory = category_archive_dir(category, settings)
    directory.mkdir(parents=True, exist_ok=True)
    paths = []
    for name, mtime in names_and_mtimes:
        path = directory / name
        path.write_bytes(b"zip")
        os.utime(path, (mtime, mtime))
        paths.append(path)
    return paths


def test_fetch_category_archive_saves_stream(mocker, feed_settings):
    """Chunks are written to a timestamped archive in the category directory."""
    mock_get = mocker.patch(
        "processors.gtfs_static.download.requests.get", return_value=_response()
    )

    result = fetch_category_archive(Category.RAPID_RAIL_KL, feed_settings)

    assert result.success
    assert result.file_path.parent == feed_settings.data_dir / "rapid-rail-kl"
    assert result.file_path.name.startswith("rapid-rail-kl_")
    assert result.file_path.read_bytes() == b"PK\x03\x04rest"
    assert result.size_bytes == 8
    assert result.size_mb == "0.00 MB"
    mock_get.assert_called_once_with(
        "https://feeds.example.test/gtfs-static/prasarana?category=rapid-rail-kl",
        stream=True,
        timeout=feed_settings.request_timeout,
    )


def test_fetch_ktmb_uses_its_own_endpoint(mocker, feed_settings):
    mock_get = mocker.patch(
        "processors.gtfs_static.download.requests.get", return_value=_response()
    )

    result = fetch_category_archive(Category.KTMB, feed_settings)

    assert result.url == "https://feeds.example.test/gtfs-static/ktmb"
    assert mock_get.call_args[0][0] == "https://feeds.example.test/gtfs-static/ktmb"


def test_fetch_http_error_is_reported(mocker, feed_settings):
    response = _response(status_code=404)
    response.raise_for_status.side_effect = requests.exceptions.HTTPError("404 Not Found")
    mocker.patch("processors.gtfs_static.download.requests.get", return_value=response)

    result = fetch_category_archive(Category.RAPID_BUS_KL, feed_settings)

    assert not result.success
    assert result.error.startswith("HTTP error 404")
    assert list(category_archive_dir(Category.RAPID_BUS_KL, feed_settings).glob("*.zip")) == []
    response.close.assert_called_once()


@pytest.mark.parametrize(
    "exception, prefix",
    [
        (requests.exceptions.ConnectionError("refused"), "Connection error"),
        (requests.exceptions.Timeout("slow"), "Timeout"),
        (requests.exceptions.RequestException("odd"), "Request failed"),
    ],
)
def test_fetch_network_errors_are_reported(mocker, feed_settings, exception, prefix):
    mocker.patch("processors.gtfs_static.download.requests.get", side_effect=exception)

    result = fetch_category_archive(Category.RAPID_BUS_MRTFEEDER, feed_settings)

    assert not result.success
    assert result.error.startswith(prefix)


def test_fetch_interrupted_stream_removes_partial_file(mocker, feed_settings):
    def chunks(chunk_size):
        yield b"PK"
        raise requests.exceptions.ConnectionError("reset by peer")

    response = _response()
    response.iter_content.side_effect = chunks
    mocker.patch("processors.gtfs_static.download.requests.get", return_value=response)

    result = fetch_category_archive(Category.KTMB, feed_settings)

    assert not result.success
    assert list(category_archive_dir(Category.KTMB, feed_settings).glob("*.zip")) == []


def test_fetch_uses_session_when_given(feed_settings):
    session = MagicMock()
    session.get.return_value = _response()

    result = fetch_category_archive(Category.KTMB, feed_settings, session=session)

    assert result.success
    session.get.assert_called_once()


def test_fetch_categories_pauses_between_requests(mocker, feed_settings):
    mocker.patch(
        "processors.gtfs_static.download.requests.get",
        side_effect=[
            _response(),
            requests.exceptions.ConnectionError("down"),
            _response(),
        ],
    )
    sleep = MagicMock()

    results = fetch_categories(
        [Category.RAPID_RAIL_KL, Category.RAPID_BUS_KL, Category.KTMB],
        feed_settings,
        delay_seconds=1.0,
        sleep=sleep,
    )

    assert [r.success for r in results] == [True, False, True]
    assert sleep.call_count == 2
    sleep.assert_called_with(1.0)


def test_fetch_categories_uses_configured_delay(mocker, feed_settings):
    mocker.patch(
        "processors.gtfs_static.download.requests.get", side_effect=lambda *a, **k: _response()
    )
    sleep = MagicMock()

    fetch_categories([Category.RAPID_RAIL_KL, Category.KTMB], feed_settings, sleep=sleep)

    # The fixture sets the delay to zero.
    sleep.assert_not_called()


def test_list_downloaded_archives_newest_first(feed_settings):
    old, new = _place_archives(
        feed_settings,
        Category.KTMB,
        [("ktmb_2024-01-01T00-00-00-000Z.zip", 1_700_000_000),
         ("ktmb_2024-02-01T00-00-00-000Z.zip", 1_700_100_000)],
    )

    archives = list_downloaded_archives(feed_settings)

    assert [info.file_path for info in archives[Category.KTMB]] == [new, old]
    assert archives[Category.RAPID_RAIL_KL] == []
    assert latest_archive(Category.KTMB, feed_settings) == new
    assert latest_archive(Category.RAPID_RAIL_KL, feed_settings) is None


def test_cleanup_keeps_newest_three(feed_settings):
    paths = _place_archives(
        feed_settings,
        Category.RAPID_BUS_KL,
        [(f"rapid-bus-kl_{n}.zip", 1_700_000_000 + n) for n in range(5)],
    )

    result = cleanup_old_archives(feed_settings)

    assert sorted(result.deleted) == sorted(paths[:2])
    assert sorted(result.kept) == sorted(paths[2:])
    assert not result.errors
    assert all(not p.exists() for p in paths[:2])


def test_cleanup_with_fewer_archives_deletes_nothing(feed_settings):
    _place_archives(feed_settings, Category.KTMB, [("ktmb_a.zip", 1_700_000_000)])

    result = cleanup_old_archives(feed_settings, keep=3)

    assert result.deleted == []
    assert len(result.kept) == 1


def test_cleanup_rejects_negative_keep(feed_settings):
    with pytest.raises(ValueError):
        cleanup_old_archives(feed_settings, keep=-1)
