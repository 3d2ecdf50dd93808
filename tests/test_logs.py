"""Tests for fetching pod logs."""

from datetime import datetime, timedelta, timezone

import pytest
from kubernetes.client.rest import ApiException

from appquery.errors import FetchError, LogReadError
from appquery.logs import LogStreamer, is_terminated_container_not_found, log_window
from appquery.models import LogOptions

from factories import pod

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def streamer(store, fixed_now: datetime) -> LogStreamer:
    store.add(pod("web-1", {"app": "web"}), cluster="east")
    return LogStreamer(store, now=lambda: fixed_now)


class TestLogWindow:
    """Tests for the time window of a log fetch."""

    def test_since_seconds(self, fixed_now: datetime) -> None:
        """sinceSeconds makes the window start that many seconds before now."""
        window = log_window(LogOptions(since_seconds=60), pod("p", {}), fixed_now)
        assert window.from_date == fixed_now - timedelta(seconds=60)
        assert window.to_date == fixed_now

    def test_creation_timestamp_when_unbounded(self, fixed_now: datetime) -> None:
        """Without sinceTime or sinceSeconds the window starts at pod creation."""
        window = log_window(LogOptions(), pod("p", {}), fixed_now)
        assert window.from_date == CREATED

    def test_since_time_wins_over_since_seconds(self, fixed_now: datetime) -> None:
        since = datetime(2024, 5, 31, tzinfo=timezone.utc)
        window = log_window(LogOptions(since_time=since, since_seconds=60), pod("p", {}), fixed_now)
        assert window.from_date == since

    def test_naive_since_time_is_utc(self, fixed_now: datetime) -> None:
        """A sinceTime without zone is read as UTC, like the toDate it is paired with."""
        opts = LogOptions.model_validate({"sinceTime": "2024-05-31T08:00:00"})
        window = log_window(opts, pod("p", {}), fixed_now)
        assert window.from_date == datetime(2024, 5, 31, 8, tzinfo=timezone.utc)
        assert window.from_date.tzinfo is not None
        assert window.to_document()["fromDate"].endswith("Z")

    def test_options_accept_api_field_names(self) -> None:
        opts = LogOptions.model_validate({"sinceSeconds": 30, "tailLines": 10, "container": "app", "follow": True})
        assert (opts.since_seconds, opts.tail_lines, opts.container) == (30, 10, "app")


class TestLogStreamer:
    """Tests for LogStreamer.stream()."""

    def test_reads_whole_stream(self, store, streamer: LogStreamer, fixed_now: datetime) -> None:
        """Chunks are joined into one text and the window ends now."""
        store.set_logs("east", "default", "web-1", ["line 1\n", "line 2\n", "line 3"])

        result = streamer.stream("east", "default", "web-1", LogOptions(since_seconds=60))

        assert result.logs == "line 1\nline 2\nline 3"
        assert result.err is None
        assert result.info.from_date == fixed_now - timedelta(seconds=60)
        assert result.info.to_date == fixed_now

    def test_options_are_passed_to_the_stream(self, store, streamer: LogStreamer) -> None:
        opts = LogOptions(container="sidecar", previous=True, tail_lines=5)
        streamer.stream("east", "default", "web-1", opts)
        assert store.log_calls == [opts]

    def test_window_defaults_to_pod_creation(self, streamer: LogStreamer) -> None:
        result = streamer.stream("east", "default", "web-1")
        assert result.info.from_date == CREATED

    def test_missing_pod_raises(self, streamer: LogStreamer) -> None:
        """A pod that cannot be fetched aborts the operation."""
        with pytest.raises(FetchError):
            streamer.stream("west", "default", "web-1")

    def test_terminated_container_gone_is_empty_not_error(self, store, streamer: LogStreamer) -> None:
        """The previous container no longer existing yields empty logs."""
        exc = ApiException(status=400, reason="Bad Request")
        exc.body = '{"message":"previous terminated container \\"app\\" in pod \\"web-1\\" not found"}'
        store.fail_logs("east", "default", "web-1", exc)

        result = streamer.stream("east", "default", "web-1", LogOptions(previous=True))

        assert result.logs == ""
        assert result.err is None

    def test_other_open_failure_raises(self, store, streamer: LogStreamer) -> None:
        store.fail_logs("east", "default", "web-1", ApiException(status=403, reason="Forbidden"))
        with pytest.raises(FetchError):
            streamer.stream("east", "default", "web-1")

    def test_read_failure_is_reported_with_partial_text(self, store, streamer: LogStreamer) -> None:
        """A failure while reading keeps what was read and records the error."""
        store.set_logs("east", "default", "web-1", ["line 1\n"], error=LogReadError("connection reset"))

        result = streamer.stream("east", "default", "web-1")

        assert result.logs == "line 1\n"
        assert result.err == "connection reset"


class TestTerminatedContainerMatch:
    def test_matches_api_message(self) -> None:
        err = Exception('previous terminated container "app" in pod "web-1" not found')
        assert is_terminated_container_not_found(err)

    def test_other_message(self) -> None:
        assert not is_terminated_container_not_found(Exception('container "app" in pod "web-1" is waiting to start'))
