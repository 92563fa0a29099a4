import asyncio
from urllib.parse import unquote

import pytest
from conftest import VIDEO_URL, FakeExtractor, FakeProcess, make_metadata
from starlette.requests import ClientDisconnect

from tubestream.exceptions import (
    ExtractionFailedError,
    InvalidURLError,
    StreamingFailureError,
    UpstreamBlockedError,
)
from tubestream.ingestion.process import MediaStream
from tubestream.interfaces import DownloadRequest
from tubestream.service import MetadataService
from tubestream.storage.cache import MetadataCache
from tubestream.streaming.relay import (
    RelayResponse,
    RelaySession,
    RelayState,
    StreamingRelay,
    plan_download,
    sanitize_filename,
)


def make_relay(extractor: FakeExtractor, cache: MetadataCache | None = None) -> StreamingRelay:
    service = MetadataService(extractor, cache or MetadataCache(ttl_seconds=900), ["youtube.com", "youtu.be"])
    return StreamingRelay(service, default_height=1080, poll_interval=0.01)


def spawned_session(process: FakeProcess) -> RelaySession:
    session = RelaySession(DownloadRequest(VIDEO_URL, "720"))
    session.plan = plan_download("My Video", 720)
    session.stream = MediaStream(process, terminate_timeout=0.5)
    session.state = RelayState.PROCESS_SPAWNED
    return session


@pytest.mark.parametrize(
    "name, expected",
    [
        ("My Video", "My Video"),
        ('a<b>c:d"e/f\\g|h?i*j', "abcdefghij"),
        ("tab\tand\nnewline", "tabandnewline"),
        ("many   spaces  here", "many spaces here"),
        ("  padded  ", "padded"),
        ("\x00\x1f", "video"),
        ("", "video"),
        (None, "video"),
        ("???", "video"),
        ("Mötley Crüe – Live", "Mötley Crüe – Live"),
    ],
)
def test_sanitize_filename(name, expected: str) -> None:
    assert sanitize_filename(name) == expected


def test_sanitize_filename_caps_length() -> None:
    assert sanitize_filename("x" * 250) == "x" * 100
    assert sanitize_filename("a" * 99 + " b") == "a" * 99


def test_plan_download_audio() -> None:
    plan = plan_download("My Video", None)

    assert plan.content_type == "audio/mp4"
    assert plan.filename == "My Video.m4a"
    assert plan.format_spec == "bestaudio[ext=m4a]/bestaudio/best"
    assert plan.content_disposition == "attachment; filename*=UTF-8''My%20Video.m4a"


def test_plan_download_video() -> None:
    plan = plan_download("Clip / Part 1", 720)

    assert plan.content_type == "video/mp4"
    assert plan.filename == "Clip Part 1-720p.mp4"
    assert plan.format_spec.startswith("best[height<=720][ext=mp4]")
    assert unquote(plan.content_disposition.split("''", 1)[1]) == "Clip Part 1-720p.mp4"


@pytest.mark.anyio
async def test_happy_path_streams_in_order() -> None:
    extractor = FakeExtractor(chunks=[b"one", b"two", b"three"])
    relay = make_relay(extractor)

    session = await relay.open(DownloadRequest(VIDEO_URL, "480"))
    assert session.state is RelayState.PROCESS_SPAWNED

    body = b"".join([chunk async for chunk in session.body()])

    assert body == b"onetwothree"
    assert session.state is RelayState.COMPLETED
    assert session.bytes_sent == len(body)
    assert session.plan.filename == "My Video-480p.mp4"
    assert extractor.stream_calls[0][1].startswith("best[height<=480]")
    assert session.stream.closed


@pytest.mark.anyio
async def test_invalid_url_never_spawns() -> None:
    extractor = FakeExtractor()
    relay = make_relay(extractor)

    with pytest.raises(InvalidURLError):
        await relay.open(DownloadRequest("https://example.com/video", "720"))

    assert extractor.stream_calls == []
    assert extractor.metadata_calls == []


@pytest.mark.anyio
async def test_uses_cached_title_without_fetching() -> None:
    extractor = FakeExtractor()
    cache = MetadataCache(ttl_seconds=900)
    cache.put(VIDEO_URL, make_metadata("Cached Title"))
    relay = make_relay(extractor, cache)

    session = await relay.open(DownloadRequest(VIDEO_URL, "audio"))

    assert session.plan.filename == "Cached Title.m4a"
    assert extractor.metadata_calls == []
    await session.close()


@pytest.mark.anyio
async def test_metadata_failure_falls_back_to_generic_name() -> None:
    extractor = FakeExtractor(metadata_error=ExtractionFailedError("boom"))
    relay = make_relay(extractor)

    session = await relay.open(DownloadRequest(VIDEO_URL, None))

    assert session.plan.filename == "video-1080p.mp4"
    assert session.plan.height == 1080
    await session.close()


@pytest.mark.anyio
async def test_failure_before_first_byte_raises_typed_error() -> None:
    extractor = FakeExtractor(
        chunks=[],
        exit_code=1,
        stderr=b"ERROR: [youtube] abc: Sign in to confirm you're not a bot\n",
    )
    relay = make_relay(extractor)

    with pytest.raises(UpstreamBlockedError):
        await relay.open(DownloadRequest(VIDEO_URL, "720"))

    assert extractor.processes[0].returncode == 1


@pytest.mark.anyio
async def test_silent_failure_before_first_byte() -> None:
    relay = make_relay(FakeExtractor(chunks=[], exit_code=2))

    with pytest.raises(StreamingFailureError):
        await relay.open(DownloadRequest(VIDEO_URL, "720"))


@pytest.mark.anyio
async def test_empty_successful_output_completes() -> None:
    relay = make_relay(FakeExtractor(chunks=[], exit_code=0))

    session = await relay.open(DownloadRequest(VIDEO_URL, "720"))
    body = [chunk async for chunk in session.body()]

    assert body == []
    assert session.state is RelayState.COMPLETED


@pytest.mark.anyio
async def test_failure_after_first_byte_ends_stream() -> None:
    process = FakeProcess()
    session = spawned_session(process)
    process.feed(b"partial")
    await session.prime()

    received = []
    with pytest.raises(StreamingFailureError):
        async for chunk in session.body():
            received.append(chunk)
            process.finish(1, stderr=b"ERROR: fragment 12 not found\n")

    assert received == [b"partial"]
    assert session.state is RelayState.FAILED
    assert session.bytes_sent == len(b"partial")


@pytest.mark.anyio
async def test_disconnect_mid_stream_terminates_child() -> None:
    process = FakeProcess()
    session = spawned_session(process)
    process.feed(b"first")
    await session.prime()

    received: list[bytes] = []

    async def consume() -> None:
        async for chunk in session.body():
            received.append(chunk)

    task = asyncio.create_task(consume())
    while not received:
        await asyncio.sleep(0)
    process.feed(b"second")
    while len(received) < 2:
        await asyncio.sleep(0)

    # Consumer is now parked on the next read.
    task.cancel()
    await asyncio.sleep(0)

    assert process.signals == ["SIGTERM"]

    with pytest.raises(asyncio.CancelledError):
        await task

    process.feed(b"late")
    assert received == [b"first", b"second"]
    assert session.state is RelayState.ABORTED
    assert session.stream.closed


@pytest.mark.anyio
async def test_disconnect_before_first_byte() -> None:
    process = FakeProcess()
    session = spawned_session(process)

    async def gone() -> bool:
        return True

    with pytest.raises(ClientDisconnect):
        await session.prime(is_disconnected=gone, poll_interval=0.01)

    assert session.state is RelayState.ABORTED
    await session.close()
    assert process.signals == ["SIGTERM"]


@pytest.mark.anyio
async def test_close_before_body_starts_aborts() -> None:
    process = FakeProcess()
    session = spawned_session(process)
    process.feed(b"x")
    await session.prime()

    await session.close()

    assert session.state is RelayState.ABORTED
    assert process.signals == ["SIGTERM"]


HTTP_SCOPE = {"type": "http", "method": "GET", "path": "/api/download-stream", "headers": []}


def message_types(messages: list[dict]) -> list[str]:
    return [m["type"] for m in messages]


@pytest.mark.anyio
async def test_response_completes_with_final_body_message() -> None:
    process = FakeProcess()
    session = spawned_session(process)
    process.feed(b"whole")
    process.finish(0)
    await session.prime()

    messages: list[dict] = []

    async def send(message: dict) -> None:
        messages.append(message)

    async def receive() -> dict:
        await asyncio.Event().wait()

    await RelayResponse(session)(HTTP_SCOPE, receive, send)

    assert message_types(messages) == [
        "http.response.start",
        "http.response.body",
        "http.response.body",
    ]
    assert messages[1]["body"] == b"whole"
    assert messages[-1]["more_body"] is False
    assert session.state is RelayState.COMPLETED


@pytest.mark.anyio
async def test_response_stops_child_on_http_disconnect() -> None:
    process = FakeProcess()
    session = spawned_session(process)
    process.feed(b"first")
    await session.prime()

    messages: list[dict] = []
    first_body_sent = asyncio.Event()

    async def send(message: dict) -> None:
        messages.append(message)
        if message["type"] == "http.response.body":
            first_body_sent.set()

    async def receive() -> dict:
        await first_body_sent.wait()
        return {"type": "http.disconnect"}

    await RelayResponse(session)(HTTP_SCOPE, receive, send)

    process.feed(b"late")
    assert process.signals == ["SIGTERM"]
    assert session.state is RelayState.ABORTED
    assert session.stream.closed
    assert message_types(messages) == ["http.response.start", "http.response.body"]
    assert messages[1]["body"] == b"first"


@pytest.mark.anyio
async def test_response_left_unfinished_when_child_fails_mid_stream() -> None:
    process = FakeProcess()
    session = spawned_session(process)
    process.feed(b"partial")
    await session.prime()

    messages: list[dict] = []

    async def send(message: dict) -> None:
        messages.append(message)
        if message["type"] == "http.response.body":
            process.finish(1, stderr=b"ERROR: fragment 12 not found\n")

    async def receive() -> dict:
        await asyncio.Event().wait()

    await RelayResponse(session)(HTTP_SCOPE, receive, send)

    assert message_types(messages) == ["http.response.start", "http.response.body"]
    assert messages[1]["body"] == b"partial"
    assert all(m.get("more_body", True) for m in messages[1:])
    assert session.state is RelayState.FAILED
    assert session.stream.closed
