"""Request body materialisation.

A retried request must resend an identical payload on every attempt, so each
supported body representation is turned, once, into a *body producer*: a
zero-argument callable returning a fresh readable binary stream positioned at the
start of the payload.  Supported inputs, in dispatch order:

* ``None`` -- no payload.
* ``bytes`` / ``str`` -- captured by value (``str`` is UTF-8 encoded).
* ``bytearray`` / ``memoryview`` / :class:`io.BytesIO` -- the current contents are
  copied, so later mutation of the original object does not leak into retries.
* A zero-argument callable returning a stream (or bytes) -- called once up front to
  surface errors and discover the length, then reused verbatim.
* A seekable stream -- rewound with ``seek(0)`` before each attempt.  The same
  object is handed to the transport every time, so a transport still reading it
  concurrently on retry can race; prefer bytes or a factory where possible.
* Any other readable stream -- drained into memory once.
"""

from __future__ import annotations

import io
from typing import Any, BinaryIO, Callable, Optional, Tuple, Union

from RetryRotor.errors import BodyProducerError, InvalidBodyType

__all__ = ["BodyProducer", "materialize_body"]

#: Factory returning a fresh readable payload stream for one attempt
BodyProducer = Callable[[], BinaryIO]

ReaderFactory = Callable[[], Union[BinaryIO, bytes]]


def _bytes_producer(data: bytes) -> BodyProducer:
    def produce() -> BinaryIO:
        return io.BytesIO(data)

    return produce


def _reported_length(stream: Any) -> Optional[int]:
    """Length advertised by an in-memory reader, or ``None`` when unknown."""
    if isinstance(stream, (bytes, bytearray, memoryview)):
        return len(stream)
    if isinstance(stream, io.BytesIO):
        return stream.getbuffer().nbytes - stream.tell()
    length = getattr(stream, "__len__", None)
    if callable(length):
        return int(length())
    return None


def _is_stream(value: Any) -> bool:
    return callable(getattr(value, "read", None))


def _is_seekable(value: Any) -> bool:
    if not callable(getattr(value, "seek", None)):
        return False
    seekable = getattr(value, "seekable", None)
    return bool(seekable()) if callable(seekable) else True


def _as_bytes(chunk: Union[bytes, str, bytearray]) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    return bytes(chunk)


def _wrap_factory(factory: ReaderFactory) -> BodyProducer:
    def produce() -> BinaryIO:
        produced = factory()
        if isinstance(produced, (bytes, bytearray, str)):
            return io.BytesIO(_as_bytes(produced))
        return produced

    return produce


def _rewinding_producer(stream: BinaryIO) -> BodyProducer:
    def produce() -> BinaryIO:
        stream.seek(0)
        return stream

    return produce


def materialize_body(raw: Any) -> Tuple[Optional[BodyProducer], Optional[int]]:
    """Resolve ``raw`` into a replayable body producer.

    Args:
        raw: Any supported body representation (see module docstring).

    Returns:
        ``(producer, content_length)``; both are ``None`` for an empty body, and the
        length is ``None`` whenever it cannot be determined up front.

    Raises:
        InvalidBodyType: ``raw`` is not a supported representation.
        BodyProducerError: a reader factory failed on its trial invocation.
    """
    if raw is None:
        return None, None

    if isinstance(raw, (bytes, str)):
        data = _as_bytes(raw)
        return _bytes_producer(data), len(data)

    if isinstance(raw, (bytearray, memoryview)):
        data = bytes(raw)
        return _bytes_producer(data), len(data)

    if isinstance(raw, io.BytesIO):
        data = raw.getvalue()[raw.tell():]
        return _bytes_producer(data), len(data)

    if _is_stream(raw):
        if _is_seekable(raw):
            return _rewinding_producer(raw), _reported_length(raw)
        data = _as_bytes(raw.read())
        return _bytes_producer(data), len(data)

    if callable(raw):
        try:
            trial = raw()
        except Exception as exc:
            raise BodyProducerError(f"body factory {raw!r} failed: {exc}") from exc
        length = _reported_length(trial)
        close = getattr(trial, "close", None)
        if callable(close):
            close()
        return _wrap_factory(raw), length

    raise InvalidBodyType(type(raw))
