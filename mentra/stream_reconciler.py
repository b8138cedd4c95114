"""
Incremental reconciliation of a streamed reply.

The backend sends the normal-mode reply as a plain text stream with no
guarantee on chunk boundaries.  :class:`StreamReconciler` keeps the running
text and, after every chunk, hands the *whole* accumulated text to a
``publish`` callback so the in-flight assistant turn always shows a prefix
of the final reply.
"""

import codecs
import logging

log = logging.getLogger("mentra")


class StreamInterrupted(Exception):
    """The stream failed before its end-of-stream signal.

    Attributes
    ----------
    partial : str
        Text accumulated before the failure (already published).
    """

    def __init__(self, message: str, *, partial: str = "") -> None:
        self.partial = partial
        super().__init__(message)


class StreamReconciler:
    """Accumulate text chunks and republish the growing message."""

    def __init__(self, publish=None) -> None:
        self._publish = publish
        self._parts: list[str] = []
        self._text = ""
        self._chunks = 0
        self._finished = False
        # Multi-byte characters may be split across byte chunks.
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def text(self) -> str:
        return self._text

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, chunk: str | bytes | None) -> str:
        """Append *chunk* and publish the full text.  Empty chunks are fine."""
        if self._finished:
            raise RuntimeError("feed() called after the stream finished")
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        if chunk:
            self._parts.append(chunk)
            self._text = "".join(self._parts)
        self._chunks += 1
        if self._publish is not None:
            self._publish(self._text)
        return self._text

    def finish(self) -> str:
        """Mark the end of the stream and return the final text."""
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._parts.append(tail)
            self._text = "".join(self._parts)
        self._finished = True
        log.debug("[STREAM] Finished after %d chunk(s), %d chars",
                  self._chunks, len(self._text))
        return self._text

    def consume(self, chunks) -> str:
        """Feed every chunk of the iterable *chunks*, then finish.

        Exhausting the iterable is the end-of-stream signal.  Any exception
        raised while pulling chunks stops accumulation and is re-raised as
        :class:`StreamInterrupted` carrying the partial text.
        """
        iterator = iter(chunks)
        while True:
            try:
                chunk = next(iterator)
            except StopIteration:
                break
            except Exception as exc:
                self._finished = True
                log.warning("[STREAM] Interrupted after %d chunk(s): %s",
                            self._chunks, exc)
                raise StreamInterrupted(
                    f"The reply was interrupted: {exc}", partial=self._text,
                ) from exc
            self.feed(chunk)
        return self.finish()
