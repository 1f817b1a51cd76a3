#!/usr/bin/env python3
"""
heap.py - Lazy k-way merge of sorted line streams
==================================================

The merge engine behind merge-sorted-files. A ``Merger`` holds one
``StreamCursor`` per input stream in a min-heap keyed by the cursor's current
line. Pulling from the merger pops the smallest line, reads the next line from
the same stream and pushes the cursor back, so at most one line per stream is
ever held in memory.

Lines are handled as opaque bytes and compared byte by byte. Records end at
``\\n``; the terminator (``\\n`` or ``\\r\\n``) is stripped from every line.
All other bytes, trailing whitespace and bare ``\\r`` included, are kept.

PYTHON API
==========

    import io
    from merge_sorted_files.merge.heap import Merger

    with Merger() as merger:
        merger.register("file1", io.BytesIO(b"a\\nc\\n"))
        merger.register("file2", io.BytesIO(b"b\\nd\\n"))
        for line in merger:
            print(line)         # b'a', b'b', b'c', b'd'

    # Or write everything to a binary sink
    with Merger() as merger:
        for path in paths:
            merger.register(path, open(path, "rb"))
        merger.emit_all(sys.stdout.buffer)

ORDERING CHECKS
===============

Every stream must be sorted. When a stream's next line compares less than the
line it just produced, ``OutOfOrderError`` is raised naming the stream. The
check happens one line late: the line preceding the violation has already
been produced. The offending stream is closed and dropped; the other streams
are unaffected and the merger can keep being pulled.

Performance:
    - Time Complexity: O(N log k) where N is total lines, k is number of streams
    - Space Complexity: O(k) for the heap
"""

import heapq
import io
import itertools
import sys
from typing import BinaryIO, List, Optional, Tuple

DEFAULT_BUFFER_SIZE = 1024 * 1024


class MergeError(Exception):
    """Base class for data errors found while merging sorted streams."""


class OutOfOrderError(MergeError):
    """
    A stream produced a line smaller than the line before it.

    Attributes:
        label: Label the offending stream was registered under
        previous: Line already produced from that stream
        line: Line that broke the ordering (discarded)
    """

    def __init__(self, label: str, previous: Optional[bytes] = None, line: Optional[bytes] = None):
        super().__init__(f"Input lines in file [{label}] out of order!")
        self.label = label
        self.previous = previous
        self.line = line


def read_record(reader) -> Optional[bytes]:
    """
    Read one line from a buffered binary reader.

    Returns:
        The line without its terminator, or None at end of stream. A blank
        line is returned as b"". Only ``\\n`` ends a record; a bare ``\\r``
        stays in the line.
    """
    line = reader.readline()
    if not line:
        return None
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line


class StreamCursor:
    """
    One input stream and the line currently buffered from it.

    The cursor is the only owner of ``source``; ``close()`` releases it once.
    """

    __slots__ = ("label", "source", "head")

    def __init__(self, label: str, source: BinaryIO, head: Optional[bytes] = None):
        self.label = label
        self.source = source
        self.head = head

    def read_next(self) -> Optional[bytes]:
        """Read the next record from ``source`` (does not touch ``head``)."""
        return read_record(self.source)

    def close(self):
        if self.source is not None:
            source, self.source = self.source, None
            source.close()

    @property
    def closed(self) -> bool:
        return self.source is None

    def __repr__(self):
        return f"StreamCursor(label={self.label!r}, head={self.head!r})"


class Merger:
    """
    Priority-ordered reader over many sorted streams.

    Cursors are ordered by head line, then by label, then by registration
    order. Registration is expected to happen before consumption starts, but
    nothing prevents registering more streams between pulls.

    Not thread-safe: the heap is mutated in place by every pull.
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self.buffer_size = buffer_size
        self._heap: List[Tuple[bytes, str, int, StreamCursor]] = []
        self._sequence = itertools.count()

    def __len__(self):
        """Number of streams that still have unconsumed lines."""
        return len(self._heap)

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        line = self.next_line()
        if line is None:
            raise StopIteration
        return line

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def _buffered(self, label: str, source) -> BinaryIO:
        if isinstance(source, io.TextIOBase):
            raise TypeError(f"Stream [{label}] is opened in text mode, expected a binary stream")
        if isinstance(source, io.RawIOBase):
            return io.BufferedReader(source, buffer_size=self.buffer_size)
        if not hasattr(source, "readline"):
            raise TypeError(f"Stream [{label}] is not a readable stream")
        return source

    def _push(self, cursor: StreamCursor):
        heapq.heappush(self._heap, (cursor.head, cursor.label, next(self._sequence), cursor))

    def register(self, label: str, source) -> Optional[bytes]:
        """
        Add a sorted stream to the merge and read its first line.

        Ownership of ``source`` passes to the merger: it is closed when the
        stream is rejected, exhausted, fails, or the merger is closed.

        Args:
            label: Name used in error messages and as tie-break between
                equal lines (need not be unique)
            source: Readable binary stream. Raw streams are wrapped in an
                io.BufferedReader of ``buffer_size`` bytes.

        Returns:
            The first line of the stream, or None if the stream is empty
            (in which case nothing is added).

        Raises:
            OSError: If reading the first line fails (nothing is added)
            TypeError: If ``source`` is not a readable binary stream
        """
        try:
            reader = self._buffered(label, source)
        except TypeError:
            close = getattr(source, "close", None)
            if close is not None:
                close()
            raise

        cursor = StreamCursor(label, reader)
        try:
            head = cursor.read_next()
        except OSError:
            cursor.close()
            raise

        if head is None:
            cursor.close()
            return None

        cursor.head = head
        self._push(cursor)
        return head

    def next_line(self) -> Optional[bytes]:
        """
        Produce the smallest pending line across all streams.

        Returns:
            The next line in sorted order, or None once every stream is
            exhausted.

        Raises:
            OutOfOrderError: If the stream that produced the smallest line
                turns out to be unsorted. That stream is dropped and the
                smallest line is not returned.
            OSError: If reading the stream's next line fails. That stream is
                dropped.
        """
        if not self._heap:
            return None

        cursor = heapq.heappop(self._heap)[-1]
        previous = cursor.head

        try:
            line = cursor.read_next()
        except OSError:
            cursor.close()
            raise

        if line is None:
            cursor.close()
        elif line < previous:
            cursor.close()
            raise OutOfOrderError(cursor.label, previous, line)
        else:
            cursor.head = line
            self._push(cursor)

        return previous

    def emit_all(self, output: Optional[BinaryIO] = None) -> int:
        """
        Drain the merger, writing each line plus a newline to ``output``.

        Stops at the first error, which is propagated; lines written before
        it stay written.

        Args:
            output: Binary sink (default: sys.stdout.buffer)

        Returns:
            Number of lines written
        """
        if output is None:
            output = sys.stdout.buffer

        lines_written = 0
        for line in self:
            output.write(line)
            output.write(b"\n")
            lines_written += 1
        return lines_written

    def close(self):
        """Close every stream still held by the merger."""
        while self._heap:
            heapq.heappop(self._heap)[-1].close()
