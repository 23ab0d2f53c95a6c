"""
Chunked Series Module

Append-only flat storage split into per-clip chunks.

Every source clip contributes one contiguous run of items (poses or trajectory
points) to a single flat array. The boundaries of those runs are kept as
cumulative offsets:

    [0, 3, 5, 7]  ->  chunk 0 = [0, 3), chunk 1 = [3, 5), chunk 2 = [5, 7)

Lookups by chunk index are O(1). Time based lookups are provided by
TimedSeries for series sampled at a fixed interval.
"""

from typing import Iterator, List, Tuple

import numpy as np

# Absorbs float error when a time lands exactly on an interval multiple
_OFFSET_EPSILON = 1e-9


def sample_count(duration: float, interval: float) -> int:
    """Number of samples at `interval` covering `duration`, both ends included."""
    return int(np.floor(duration / interval + _OFFSET_EPSILON)) + 1


class ChunkOutOfRangeError(IndexError):
    """Raised when a chunk index does not exist in a series."""


class ChunkOffsets:
    """
    Cumulative boundaries of chunks inside a flat array.

    The first element is always 0 and offsets are strictly increasing,
    so the number of chunks is always one less than the number of offsets.
    """

    def __init__(self, offsets=None):
        if offsets is None:
            self._offsets = [0]
            return

        offsets = [int(o) for o in offsets]
        if not offsets or offsets[0] != 0:
            raise ValueError("Chunk offsets must start with 0")
        if any(b <= a for a, b in zip(offsets, offsets[1:])):
            raise ValueError(f"Chunk offsets must be strictly increasing: {offsets}")
        self._offsets = offsets

    @property
    def num_chunks(self) -> int:
        return len(self._offsets) - 1

    @property
    def total_len(self) -> int:
        """Number of items covered by all chunks."""
        return self._offsets[-1]

    def push_chunk(self, chunk_len: int):
        """Append a chunk boundary at `last + chunk_len`."""
        if chunk_len <= 0:
            raise ValueError(f"Chunk length must be greater than 0, got {chunk_len}")
        self._offsets.append(self._offsets[-1] + int(chunk_len))

    def get_chunk(self, index: int) -> Tuple[int, int]:
        """
        Get the half-open item range of a chunk.

        Args:
            index: Chunk index

        Returns:
            tuple: (start, end) item indices

        Raises:
            ChunkOutOfRangeError: If index is not a valid chunk index
        """
        if index < 0 or index >= self.num_chunks:
            raise ChunkOutOfRangeError(f"Chunk index {index} out of range (num_chunks={self.num_chunks})")
        return self._offsets[index], self._offsets[index + 1]

    def iter(self) -> Iterator[Tuple[int, int]]:
        for i in range(self.num_chunks):
            yield self._offsets[i], self._offsets[i + 1]

    def to_list(self) -> List[int]:
        return list(self._offsets)

    def __len__(self):
        return len(self._offsets)

    def __eq__(self, other):
        return isinstance(other, ChunkOffsets) and self._offsets == other._offsets

    def __repr__(self):
        return f"ChunkOffsets({self._offsets})"


class ChunkedSeries:
    """
    Flat numpy array of items grouped into chunks.

    Items may have any trailing shape or a structured dtype. Appended blocks
    are kept in a list and consolidated into one contiguous array on the
    first read after a push, so appends stay amortized O(1).

    Args:
        item_shape: Shape of a single item (e.g. (num_channels,) for poses)
        dtype: numpy dtype of the items
    """

    def __init__(self, item_shape=(), dtype=np.float64):
        self.item_shape = tuple(item_shape)
        self.dtype = np.dtype(dtype)
        self.offsets = ChunkOffsets()
        self._blocks = []
        self._items = np.zeros((0,) + self.item_shape, dtype=self.dtype)

    @property
    def num_chunks(self) -> int:
        return self.offsets.num_chunks

    @property
    def items(self) -> np.ndarray:
        """All items as one contiguous array."""
        if self._blocks:
            self._items = np.concatenate([self._items] + self._blocks, axis=0)
            self._blocks = []
        return self._items

    def push_chunk(self, items):
        """
        Append a block of items as a new chunk.

        Args:
            items: array-like of shape (n,) + item_shape, n > 0
        """
        block = np.asarray(items, dtype=self.dtype)
        if block.shape[1:] != self.item_shape:
            raise ValueError(f"Chunk items have shape {block.shape[1:]}, expected {self.item_shape}")
        self.offsets.push_chunk(len(block))
        self._blocks.append(block.copy())

    def get_chunk(self, index: int) -> np.ndarray:
        """Items of one chunk (read-only view)."""
        start, end = self.offsets.get_chunk(index)
        view = self.items[start:end]
        view.flags.writeable = False
        return view

    def chunk_len(self, index: int) -> int:
        start, end = self.offsets.get_chunk(index)
        return end - start

    def iter_chunk(self) -> Iterator[np.ndarray]:
        """Iterate chunk by chunk, in insertion order. Restartable."""
        items = self.items
        for start, end in self.offsets.iter():
            view = items[start:end]
            view.flags.writeable = False
            yield view

    def __len__(self):
        return self.offsets.total_len


class TimedSeries(ChunkedSeries):
    """
    Chunked series whose items are sampled at a fixed time interval.

    Args:
        interval: Seconds between two consecutive items of a chunk
        item_shape: Shape of a single item
        dtype: numpy dtype of the items
    """

    def __init__(self, interval: float, item_shape=(), dtype=np.float64):
        if not interval > 0.0:
            raise ValueError(f"Interval time between items must be greater than 0, got {interval}")
        super().__init__(item_shape=item_shape, dtype=dtype)
        self.interval = float(interval)

    def time_from_chunk_offset(self, chunk_offset: int) -> float:
        return chunk_offset * self.interval

    def chunk_offset_from_time(self, time: float) -> int:
        """Floored item offset inside a chunk for a time value."""
        return int(np.floor(time / self.interval + _OFFSET_EPSILON))

    def sample_position(self, time: float) -> Tuple[int, float]:
        """
        Locate a time between two items.

        Returns:
            tuple: (start offset, interpolation factor toward start + 1)
        """
        start = self.chunk_offset_from_time(time)
        leak = time - self.time_from_chunk_offset(start)
        return start, float(np.clip(leak / self.interval, 0.0, 1.0))

    def chunk_duration(self, index: int) -> float:
        """Duration of a chunk. Two items make one segment."""
        return (self.chunk_len(index) - 1) * self.interval
