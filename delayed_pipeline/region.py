"""
Axis-aligned boxes in discrete index space.

A :class:`Region` is an ``index`` (the first voxel) and a ``size`` (the number
of voxels) along each axis. Axis ``i`` of a region corresponds to axis ``i`` of
the numpy buffer that holds its data, so a buffer for a region has shape
``region.size`` (possibly followed by component axes).

Example:
    >>> from delayed_pipeline.region import *  # NOQA
    >>> largest = Region((0, 0), (100, 80))
    >>> requested = Region((90, 10), (20, 20))
    >>> assert not largest.contains(requested)
    >>> cropped = requested.intersection(largest)
    >>> print(cropped)
    <Region(index=(90, 10), size=(10, 20))>
    >>> print(cropped.pad(2))
    <Region(index=(88, 8), size=(14, 24))>
    >>> print(cropped.to_slices())
    (slice(90, 100, None), slice(10, 30, None))
"""
import numpy as np
import ubelt as ub


class Region:
    """
    An ``index`` / ``size`` box over a fixed dimensionality.

    A region with any zero size is empty. A region with zero dimensions is
    the degenerate "single aggregate" region, which is not empty.

    Args:
        index (Iterable[int]): starting index on each axis
        size (Iterable[int]): non-negative extent on each axis

    Example:
        >>> from delayed_pipeline.region import Region
        >>> a = Region((0, 0, 0), (4, 5, 6))
        >>> b = Region((1, 1, 1), (2, 2, 2))
        >>> assert a.contains(b) and not b.contains(a)
        >>> assert a.numel == 120
        >>> assert Region((3,), (0,)).is_empty()
        >>> assert not Region((), ()).is_empty()
    """
    __slots__ = ('index', 'size')

    def __init__(self, index, size):
        index = tuple(int(i) for i in index)
        size = tuple(int(s) for s in size)
        if len(index) != len(size):
            raise ValueError(
                'index and size must have the same length: got {} and {}'.format(
                    index, size))
        if any(s < 0 for s in size):
            raise ValueError('region sizes must be non-negative: got {}'.format(size))
        self.index = index
        self.size = size

    def __nice__(self):
        return 'index={}, size={}'.format(self.index, self.size)

    def __repr__(self):
        return '<{}({})>'.format(self.__class__.__name__, self.__nice__())

    __str__ = __repr__

    def __eq__(self, other):
        if not isinstance(other, Region):
            return NotImplemented
        return self.index == other.index and self.size == other.size

    def __hash__(self):
        return hash((self.index, self.size))

    def __json__(self):
        return {'index': list(self.index), 'size': list(self.size)}

    @classmethod
    def from_shape(cls, shape):
        """
        Region starting at the origin covering an array shape.

        Returns:
            Region
        """
        shape = tuple(shape)
        return cls((0,) * len(shape), shape)

    @classmethod
    def from_slices(cls, slices, shape=None):
        """
        Build a region from a tuple of slices.

        Args:
            slices (Tuple[slice, ...]): step-less slices
            shape (None | Tuple[int, ...]):
                needed to resolve ``None`` stops. Negative indexes are not
                wrapped, they are taken literally.

        Returns:
            Region

        Example:
            >>> from delayed_pipeline.region import Region
            >>> Region.from_slices((slice(2, 5), slice(None)), shape=(10, 7))
            <Region(index=(2, 0), size=(3, 7))>
        """
        index = []
        size = []
        for axis, sl in enumerate(slices):
            if sl.step not in {None, 1}:
                raise ValueError('regions cannot be created from strided slices')
            start = 0 if sl.start is None else sl.start
            if sl.stop is None:
                if shape is None:
                    raise ValueError('shape is required to resolve an open slice')
                stop = shape[axis]
            else:
                stop = sl.stop
            index.append(start)
            size.append(max(stop - start, 0))
        return cls(index, size)

    @classmethod
    def from_continuous_bounds(cls, lower, upper):
        """
        The smallest integer region that covers the continuous index bounds
        ``[lower, upper]`` (inclusive on both ends).

        Example:
            >>> from delayed_pipeline.region import Region
            >>> Region.from_continuous_bounds([0.5, -1.2], [3.0, 2.7])
            <Region(index=(0, -2), size=(4, 6))>
        """
        lower = np.floor(np.asarray(lower, dtype=float) + 1e-9).astype(int)
        upper = np.ceil(np.asarray(upper, dtype=float) - 1e-9).astype(int)
        size = np.maximum(upper - lower + 1, 0)
        return cls(lower, size)

    @classmethod
    def coerce(cls, data):
        """
        Args:
            data (Region | dict | Tuple | List[slice]):
                a region, a dict with index and size keys, a
                ``(index, size)`` pair, or a tuple of bounded slices.

        Returns:
            Region
        """
        if isinstance(data, cls):
            return data
        if isinstance(data, dict):
            return cls(data['index'], data['size'])
        if ub.iterable(data):
            data = tuple(data)
            if all(isinstance(d, slice) for d in data):
                return cls.from_slices(data)
            if len(data) == 2:
                index, size = data
                return cls(index, size)
        raise TypeError('Cannot coerce {!r} into a Region'.format(data))

    @property
    def dimension(self):
        """
        Returns:
            int
        """
        return len(self.index)

    @property
    def upper(self):
        """
        The exclusive end index on every axis.

        Returns:
            Tuple[int, ...]
        """
        return tuple(i + s for i, s in zip(self.index, self.size))

    @property
    def numel(self):
        """
        Returns:
            int
        """
        return int(np.prod(self.size, dtype=np.int64))

    def is_empty(self):
        """
        Returns:
            bool
        """
        return any(s == 0 for s in self.size)

    def _check_dims(self, other):
        if other.dimension != self.dimension:
            raise ValueError('region dimensions disagree: {} vs {}'.format(
                self.dimension, other.dimension))

    def contains(self, other):
        """
        True if every voxel of ``other`` lies inside this region.

        Args:
            other (Region):

        Returns:
            bool

        Example:
            >>> from delayed_pipeline.region import Region
            >>> outer = Region((0, 0), (10, 10))
            >>> assert outer.contains(Region((0, 0), (10, 10)))
            >>> assert not outer.contains(Region((-1, 0), (10, 10)))
            >>> assert outer.contains(Region((50, 50), (0, 3)))
        """
        self._check_dims(other)
        if other.is_empty():
            return True
        for a0, a1, b0, b1 in zip(self.index, self.upper, other.index, other.upper):
            if b0 < a0 or b1 > a1:
                return False
        return True

    def intersection(self, other):
        """
        The overlap of two regions. Axes that do not overlap get size zero.

        Args:
            other (Region):

        Returns:
            Region

        Example:
            >>> from delayed_pipeline.region import Region
            >>> a = Region((0, 0), (10, 10))
            >>> print(a.intersection(Region((5, 20), (10, 10))))
            <Region(index=(5, 20), size=(5, 0))>
        """
        self._check_dims(other)
        index = []
        size = []
        for a0, a1, b0, b1 in zip(self.index, self.upper, other.index, other.upper):
            lo = max(a0, b0)
            hi = min(a1, b1)
            index.append(lo)
            size.append(max(hi - lo, 0))
        return self.__class__(index, size)

    crop = intersection

    def intersects(self, other):
        """
        Returns:
            bool
        """
        return not self.intersection(other).is_empty()

    def union(self, other):
        """
        The bounding region of two regions. Empty regions do not contribute.

        Args:
            other (Region):

        Returns:
            Region
        """
        self._check_dims(other)
        if other.is_empty():
            return self
        if self.is_empty():
            return other
        lower = np.minimum(self.index, other.index)
        upper = np.maximum(self.upper, other.upper)
        return self.__class__(lower, upper - lower)

    def pad(self, radius):
        """
        Grow the region on both sides of every axis.

        Args:
            radius (int | Iterable[int]): per-axis padding

        Returns:
            Region
        """
        radius = _broadcast_ints(radius, self.dimension)
        index = [i - r for i, r in zip(self.index, radius)]
        size = [s + 2 * r for s, r in zip(self.size, radius)]
        return self.__class__(index, size)

    def shift(self, offset):
        """
        Translate the region.

        Args:
            offset (int | Iterable[int]):

        Returns:
            Region
        """
        offset = _broadcast_ints(offset, self.dimension)
        return self.__class__([i + o for i, o in zip(self.index, offset)], self.size)

    def to_slices(self, relative_to=None):
        """
        Slices that extract this region from an array.

        Args:
            relative_to (None | Region):
                if given, the slices index into a buffer that holds
                ``relative_to`` instead of one that starts at the origin.

        Returns:
            Tuple[slice, ...]

        Example:
            >>> from delayed_pipeline.region import Region
            >>> buffered = Region((10, 20), (30, 30))
            >>> Region((12, 20), (3, 4)).to_slices(relative_to=buffered)
            (slice(2, 5, None), slice(0, 4, None))
        """
        if relative_to is None:
            offset = (0,) * self.dimension
        else:
            self._check_dims(relative_to)
            offset = relative_to.index
        return tuple(slice(i - o, i - o + s)
                     for i, s, o in zip(self.index, self.size, offset))

    def corners(self):
        """
        The continuous indexes of the first and last voxel on every axis.

        Returns:
            ndarray: a ``2 x D`` array of the lower and upper voxel indexes
        """
        lower = np.asarray(self.index, dtype=float)
        upper = lower + np.asarray(self.size, dtype=float) - 1
        return np.stack([lower, upper])


def _broadcast_ints(value, ndims):
    if ub.iterable(value):
        value = tuple(int(v) for v in value)
        if len(value) != ndims:
            raise ValueError('expected {} values, got {}'.format(ndims, value))
    else:
        value = (int(value),) * ndims
    return value
