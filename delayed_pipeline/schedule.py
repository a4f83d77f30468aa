"""
Multi-resolution shrink schedules.

A schedule is an integer matrix with one row per resolution level and one
column per axis. Level 0 is the coarsest level and the last level is the
finest. Every factor is at least one.

Example:
    >>> from delayed_pipeline.schedule import *  # NOQA
    >>> self = ScheduleComputer(dimension=3)
    >>> self.set_num_levels(3)
    >>> print(self.schedule.tolist())
    [[4, 4, 4], [2, 2, 2], [1, 1, 1]]
    >>> self.set_num_levels(4)
    >>> self.set_starting_shrink_factors([8, 4, 2])
    >>> print(self.schedule.tolist())
    [[8, 4, 2], [4, 2, 1], [2, 1, 1], [1, 1, 1]]
    >>> assert is_schedule_downward_divisible(self.schedule)
    >>> assert not is_schedule_downward_divisible([[4, 4], [3, 3]])
"""
import warnings
import numpy as np
from delayed_pipeline.exceptions import DegenerateFactorWarning
from delayed_pipeline.exceptions import InvalidScheduleError
from delayed_pipeline.geometry import PhysicalGeometry
from delayed_pipeline.helpers import coerce_factors
from delayed_pipeline.region import Region


class ScheduleComputer:
    """
    Builds and holds the shrink schedule of a multi-resolution process.

    There are two ways to derive a schedule. Setting a level count uses a
    starting factor of ``2 ** (num_levels - 1)`` on every axis, setting the
    starting factors uses the given per-axis factors. In both cases the
    factor at level ``k`` is ``max(1, floor(start / 2 ** k))``. A schedule can
    also be assigned directly, in which case it is kept as given; only
    :func:`is_schedule_downward_divisible` reports whether it conforms.

    Args:
        dimension (int): number of axes
        num_levels (int): number of resolution levels. Defaults to 1.
        starting_factors (None | Iterable[int]): factors at level 0

    Example:
        >>> from delayed_pipeline.schedule import *  # NOQA
        >>> self = ScheduleComputer(2, num_levels=3, starting_factors=[3, 8])
        >>> print(self.schedule.tolist())
        [[3, 8], [1, 4], [1, 2]]
        >>> self.starting_shrink_factors.tolist()
        [3, 8]
        >>> self.is_downward_divisible()
        False
    """
    __slots__ = ('dimension', '_schedule')

    def __init__(self, dimension, num_levels=1, starting_factors=None):
        if int(dimension) < 1:
            raise InvalidScheduleError('a schedule needs at least one axis')
        self.dimension = int(dimension)
        self._schedule = None
        self.set_num_levels(num_levels)
        if starting_factors is not None:
            self.set_starting_shrink_factors(starting_factors)

    @classmethod
    def from_schedule(cls, schedule):
        """
        Create a computer that holds an explicit schedule.

        Args:
            schedule (ArrayLike): ``num_levels x dimension`` factors

        Returns:
            ScheduleComputer
        """
        schedule = np.asarray(schedule)
        if schedule.ndim != 2:
            raise InvalidScheduleError(
                'schedule must be a 2D matrix, got shape {}'.format(schedule.shape))
        self = cls(schedule.shape[1], num_levels=max(schedule.shape[0], 1))
        self.set_schedule(schedule)
        return self

    def __nice__(self):
        return 'levels={}, schedule={}'.format(
            self.num_levels, self._schedule.tolist())

    def __repr__(self):
        return '<{}({})>'.format(self.__class__.__name__, self.__nice__())

    def __json__(self):
        return self._schedule.tolist()

    @property
    def num_levels(self):
        """
        Returns:
            int
        """
        return len(self._schedule)

    @property
    def schedule(self):
        """
        A copy of the current schedule.

        Returns:
            ndarray: ``num_levels x dimension`` integer matrix
        """
        return self._schedule.copy()

    @property
    def starting_shrink_factors(self):
        """
        The factors of the coarsest level.

        Returns:
            ndarray
        """
        return self._schedule[0].copy()

    def set_num_levels(self, num_levels):
        """
        Reset to ``num_levels`` levels with a starting factor of
        ``2 ** (num_levels - 1)`` on every axis.

        Args:
            num_levels (int): must be at least one
        """
        num_levels = _validate_num_levels(num_levels)
        start = np.full(self.dimension, 2 ** (num_levels - 1), dtype=np.int64)
        self._schedule = compute_schedule(start, num_levels)

    def set_starting_shrink_factors(self, factors):
        """
        Recompute the schedule from per-axis factors at level 0, keeping the
        current number of levels.

        Args:
            factors (int | Iterable[int]):
                a single factor for every axis, or one per axis. Zeros are
                normalized to one with a :class:`DegenerateFactorWarning`.

        Example:
            >>> from delayed_pipeline.schedule import *  # NOQA
            >>> import warnings
            >>> self = ScheduleComputer(3, num_levels=2)
            >>> with warnings.catch_warnings(record=True) as caught:
            >>>     warnings.simplefilter('always')
            >>>     self.set_starting_shrink_factors([0, 0, 0])
            >>> assert caught[0].category is DegenerateFactorWarning
            >>> print(self.schedule.tolist())
            [[1, 1, 1], [1, 1, 1]]
        """
        factors = _normalize_factors(coerce_factors(factors, self.dimension),
                                     'starting shrink factors')
        if factors.shape != (self.dimension,):
            raise InvalidScheduleError(
                'expected {} starting factors, got {}'.format(
                    self.dimension, factors.tolist()))
        self._schedule = compute_schedule(factors, self.num_levels)

    def set_schedule(self, schedule):
        """
        Assign a schedule directly.

        The matrix must have exactly ``num_levels`` rows and ``dimension``
        columns, a mismatch raises :class:`InvalidScheduleError` rather than
        truncating or padding. Factors are kept as given (they are not
        re-derived from the first row) except that zeros are normalized to one
        with a :class:`DegenerateFactorWarning`.

        Args:
            schedule (ArrayLike):

        Example:
            >>> from delayed_pipeline.schedule import *  # NOQA
            >>> self = ScheduleComputer(2, num_levels=2)
            >>> self.set_schedule([[4, 4], [3, 3]])
            >>> print(self.schedule.tolist())
            [[4, 4], [3, 3]]
            >>> assert not self.is_downward_divisible()
            >>> import pytest
            >>> with pytest.raises(InvalidScheduleError):
            >>>     self.set_schedule([[1, 1]])
        """
        matrix = _normalize_factors(schedule, 'schedule')
        expected = (self.num_levels, self.dimension)
        if matrix.shape != expected:
            raise InvalidScheduleError(
                'schedule shape {} does not match (num_levels, dimension) = {}'.format(
                    matrix.shape, expected))
        self._schedule = matrix

    def is_downward_divisible(self):
        """
        Returns:
            bool
        """
        return is_schedule_downward_divisible(self._schedule)

    @staticmethod
    def is_schedule_downward_divisible(schedule):
        """
        See :func:`delayed_pipeline.schedule.is_schedule_downward_divisible`.
        """
        return is_schedule_downward_divisible(schedule)

    def compute_level_geometry(self, level, region, geometry):
        """
        The output region and geometry of a level. See
        :func:`compute_level_geometry`.

        Args:
            level (int):
            region (Region): the full resolution largest possible region
            geometry (PhysicalGeometry): the full resolution geometry

        Returns:
            Tuple[Region, PhysicalGeometry]
        """
        if not 0 <= level < self.num_levels:
            raise IndexError('level {} is out of range for {} levels'.format(
                level, self.num_levels))
        return compute_level_geometry(self._schedule[level], region, geometry)


def compute_schedule(starting_factors, num_levels):
    """
    The recurrence ``schedule[k] = max(1, floor(start / 2 ** k))``.

    Computed zeros are clamped to one without a warning, since they are the
    normal result of halving small factors.

    Args:
        starting_factors (ArrayLike): factors at level 0, all >= 1
        num_levels (int):

    Returns:
        ndarray

    Example:
        >>> from delayed_pipeline.schedule import *  # NOQA
        >>> compute_schedule([5, 1], 3).tolist()
        [[5, 1], [2, 1], [1, 1]]
    """
    num_levels = _validate_num_levels(num_levels)
    start = np.asarray(starting_factors, dtype=np.int64)
    denominators = 2 ** np.arange(num_levels, dtype=np.int64)
    schedule = start[None, :] // denominators[:, None]
    return np.maximum(schedule, 1)


def is_schedule_downward_divisible(schedule):
    """
    True if on every axis each level's factor divides the previous (coarser)
    level's factor.

    This never rejects a schedule, it only reports conformance. A zero factor
    can never divide anything, so it is reported as not divisible.

    Args:
        schedule (ArrayLike): ``num_levels x dimension`` factors

    Returns:
        bool

    Example:
        >>> from delayed_pipeline.schedule import *  # NOQA
        >>> is_schedule_downward_divisible(np.ones((4, 3), dtype=int))
        True
        >>> is_schedule_downward_divisible([[8, 4], [4, 4], [2, 1]])
        True
        >>> is_schedule_downward_divisible([[4, 4], [3, 3]])
        False
    """
    schedule = np.asarray(schedule, dtype=np.int64)
    if schedule.ndim != 2:
        raise InvalidScheduleError('schedule must be a 2D matrix')
    coarse = schedule[:-1]
    fine = schedule[1:]
    if np.any(fine == 0):
        return False
    return bool(np.all(coarse % fine == 0))


def compute_level_geometry(factors, region, geometry):
    """
    Shrink a region and its geometry by per-axis factors.

    The output spacing is ``spacing * factor``, the output size is
    ``max(1, floor(size / factor))`` and the output start index is
    ``ceil(index / factor)``. The origin is chosen so that the physical center
    of the output region coincides with the physical center of the input
    region, which keeps levels aligned even when a factor does not divide the
    size.

    Args:
        factors (ArrayLike): one factor per axis. Zeros are treated as one.
        region (Region): the input region
        geometry (PhysicalGeometry): the input geometry

    Returns:
        Tuple[Region, PhysicalGeometry]

    Example:
        >>> from delayed_pipeline.schedule import *  # NOQA
        >>> region = Region((0, 0, 0), (128, 132, 48))
        >>> geometry = PhysicalGeometry(spacing=(0.5, 2.7, 7.5))
        >>> out_region, out_geom = compute_level_geometry([8, 4, 5], region, geometry)
        >>> out_region
        <Region(index=(0, 0, 0), size=(16, 33, 9))>
        >>> out_geom.spacing.tolist()
        [4.0, 10.8, 37.5]
        >>> in_center = geometry.region_center(region)
        >>> out_center = out_geom.region_center(out_region)
        >>> assert np.allclose(in_center, out_center)
    """
    factors = np.maximum(np.asarray(factors, dtype=np.int64), 1)
    index = np.asarray(region.index, dtype=np.int64)
    size = np.asarray(region.size, dtype=np.int64)
    if len(factors) != len(index):
        raise InvalidScheduleError('expected {} factors, got {}'.format(
            len(index), factors.tolist()))

    out_spacing = geometry.spacing * factors
    out_size = np.maximum(size // factors, 1)
    out_index = -(-index // factors)
    out_region = Region(out_index, out_size)

    in_center = geometry.region_center(region)
    out_center_index = out_index + (out_size - 1) / 2.0
    out_origin = in_center - geometry.direction @ (out_spacing * out_center_index)
    out_geometry = PhysicalGeometry(out_origin, out_spacing,
                                    geometry.direction.copy())
    return out_region, out_geometry


def _validate_num_levels(num_levels):
    if isinstance(num_levels, bool) or int(num_levels) != num_levels:
        raise InvalidScheduleError(
            'number of levels must be an integer, got {!r}'.format(num_levels))
    num_levels = int(num_levels)
    if num_levels < 1:
        raise InvalidScheduleError(
            'number of levels must be at least 1, got {}'.format(num_levels))
    return num_levels


def _normalize_factors(factors, what):
    """
    Coerce factors to an integer array, rejecting negative or fractional
    values and normalizing caller supplied zeros to one.
    """
    arr = np.asarray(factors)
    if arr.size and arr.dtype.kind not in 'iub':
        if arr.dtype.kind != 'f' or not np.all(np.mod(arr, 1) == 0):
            raise InvalidScheduleError(
                '{} must be integers, got {}'.format(what, arr.tolist()))
    arr = arr.astype(np.int64)
    if np.any(arr < 0):
        raise InvalidScheduleError(
            '{} must be non-negative, got {}'.format(what, arr.tolist()))
    if np.any(arr == 0):
        warnings.warn(
            '{} contains zero factors, they were normalized to 1'.format(what),
            DegenerateFactorWarning)
        arr = np.maximum(arr, 1)
    return arr
