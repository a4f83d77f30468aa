"""
The data objects that flow between processing stages.
"""
import itertools as it
import numpy as np
from delayed_pipeline.exceptions import StaleCacheInconsistency
from delayed_pipeline.geometry import PhysicalGeometry
from delayed_pipeline.region import Region

# Process-wide monotonic clock used to order modifications, information
# passes and executions.
_CLOCK = it.count(1)


def tick():
    """
    Returns:
        int: a timestamp newer than every previously issued timestamp
    """
    return next(_CLOCK)


class DataContainer:
    """
    An N-dimensional array together with the regions that describe it.

    The container is created by its producing stage (``source``) as a
    placeholder. The information pass fills in
    :attr:`largest_possible_region` and :attr:`geometry`, the execute pass
    fills in :attr:`buffer` and :attr:`buffered_region`. Consumers set
    :attr:`requested_region` during region propagation and only read data
    inside the buffered region.

    Args:
        dimension (int): number of index axes
        source (ProcessingStage | None): the stage that produces this data
        source_index (int): which output of the source this is

    Example:
        >>> from delayed_pipeline.container import *  # NOQA
        >>> import numpy as np
        >>> self = DataContainer(2)
        >>> self.largest_possible_region = Region((0, 0), (4, 6))
        >>> self.set_buffer(Region((1, 0), (2, 6)), np.arange(12).reshape(2, 6))
        >>> self.get_region_data(Region((2, 3), (1, 2)))
        array([[ 9, 10]])
        >>> self.invalidate()
        >>> assert self.buffer is None and self.buffered_region.is_empty()
    """
    __slots__ = ('dimension', 'source', 'source_index', 'buffer',
                 'largest_possible_region', 'buffered_region',
                 'requested_region', 'geometry', 'information_time',
                 'data_time', 'meta')

    def __init__(self, dimension, source=None, source_index=0):
        self.dimension = int(dimension)
        self.source = source
        self.source_index = source_index
        self.buffer = None
        empty = Region((0,) * self.dimension, (0,) * self.dimension)
        self.largest_possible_region = empty
        self.buffered_region = empty
        self.requested_region = empty
        self.geometry = PhysicalGeometry.identity(self.dimension)
        self.information_time = 0
        self.data_time = 0
        self.meta = {}

    def __nice__(self):
        parts = ['largest={}'.format(self.largest_possible_region.size)]
        if self.buffer is not None:
            parts.append('buffered={}'.format(self.buffered_region))
        return ', '.join(parts)

    def __repr__(self):
        return '<{}({}) at {}>'.format(self.__class__.__name__,
                                       self.__nice__(), hex(id(self)))

    @property
    def shape(self):
        """
        The shape of the largest possible region.

        Returns:
            Tuple[int, ...]
        """
        return self.largest_possible_region.size

    def empty_region(self):
        return Region((0,) * self.dimension, (0,) * self.dimension)

    def set_information(self, largest_possible_region, geometry):
        """
        Record the result of an information pass.

        Args:
            largest_possible_region (Region):
            geometry (PhysicalGeometry):
        """
        region = Region.coerce(largest_possible_region)
        if region.dimension != self.dimension:
            raise StaleCacheInconsistency(
                'information dimension {} does not match container dimension {}'.format(
                    region.dimension, self.dimension))
        self.largest_possible_region = region
        self.geometry = geometry
        self.information_time = tick()

    def set_buffer(self, region, data):
        """
        Record the result of an execution step.

        Args:
            region (Region): the region the data covers
            data (ndarray): array whose leading axes have shape ``region.size``
        """
        region = Region.coerce(region)
        data = np.asarray(data).view()
        if tuple(data.shape[:self.dimension]) != region.size:
            raise StaleCacheInconsistency(
                'buffer shape {} does not agree with region {}'.format(
                    data.shape, region))
        if not self.largest_possible_region.contains(region):
            raise StaleCacheInconsistency(
                'buffered region {} exceeds largest possible region {}'.format(
                    region, self.largest_possible_region))
        # Consumers get read-only access
        data.flags.writeable = False
        self.buffer = data
        self.buffered_region = region
        self.data_time = tick()

    def invalidate(self):
        """
        Drop the buffered data. The region bookkeeping is kept.
        """
        self.buffer = None
        self.buffered_region = self.empty_region()

    def is_satisfied(self):
        """
        True if the buffered data covers the requested region.

        Returns:
            bool
        """
        if self.buffer is None:
            return False
        return self.buffered_region.contains(self.requested_region)

    def get_region_data(self, region=None):
        """
        A read-only view of the buffered data inside a region.

        Args:
            region (Region | None): defaults to the requested region

        Returns:
            ndarray
        """
        if region is None:
            region = self.requested_region
        region = Region.coerce(region)
        if self.buffer is None or not self.buffered_region.contains(region):
            raise StaleCacheInconsistency(
                'region {} is not inside the buffered region {}'.format(
                    region, self.buffered_region))
        return self.buffer[region.to_slices(relative_to=self.buffered_region)]

    def validate(self):
        """
        Check the region invariants.

        Raises:
            StaleCacheInconsistency
        """
        largest = self.largest_possible_region
        if self.buffer is not None:
            if not largest.contains(self.buffered_region):
                raise StaleCacheInconsistency(
                    'buffered region {} exceeds largest possible region {}'.format(
                        self.buffered_region, largest))
            if tuple(self.buffer.shape[:self.dimension]) != self.buffered_region.size:
                raise StaleCacheInconsistency(
                    'buffer shape {} does not agree with buffered region {}'.format(
                        self.buffer.shape, self.buffered_region))
        if not largest.contains(self.requested_region):
            raise StaleCacheInconsistency(
                'requested region {} exceeds largest possible region {}'.format(
                    self.requested_region, largest))
        return self

    def update(self, region=None, executor=None):
        """
        Bring this container up to date for a region.

        Args:
            region (Region | None): defaults to the largest possible region
            executor (PipelineExecutor | None): defaults to a new executor

        Returns:
            DataContainer: self
        """
        if executor is None:
            from delayed_pipeline.executor import PipelineExecutor
            executor = PipelineExecutor()
        executor.request_output(self, region)
        return self

    def finalize(self, region=None, executor=None):
        """
        Update and return the data for a region.

        Returns:
            ndarray
        """
        self.update(region, executor=executor)
        return self.get_region_data(self.requested_region)
