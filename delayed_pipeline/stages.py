"""
Concrete processing stages.

Example:
    >>> from delayed_pipeline.stages import *  # NOQA
    >>> import numpy as np
    >>> data = np.arange(64, dtype=float).reshape(8, 8)
    >>> src = ImageSource(data, spacing=(0.5, 2.0))
    >>> doubled = FunctorStage(src, func=lambda x: x * 2)
    >>> smooth = NeighborhoodStage(doubled, radius=1, kind='mean')
    >>> roi = RegionOfInterest(smooth, Region((2, 2), (3, 4)))
    >>> final = roi.finalize()
    >>> final.shape
    (3, 4)
    >>> # The filter only computed what the region of interest needed
    >>> print(smooth.output.buffered_region)
    <Region(index=(2, 2), size=(3, 4))>
    >>> print(doubled.output.buffered_region)
    <Region(index=(1, 1), size=(5, 6))>
    >>> assert np.allclose(final, data[2:5, 2:6] * 2)
"""
import numpy as np
import ubelt as ub
from delayed_pipeline.exceptions import InsufficientInputError
from delayed_pipeline.geometry import PhysicalGeometry
from delayed_pipeline.helpers import chunk_bounds
from delayed_pipeline.region import Region
from delayed_pipeline.stage_base import USE_SLOTS
from delayed_pipeline.stage_base import SourceStage
from delayed_pipeline.stage_base import UnaryStage

__docstubs__ = """
from delayed_pipeline.container import DataContainer
"""


class ImageSource(SourceStage):
    """
    An in-memory array as the root of a pipeline.

    The leading ``dimension`` axes of the array are index axes, any remaining
    axes are per-voxel components (e.g. color channels). The source always
    buffers its whole extent.

    Args:
        data (ArrayLike): the array
        spacing (None | Iterable[float]): voxel size, defaults to ones
        origin (None | Iterable[float]): location of index zero
        direction (None | ArrayLike): axis directions, defaults to identity
        dimension (None | int): number of index axes, defaults to ``data.ndim``

    Example:
        >>> from delayed_pipeline.stages import *  # NOQA
        >>> import numpy as np
        >>> rgb = np.zeros((5, 7, 3), dtype=np.uint8)
        >>> self = ImageSource(rgb, dimension=2)
        >>> _ = self.update()
        >>> self.output.shape
        (5, 7)
        >>> self.output.buffer.shape
        (5, 7, 3)
    """
    if USE_SLOTS:
        __slots__ = ('_data',)

    def __init__(self, data, spacing=None, origin=None, direction=None,
                 dimension=None):
        data = np.asarray(data)
        if dimension is None:
            dimension = data.ndim
        if dimension > data.ndim:
            raise ValueError('data has {} axes, but dimension is {}'.format(
                data.ndim, dimension))
        super().__init__(dimension=dimension)
        self._data = data
        self.meta['spacing'] = spacing
        self.meta['origin'] = origin
        self.meta['direction'] = direction

    def __nice__(self):
        return '{}, {}'.format(self._data.shape, self._data.dtype)

    @property
    def data(self):
        return self._data

    def set_data(self, data):
        """
        Replace the array and mark the source modified.

        Args:
            data (ArrayLike): must have at least ``dimension`` axes
        """
        data = np.asarray(data)
        if data.ndim < self.dimension:
            raise ValueError('data has {} axes, but dimension is {}'.format(
                data.ndim, self.dimension))
        self._data = data
        self.modified()

    def generate_output_information(self):
        dimension = self.dimension
        geometry = PhysicalGeometry(origin=self.meta['origin'],
                                    spacing=self.meta['spacing'],
                                    direction=self.meta['direction'],
                                    dimension=dimension)
        region = Region.from_shape(self._data.shape[:dimension])
        self.output.set_information(region, geometry)

    def generate_data(self):
        out = self.output
        out.set_buffer(out.largest_possible_region, self._data)
        self.update_progress(1.0)


class FunctorStage(UnaryStage):
    """
    Apply a per-voxel function to the requested region.

    The function receives an array whose leading axes have the shape of the
    requested region and must return an array with the same leading shape.
    Because it only looks at one voxel at a time the input request is the
    output request.

    Args:
        input (ProcessingStage | DataContainer): upstream data
        func (Callable[[ndarray], ndarray]): vectorized per-voxel function
        num_workers (int):
            if positive the requested region is split into that many chunks
            along the first axis, which are evaluated by a thread pool.

    Example:
        >>> from delayed_pipeline.stages import *  # NOQA
        >>> import numpy as np
        >>> src = ImageSource(np.arange(40).reshape(10, 4))
        >>> self = FunctorStage(src, np.sqrt, num_workers=3)
        >>> result = self.finalize()
        >>> assert np.allclose(result, np.sqrt(np.arange(40).reshape(10, 4)))
    """
    if USE_SLOTS:
        __slots__ = ()

    def __init__(self, input, func, num_workers=0):
        super().__init__(input)
        self.meta['func'] = func
        self.meta['num_workers'] = num_workers

    def __nice__(self):
        func = self.meta['func']
        return '{}, {}'.format(getattr(func, '__name__', func.__class__.__name__),
                               self.output.shape)

    def generate_data(self):
        out = self.output
        func = self.meta['func']
        num_workers = self.meta['num_workers']
        data = self.input_data()
        requested = out.requested_region

        if num_workers and len(data) > 1:
            # Threads write into disjoint row chunks
            chunks = [data[a:b] for a, b in chunk_bounds(len(data), num_workers)]
            results = []
            with ub.Executor(mode='thread', max_workers=num_workers) as pool:
                jobs = [pool.submit(func, chunk) for chunk in chunks]
                for idx, job in enumerate(jobs, start=1):
                    results.append(np.asarray(job.result()))
                    self.update_progress(idx / len(jobs))
            result = np.concatenate(results, axis=0)
        else:
            result = np.asarray(func(data))
            self.update_progress(1.0)
        out.set_buffer(requested, result)


class NeighborhoodStage(UnaryStage):
    """
    A filter with spatial support over a square neighborhood.

    The input request is the output request grown by ``radius`` on every axis
    and cropped to the input. Outside the input the nearest edge value is
    used, so computing any sub-region gives the same values as filtering the
    whole input.

    Args:
        input (ProcessingStage | DataContainer): upstream data
        radius (int | Iterable[int]): neighborhood half width on each axis
        kind (str): one of 'mean', 'median', or 'gaussian'. The gaussian
            kernel is truncated at ``radius`` with ``sigma = radius / 3``.

    Example:
        >>> from delayed_pipeline.stages import *  # NOQA
        >>> import numpy as np
        >>> from scipy import ndimage
        >>> data = np.random.RandomState(0).rand(16, 16)
        >>> src = ImageSource(data)
        >>> self = NeighborhoodStage(src, radius=2, kind='median')
        >>> part = self.finalize(Region((0, 5), (4, 4)))
        >>> full = ndimage.median_filter(data, size=5, mode='nearest')
        >>> assert np.allclose(part, full[0:4, 5:9])
    """
    if USE_SLOTS:
        __slots__ = ()

    KINDS = ('mean', 'median', 'gaussian')

    def __init__(self, input, radius=1, kind='mean'):
        super().__init__(input)
        self.meta['radius'] = self._check_radius(radius)
        self.meta['kind'] = self._check_kind(kind)

    def _check_kind(self, kind):
        if kind not in self.KINDS:
            raise KeyError('Unknown neighborhood kind {!r}, expected one of {}'.format(
                kind, self.KINDS))
        return kind

    def _check_radius(self, radius):
        radius_arr = np.asarray(radius)
        if np.any(radius_arr < 0) or not np.issubdtype(radius_arr.dtype, np.integer):
            raise ValueError('radius must be a non-negative integer, got {!r}'.format(radius))
        return radius

    def set_params(self, **kwargs):
        """
        Example:
            >>> from delayed_pipeline.stages import *  # NOQA
            >>> import numpy as np
            >>> self = NeighborhoodStage(ImageSource(np.zeros((8, 8))))
            >>> self.set_params(kind='median', radius=(1, 2))
            >>> self.meta['kind']
            'median'
        """
        kwargs = dict(kwargs)
        if 'kind' in kwargs:
            kwargs['kind'] = self._check_kind(kwargs['kind'])
        if 'radius' in kwargs:
            kwargs['radius'] = self._check_radius(kwargs['radius'])
        super().set_params(**kwargs)

    def __nice__(self):
        return '{}, r={}, {}'.format(self.meta['kind'], self.meta['radius'],
                                     self.output.shape)

    def generate_data(self):
        from scipy import ndimage
        out = self.output
        inp = self.input
        block = inp.get_region_data(inp.requested_region)
        kind = self.meta['kind']

        dimension = self.dimension
        radius = np.broadcast_to(np.asarray(self.meta['radius']), (dimension,))
        num_components = block.ndim - dimension
        radius = list(radius) + [0] * num_components

        if kind == 'mean':
            size = [2 * r + 1 for r in radius]
            filtered = ndimage.uniform_filter(block.astype(float), size=size,
                                              mode='nearest')
        elif kind == 'median':
            size = [2 * r + 1 for r in radius]
            filtered = ndimage.median_filter(block, size=size, mode='nearest')
        else:
            sigma = [r / 3.0 for r in radius]
            filtered = ndimage.gaussian_filter(block.astype(float), sigma=sigma,
                                               truncate=3.0, mode='nearest')
        self.update_progress(0.9)

        sl = out.requested_region.to_slices(relative_to=inp.requested_region)
        out.set_buffer(out.requested_region, filtered[sl])
        self.update_progress(1.0)


class RegionOfInterest(UnaryStage):
    """
    Extract a sub-region as a new image whose index space starts at zero.

    The physical geometry is preserved: the output origin is the physical
    location of the first voxel of the region of interest. A region that
    only partially overlaps the input is cropped to it.

    Args:
        input (ProcessingStage | DataContainer): upstream data
        region (Region | Tuple): the region of interest in input index space

    Example:
        >>> from delayed_pipeline.stages import *  # NOQA
        >>> import numpy as np
        >>> src = ImageSource(np.arange(100).reshape(10, 10), spacing=(2, 3))
        >>> self = RegionOfInterest(src, Region((4, 5), (3, 3)))
        >>> self.finalize(Region((1, 1), (2, 2)))
        array([[56, 57],
               [66, 67]])
        >>> self.output.geometry.origin.tolist()
        [8.0, 15.0]
    """
    if USE_SLOTS:
        __slots__ = ()

    def __init__(self, input, region):
        super().__init__(input)
        self.meta['region'] = Region.coerce(region)

    def set_params(self, **kwargs):
        kwargs = dict(kwargs)
        if 'region' in kwargs:
            kwargs['region'] = Region.coerce(kwargs['region'])
        super().set_params(**kwargs)

    def __nice__(self):
        return '{}'.format(self.meta['region'])

    def effective_region(self):
        """
        The region of interest cropped to the input.

        Returns:
            Region

        Raises:
            InsufficientInputError: if the region of interest does not overlap
                the input at all.
        """
        roi = self.meta['region']
        largest = self.input.largest_possible_region
        cropped = roi.intersection(largest)
        if cropped.is_empty():
            raise InsufficientInputError(
                'region of interest {} does not overlap the input {}'.format(
                    roi, largest),
                stage=self, requested=roi, largest=largest)
        return cropped

    def generate_output_information(self):
        cropped = self.effective_region()
        in_geom = self.input.geometry
        geometry = PhysicalGeometry(in_geom.index_to_point(cropped.index),
                                    in_geom.spacing.copy(),
                                    in_geom.direction.copy())
        self.output.set_information(Region.from_shape(cropped.size), geometry)

    def generate_input_requested_region(self):
        offset = self.effective_region().index
        inp = self.input
        needed = self.output.requested_region.shift(offset)
        inp.requested_region = needed.intersection(inp.largest_possible_region)

    def generate_data(self):
        out = self.output
        out.set_buffer(out.requested_region, self.input_data())
        self.update_progress(1.0)
