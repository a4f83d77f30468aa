"""
Multi-resolution image pyramids.

Example:
    >>> from delayed_pipeline.pyramid import *  # NOQA
    >>> from delayed_pipeline.stages import ImageSource
    >>> import numpy as np
    >>> data = np.random.RandomState(0).rand(64, 48)
    >>> src = ImageSource(data, spacing=(0.5, 2.0))
    >>> self = MultiResolutionPyramid(src, num_levels=3)
    >>> print(self.schedule.tolist())
    [[4, 4], [2, 2], [1, 1]]
    >>> coarse = self.level_output(0).finalize()
    >>> coarse.shape
    (16, 12)
    >>> self.level_output(0).geometry.spacing.tolist()
    [2.0, 8.0]
    >>> # Every level was produced together
    >>> [out.buffered_region.size for out in self.outputs]
    [(16, 12), (32, 24), (64, 48)]
"""
import math
import numpy as np
from delayed_pipeline.container import DataContainer
from delayed_pipeline.region import Region
from delayed_pipeline.schedule import ScheduleComputer
from delayed_pipeline.stage_base import USE_SLOTS
from delayed_pipeline.stage_base import UnaryStage


class MultiResolutionPyramid(UnaryStage):
    """
    Produce one smoothed and shrunk copy of the input per schedule level.

    Level ``k`` is smoothed with a gaussian of standard deviation
    ``0.5 * factor`` (in input voxels, per axis) and then linearly resampled
    on the level grid from :func:`delayed_pipeline.schedule.compute_level_geometry`.
    Levels are ordered coarsest first. All levels are computed together, so
    requesting part of one level requests the corresponding part of every
    level.

    Args:
        input (ProcessingStage | DataContainer): upstream data
        num_levels (int | None): defaults to 2, or the length of ``schedule``
        starting_factors (None | int | Iterable[int]): factors at level 0
        schedule (None | ArrayLike): an explicit schedule

    Example:
        >>> from delayed_pipeline.pyramid import *  # NOQA
        >>> from delayed_pipeline.stages import ImageSource
        >>> import numpy as np
        >>> src = ImageSource(np.zeros((128, 132, 48), dtype=np.float32),
        >>>                   spacing=(0.5, 2.7, 7.5))
        >>> self = MultiResolutionPyramid(src, num_levels=4, starting_factors=[8, 4, 2])
        >>> print(self.schedule.tolist())
        [[8, 4, 2], [4, 2, 1], [2, 1, 1], [1, 1, 1]]
        >>> _ = self.update_output_information()
        >>> [out.shape for out in self.outputs]
        [(16, 33, 24), (32, 66, 48), (64, 132, 48), (128, 132, 48)]
    """
    if USE_SLOTS:
        __slots__ = ('_computer',)

    def __init__(self, input, num_levels=None, starting_factors=None,
                 schedule=None):
        if num_levels is None:
            num_levels = 2 if schedule is None else len(schedule)
        super().__init__(input)
        self._computer = ScheduleComputer(self.dimension, num_levels=num_levels,
                                          starting_factors=starting_factors)
        if schedule is not None:
            self._computer.set_schedule(schedule)
        self.meta['schedule'] = self._computer
        self._resize_outputs()

    def __nice__(self):
        return 'levels={}, {}'.format(self.num_levels, self.input.shape)

    @property
    def num_levels(self):
        return self._computer.num_levels

    @property
    def schedule(self):
        """
        Returns:
            ndarray: a copy of the current schedule
        """
        return self._computer.schedule

    @property
    def starting_shrink_factors(self):
        return self._computer.starting_shrink_factors

    def level_output(self, level):
        """
        The container of a single level, level 0 is the coarsest.

        Args:
            level (int):

        Returns:
            DataContainer
        """
        return self.outputs[level]

    def set_num_levels(self, num_levels):
        """
        Change the level count. The starting factors are reset to
        ``2 ** (num_levels - 1)`` on every axis. Lowering the count drops the
        output containers past the new count, downstream stages that read
        one of them fail on their next update.
        """
        self._computer.set_num_levels(num_levels)
        self._resize_outputs()
        self.modified()

    def set_starting_shrink_factors(self, factors):
        self._computer.set_starting_shrink_factors(factors)
        self.modified()

    def set_schedule(self, schedule):
        """
        Assign an explicit schedule. Its level count must equal
        :attr:`num_levels`, call :func:`set_num_levels` first to change it.

        Raises:
            InvalidScheduleError
        """
        self._computer.set_schedule(schedule)
        self.modified()

    def set_params(self, **kwargs):
        """
        Accepts ``num_levels``, ``starting_factors`` and ``schedule``, applied
        in that order.

        Example:
            >>> from delayed_pipeline.pyramid import *  # NOQA
            >>> from delayed_pipeline.stages import ImageSource
            >>> import numpy as np
            >>> self = MultiResolutionPyramid(ImageSource(np.zeros((8, 8))))
            >>> self.set_params(num_levels=3, starting_factors=[2, 8])
            >>> print(self.schedule.tolist())
            [[2, 8], [1, 4], [1, 2]]
        """
        kwargs = dict(kwargs)
        if 'num_levels' in kwargs:
            self.set_num_levels(kwargs.pop('num_levels'))
        if 'starting_factors' in kwargs:
            self.set_starting_shrink_factors(kwargs.pop('starting_factors'))
        if 'schedule' in kwargs:
            self.set_schedule(kwargs.pop('schedule'))
        if kwargs:
            super().set_params(**kwargs)

    def _resize_outputs(self):
        # Existing containers are kept so downstream consumers stay connected.
        # Dropped levels lose their data, a consumer still reading one gets an
        # InsufficientInputError naming the missing output on its next update.
        num_levels = self.num_levels
        for out in self.outputs[num_levels:]:
            out.invalidate()
        outputs = self.outputs[:num_levels]
        for idx in range(len(outputs), num_levels):
            outputs.append(DataContainer(self.dimension, source=self,
                                         source_index=idx))
        self.outputs = outputs

    def _level_sigma(self, level):
        factors = self._computer.schedule[level]
        return np.where(factors > 1, 0.5 * factors, 0.0)

    def _level_radius(self, level):
        sigma = self._level_sigma(level)
        # Gaussian support plus one voxel for linear interpolation
        return [int(math.ceil(4 * s)) + 1 for s in sigma]

    # ---------------
    # Update protocol
    # ---------------

    def generate_output_information(self):
        inp = self.input
        for level, out in enumerate(self.outputs):
            region, geometry = self._computer.compute_level_geometry(
                level, inp.largest_possible_region, inp.geometry)
            out.set_information(region, geometry)

    def enlarge_output_requested_region(self, output):
        """
        Map the requested region of one level to the full resolution grid and
        request the corresponding region on every level.
        """
        schedule = self._computer.schedule
        ref_factors = schedule[output.source_index]
        req = output.requested_region
        base_index = np.asarray(req.index) * ref_factors
        base_size = np.asarray(req.size) * ref_factors
        for level, out in enumerate(self.outputs):
            factors = schedule[level]
            index = -(-base_index // factors)
            size = np.maximum(base_size // factors, 1)
            needed = Region(index, size).intersection(out.largest_possible_region)
            out.requested_region = out.requested_region.union(needed)

    def generate_input_requested_region(self):
        inp = self.input
        in_geom = inp.geometry
        needed = inp.empty_region()
        for level, out in enumerate(self.outputs):
            req = out.requested_region
            if req.is_empty():
                continue
            points = out.geometry.index_to_point(req.corners())
            corners = in_geom.point_to_index(points)
            lower = corners.min(axis=0)
            upper = corners.max(axis=0)
            level_region = Region.from_continuous_bounds(lower, upper)
            needed = needed.union(level_region.pad(self._level_radius(level)))
        inp.requested_region = needed.intersection(inp.largest_possible_region)

    def generate_data(self):
        from scipy import ndimage
        inp = self.input
        block_region = inp.requested_region
        block = np.asarray(inp.get_region_data(block_region), dtype=float)
        in_geom = inp.geometry
        dimension = self.dimension
        num_components = block.ndim - dimension
        num_levels = self.num_levels

        for level, out in enumerate(self.outputs):
            req = out.requested_region
            if req.is_empty():
                continue
            sigma = self._level_sigma(level)
            if np.any(sigma > 0):
                sigma = list(sigma) + [0.0] * num_components
                smoothed = ndimage.gaussian_filter(block, sigma=sigma,
                                                   truncate=4.0, mode='nearest')
            else:
                smoothed = block

            grid = np.indices(req.size).reshape(dimension, -1).T + np.asarray(req.index)
            points = out.geometry.index_to_point(grid)
            coords = (in_geom.point_to_index(points) - np.asarray(block_region.index)).T

            if num_components:
                comp_shape = block.shape[dimension:]
                flat = smoothed.reshape(block.shape[:dimension] + (-1,))
                parts = [ndimage.map_coordinates(flat[..., c], coords, order=1,
                                                 mode='nearest')
                         for c in range(flat.shape[-1])]
                values = np.stack(parts, axis=-1).reshape(req.size + comp_shape)
            else:
                values = ndimage.map_coordinates(smoothed, coords, order=1,
                                                 mode='nearest').reshape(req.size)
            out.set_buffer(req, values)
            self.update_progress((level + 1) / num_levels)
