"""
Mapping between discrete index space and physical space.
"""
import numpy as np
import ubelt as ub


class PhysicalGeometry:
    """
    The physical placement of an index grid.

    A (possibly continuous) index maps to a physical point as
    ``point = origin + direction @ (spacing * index)``.

    Args:
        origin (Iterable[float]): physical location of index zero
        spacing (Iterable[float]): strictly positive voxel size on each axis
        direction (ndarray): invertible ``D x D`` matrix, typically orthonormal

    Example:
        >>> from delayed_pipeline.geometry import PhysicalGeometry
        >>> import numpy as np
        >>> from delayed_pipeline.region import Region
        >>> direction = [[0, -1, 0], [0, 0, 1], [1, 0, 0]]
        >>> geom = PhysicalGeometry(origin=(1, 2, 3), spacing=(0.5, 2.7, 7.5),
        >>>                         direction=direction)
        >>> pt = geom.index_to_point([2, 1, 1])
        >>> assert np.allclose(pt, [1 - 2.7, 2 + 7.5, 3 + 1.0])
        >>> assert np.allclose(geom.point_to_index(pt), [2, 1, 1])
        >>> center = geom.region_center(Region((0, 0, 0), (3, 3, 3)))
        >>> assert np.allclose(center, geom.index_to_point([1, 1, 1]))
    """
    __slots__ = ('origin', 'spacing', 'direction')

    def __init__(self, origin=None, spacing=None, direction=None, dimension=None):
        if dimension is None:
            for cand in [origin, spacing, direction]:
                if cand is not None:
                    dimension = len(cand)
                    break
            else:
                raise ValueError('dimension must be specified when no geometry is given')
        if origin is None:
            origin = np.zeros(dimension)
        if spacing is None:
            spacing = np.ones(dimension)
        if direction is None:
            direction = np.eye(dimension)
        origin = np.array(origin, dtype=float).reshape(-1)
        spacing = np.array(spacing, dtype=float).reshape(-1)
        direction = np.array(direction, dtype=float).reshape(dimension, dimension)
        if len(origin) != dimension or len(spacing) != dimension:
            raise ValueError('origin and spacing must have {} components'.format(dimension))
        if np.any(spacing <= 0):
            raise ValueError('spacing must be strictly positive: got {}'.format(spacing))
        if dimension and abs(np.linalg.det(direction)) < 1e-12:
            raise ValueError('direction must be invertible')
        self.origin = origin
        self.spacing = spacing
        self.direction = direction

    @classmethod
    def identity(cls, dimension):
        """
        Unit spacing, zero origin, identity direction.

        Returns:
            PhysicalGeometry
        """
        return cls(dimension=dimension)

    @classmethod
    def coerce(cls, data, dimension=None):
        """
        Args:
            data (None | PhysicalGeometry | dict):
                existing geometry, a dict of keyword arguments, or None for
                the identity geometry of ``dimension``.

        Returns:
            PhysicalGeometry
        """
        if data is None:
            return cls.identity(dimension)
        if isinstance(data, cls):
            return data
        if isinstance(data, dict):
            return cls(dimension=dimension, **data)
        raise TypeError('Cannot coerce {!r} into a PhysicalGeometry'.format(data))

    def __nice__(self):
        return 'origin={}, spacing={}'.format(
            ub.urepr(self.origin.tolist(), nl=0, precision=4),
            ub.urepr(self.spacing.tolist(), nl=0, precision=4))

    def __repr__(self):
        return '<{}({})>'.format(self.__class__.__name__, self.__nice__())

    def __json__(self):
        return {
            'origin': self.origin.tolist(),
            'spacing': self.spacing.tolist(),
            'direction': self.direction.tolist(),
        }

    @property
    def dimension(self):
        return len(self.origin)

    def copy(self):
        return self.__class__(self.origin.copy(), self.spacing.copy(),
                              self.direction.copy())

    def is_close(self, other, atol=1e-8):
        """
        Returns:
            bool
        """
        return (
            self.dimension == other.dimension and
            np.allclose(self.origin, other.origin, atol=atol) and
            np.allclose(self.spacing, other.spacing, atol=atol) and
            np.allclose(self.direction, other.direction, atol=atol)
        )

    def index_to_point(self, index):
        """
        Map indexes (rows of a ``N x D`` array or a single vector) to
        physical points.

        Args:
            index (ArrayLike): integer or continuous indexes

        Returns:
            ndarray
        """
        index = np.asarray(index, dtype=float)
        return self.origin + (index * self.spacing) @ self.direction.T

    def point_to_index(self, point):
        """
        Map physical points to continuous indexes. Inverse of
        :func:`PhysicalGeometry.index_to_point`.

        Args:
            point (ArrayLike): a single point or rows of points

        Returns:
            ndarray
        """
        point = np.asarray(point, dtype=float)
        inv_direction = np.linalg.inv(self.direction)
        return ((point - self.origin) @ inv_direction.T) / self.spacing

    def region_center(self, region):
        """
        The physical location of the center of a region, i.e. the point at
        continuous index ``index + (size - 1) / 2``.

        Args:
            region (Region):

        Returns:
            ndarray
        """
        center_index = (np.asarray(region.index, dtype=float) +
                        (np.asarray(region.size, dtype=float) - 1) / 2.0)
        return self.index_to_point(center_index)
