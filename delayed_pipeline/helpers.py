import numpy as np
import ubelt as ub


def physical_center_of_mass(data, geometry):
    """
    The intensity weighted center of an image in physical space.

    Args:
        data (ndarray): scalar image whose axes are the index axes
        geometry (PhysicalGeometry): placement of ``data``

    Returns:
        ndarray: the physical center of mass

    Example:
        >>> from delayed_pipeline.helpers import physical_center_of_mass
        >>> from delayed_pipeline.geometry import PhysicalGeometry
        >>> import numpy as np
        >>> data = np.zeros((5, 5))
        >>> data[1, 3] = 2
        >>> geom = PhysicalGeometry(origin=(10, 0), spacing=(2, 1))
        >>> physical_center_of_mass(data, geom).tolist()
        [12.0, 3.0]
    """
    data = np.asarray(data, dtype=float)
    total = data.sum()
    if total == 0:
        raise ValueError('center of mass of an all zero image is undefined')
    grids = np.indices(data.shape, dtype=float)
    center_index = np.array([(grid * data).sum() / total for grid in grids])
    return geometry.index_to_point(center_index)


def chunk_bounds(length, num_chunks):
    """
    Split ``range(length)`` into at most ``num_chunks`` contiguous, non
    overlapping, nearly equal pieces.

    Returns:
        List[Tuple[int, int]]: start / stop pairs

    Example:
        >>> from delayed_pipeline.helpers import chunk_bounds
        >>> chunk_bounds(10, 3)
        [(0, 3), (3, 6), (6, 10)]
        >>> chunk_bounds(2, 5)
        [(0, 1), (1, 2)]
    """
    num_chunks = max(1, min(int(num_chunks), int(length)))
    edges = np.linspace(0, length, num_chunks + 1).astype(int)
    return list(zip(edges[:-1].tolist(), edges[1:].tolist()))


def coerce_factors(factors, dimension):
    """
    Broadcast a single factor or a sequence of factors to one per axis.

    Example:
        >>> from delayed_pipeline.helpers import coerce_factors
        >>> coerce_factors(4, 3)
        [4, 4, 4]
        >>> coerce_factors([8, 4], 2)
        [8, 4]
    """
    if ub.iterable(factors):
        factors = list(factors)
        if len(factors) == 1:
            factors = factors * dimension
    else:
        factors = [factors] * dimension
    return factors
