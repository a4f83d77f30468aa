r"""
Delayed Pipeline
================

The delayed pipeline module lets you describe a graph of N-dimensional image
processing stages, but waits to execute them until a consumer asks for a
specific region of a specific output. Each request is answered by computing
only the extent that is actually needed, and cached results are reused
whenever they still cover what is asked for.

Every data container tracks three regions:

    * the largest possible region, i.e. the full extent the data could have,

    * the buffered region, i.e. the extent that is currently computed, and

    * the requested region, i.e. the extent a consumer needs right now.

Requests travel upstream (each stage says which part of its inputs it needs),
data travels downstream (only stages whose cache does not cover the request
run). Multi-resolution pyramids derive a per-level, per-axis shrink schedule
and keep the physical placement of every level consistent with the input.

Example:
    >>> from delayed_pipeline import *  # NOQA
    >>> import numpy as np
    >>> data = np.random.RandomState(0).rand(96, 80)
    >>> src = ImageSource(data, spacing=(0.5, 0.25))
    >>> smooth = NeighborhoodStage(src, radius=2, kind='gaussian')
    >>> pyramid = MultiResolutionPyramid(smooth, num_levels=3)
    >>> coarse = pyramid.level_output(0)
    >>> patch = coarse.finalize(Region((2, 2), (8, 8)))
    >>> patch.shape
    (8, 8)
    >>> coarse.geometry.spacing.tolist()
    [2.0, 1.0]
    >>> pyramid.print_graph(rich=False)
    >>> # Requesting a sub-part of what is buffered does not execute anything
    >>> executor = PipelineExecutor()
    >>> _ = executor.request_output(coarse, Region((3, 3), (2, 2)))
    >>> executor.executed
    []
"""

__version__ = '0.1.0'


__mkinit__ = """
mkinit -m delayed_pipeline
"""


__private__ = [
    'cli',
]


__protected__ = [
    'demo',
    'helpers',
]


from delayed_pipeline import colormap
from delayed_pipeline import container
from delayed_pipeline import demo
from delayed_pipeline import exceptions
from delayed_pipeline import executor
from delayed_pipeline import geometry
from delayed_pipeline import helpers
from delayed_pipeline import io_registry
from delayed_pipeline import pyramid
from delayed_pipeline import region
from delayed_pipeline import schedule
from delayed_pipeline import stage_base
from delayed_pipeline import stages
from delayed_pipeline import statistics

from delayed_pipeline.colormap import (ColormapFunctor, GreyColormapFunctor,
                                       RedColormapFunctor,)
from delayed_pipeline.container import (DataContainer,)
from delayed_pipeline.exceptions import (DegenerateFactorWarning,
                                         InsufficientInputError,
                                         InvalidScheduleError,
                                         PipelineCycleError, PipelineError,
                                         StaleCacheInconsistency,
                                         UnknownFormatError,)
from delayed_pipeline.executor import (PipelineExecutor,)
from delayed_pipeline.geometry import (PhysicalGeometry,)
from delayed_pipeline.io_registry import (CodecRegistry, ImageCodec,
                                          ImageFileReader, ImageFileWriter,
                                          register_required_codecs,)
from delayed_pipeline.pyramid import (MultiResolutionPyramid,)
from delayed_pipeline.region import (Region,)
from delayed_pipeline.schedule import (ScheduleComputer,
                                       compute_level_geometry,
                                       is_schedule_downward_divisible,)
from delayed_pipeline.stage_base import (NaryStage, ProcessingStage,
                                         SourceStage, UnaryStage,)
from delayed_pipeline.stages import (FunctorStage, ImageSource,
                                     NeighborhoodStage, RegionOfInterest,)
from delayed_pipeline.statistics import (CooccurrenceMatrix,
                                        HistogramToTextureFeatures,)

__all__ = ['CodecRegistry', 'ColormapFunctor', 'CooccurrenceMatrix',
           'DataContainer', 'DegenerateFactorWarning', 'FunctorStage',
           'GreyColormapFunctor', 'HistogramToTextureFeatures', 'ImageCodec',
           'ImageFileReader', 'ImageFileWriter', 'ImageSource',
           'InsufficientInputError', 'InvalidScheduleError',
           'MultiResolutionPyramid', 'NaryStage', 'NeighborhoodStage',
           'PhysicalGeometry', 'PipelineCycleError', 'PipelineError',
           'PipelineExecutor', 'ProcessingStage', 'RedColormapFunctor',
           'Region', 'RegionOfInterest', 'ScheduleComputer', 'SourceStage',
           'StaleCacheInconsistency', 'UnaryStage', 'UnknownFormatError',
           'colormap', 'compute_level_geometry', 'container', 'demo',
           'exceptions', 'executor', 'geometry', 'helpers', 'io_registry',
           'is_schedule_downward_divisible', 'pyramid', 'region',
           'register_required_codecs', 'schedule', 'stage_base', 'stages',
           'statistics']
