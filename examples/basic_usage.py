"""
Basic usage demo.
"""
import numpy as np
import ubelt as ub
import delayed_pipeline


def demo():
    # Lets say you have a large image. Describing what to do with it is free,
    # nothing is computed until a region of some output is requested.
    data = np.random.RandomState(0).rand(2048, 2048)
    src = delayed_pipeline.ImageSource(data, spacing=(0.25, 0.25))

    """
    ### Building a pipeline

    Every stage takes its upstream stage (or one of its output containers) as
    input. Parameters are stored in ``stage.meta`` and changed with
    ``set_params``.
    """
    smooth = delayed_pipeline.NeighborhoodStage(src, radius=3, kind='gaussian')
    magnitude = delayed_pipeline.FunctorStage(smooth, np.sqrt, num_workers=4)
    smooth.print_graph()

    # Only a 64 x 64 window plus the filter support is ever touched
    region = delayed_pipeline.Region((1000, 1000), (64, 64))
    with ub.Timer(label='first window'):
        window = magnitude.finalize(region)
    print(f'window.shape={window.shape}')
    print(f'src requested={src.output.requested_region}')
    print(f'smooth buffered={smooth.output.buffered_region}')

    # The same window again is answered from the cache
    executor = delayed_pipeline.PipelineExecutor()
    with ub.Timer(label='cached window'):
        executor.request_output(magnitude.output, region)
    print(f'executed={executor.executed}')

    # Changing a parameter only reruns what depends on it
    smooth.set_params(radius=5)
    executor.request_output(magnitude.output, region)
    print(f'executed={executor.executed}')

    """
    ### Multiple resolutions

    A pyramid produces every level at once. Asking for part of one level
    computes the matching part of all of them.
    """
    pyramid = delayed_pipeline.MultiResolutionPyramid(src, num_levels=4)
    print('schedule = {}'.format(ub.urepr(pyramid.schedule.tolist(), nl=1)))
    coarse = pyramid.level_output(0)
    with ub.Timer(label='coarse level'):
        coarse.update()
    for level, out in enumerate(pyramid.outputs):
        print(f'level {level}: buffered={out.buffered_region} '
              f'spacing={out.geometry.spacing.tolist()}')
    pyramid.print_graph()


if __name__ == '__main__':
    """
    CommandLine:
        python ~/code/delayed_pipeline/examples/basic_usage.py
    """
    demo()
