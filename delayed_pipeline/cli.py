"""
Command line driver.

Usage:
    python -m delayed_pipeline info volume.npz --levels 3
    python -m delayed_pipeline pyramid volume.npz --levels 4 --starting-factors 8 4 2 --out-dpath ./levels
    python -m delayed_pipeline texture image.png --num-bins 8
    python -m delayed_pipeline demo --out-dpath ./demo
"""
import argparse
import logging
import sys
import ubelt as ub

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog='delayed_pipeline',
        description='Inspect and run demand driven image pipelines',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument('--verbose', action='store_true', help='log file I/O')
    parser.add_argument('--debug', action='store_true', help='log every update step')
    subparsers = parser.add_subparsers(dest='command')

    info = subparsers.add_parser('info', help='print the layout of an image file',
                                 formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    info.add_argument('fpath', help='image to inspect')
    _add_schedule_arguments(info, default_levels=None)

    pyramid = subparsers.add_parser('pyramid', help='write every level of a pyramid',
                                    formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    pyramid.add_argument('fpath', help='image to shrink')
    _add_schedule_arguments(pyramid, default_levels=3)
    pyramid.add_argument('--out-dpath', default='.', help='directory for the levels')
    pyramid.add_argument('--ext', default='.npz', help='format of the written levels')

    texture = subparsers.add_parser('texture', help='print co-occurrence texture features',
                                    formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    texture.add_argument('fpath', help='scalar image')
    texture.add_argument('--num-bins', type=int, default=8, help='grey levels')
    texture.add_argument('--all-directions', action='store_true',
                         help='count pairs in every neighbor direction')

    demo = subparsers.add_parser('demo', help='write the demo volume',
                                 formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    demo.add_argument('--out-dpath', default='.', help='destination directory')
    return parser


def _add_schedule_arguments(parser, default_levels):
    parser.add_argument('--levels', type=int, default=default_levels,
                        help='number of pyramid levels')
    parser.add_argument('--starting-factors', type=int, nargs='+', default=None,
                        help='shrink factors of the coarsest level, one per axis')


def process_arguments_and_register_required_codecs(argv=None):
    """
    Register the built-in codecs and parse the arguments this driver knows
    about.

    Args:
        argv (List[str] | None): defaults to ``sys.argv[1:]``

    Returns:
        Tuple[argparse.Namespace, List[str]]: the parsed arguments and the
            arguments that were not recognized, for a wrapped program

    Example:
        >>> from delayed_pipeline.cli import *  # NOQA
        >>> args, rest = process_arguments_and_register_required_codecs(
        >>>     ['info', 'foo.npy', '--levels', '2', '--extra'])
        >>> args.command, args.levels, rest
        ('info', 2, ['--extra'])
        >>> from delayed_pipeline.io_registry import REGISTRY
        >>> 'npy' in REGISTRY
        True
    """
    from delayed_pipeline.io_registry import register_required_codecs
    register_required_codecs()
    parser = build_parser()
    args, remaining = parser.parse_known_args(argv)
    return args, remaining


def main(argv=None):
    """
    Returns:
        int: exit code
    """
    args, remaining = process_arguments_and_register_required_codecs(argv)
    if args.debug:
        level = logging.DEBUG
    elif args.verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')
    if remaining:
        logger.warning('Ignoring unrecognized arguments: %s', remaining)

    commands = {
        'info': run_info,
        'pyramid': run_pyramid,
        'texture': run_texture,
        'demo': run_demo,
    }
    if args.command is None:
        build_parser().print_help()
        return 1
    return commands[args.command](args)


def _build_pyramid(reader, args):
    from delayed_pipeline.pyramid import MultiResolutionPyramid
    pyramid = MultiResolutionPyramid(reader, num_levels=args.levels)
    if args.starting_factors is not None:
        pyramid.set_starting_shrink_factors(args.starting_factors)
    return pyramid


def run_info(args):
    from delayed_pipeline.io_registry import ImageFileReader
    from delayed_pipeline.schedule import is_schedule_downward_divisible
    reader = ImageFileReader(args.fpath)
    reader.update_output_information()
    out = reader.output
    info = {
        'fpath': str(args.fpath),
        'codec': reader.codec.name,
        'shape': out.shape,
        'geometry': out.geometry.__json__(),
    }
    stage = reader
    if args.levels is not None:
        pyramid = _build_pyramid(reader, args)
        pyramid.update_output_information()
        info['schedule'] = pyramid.schedule.tolist()
        info['downward_divisible'] = is_schedule_downward_divisible(pyramid.schedule)
        info['levels'] = [
            {'shape': level.shape, 'spacing': level.geometry.spacing.tolist()}
            for level in pyramid.outputs
        ]
        stage = pyramid
    print(ub.urepr(info, nl=2, precision=4))
    stage.print_graph()
    return 0


def run_pyramid(args):
    from delayed_pipeline.helpers import physical_center_of_mass
    from delayed_pipeline.io_registry import ImageFileReader
    from delayed_pipeline.io_registry import ImageFileWriter
    reader = ImageFileReader(args.fpath)
    pyramid = _build_pyramid(reader, args)
    pyramid.add_observer('progress', lambda stage, event, progress: logger.info(
        'pyramid progress %.2f', progress))

    dpath = ub.Path(args.out_dpath).ensuredir()
    stem = ub.Path(args.fpath).stem
    input_com = None
    for level in ub.ProgIter(range(pyramid.num_levels), desc='write levels'):
        out = pyramid.level_output(level)
        fpath = dpath / '{}_level{}{}'.format(stem, level, args.ext)
        ImageFileWriter(out, fpath).write()
        if logger.isEnabledFor(logging.INFO) and out.buffer.ndim == out.dimension:
            if input_com is None:
                input_com = physical_center_of_mass(
                    reader.finalize(), reader.output.geometry)
            level_com = physical_center_of_mass(out.buffer, out.geometry)
            error = ub.urepr((level_com - input_com).tolist(), nl=0, precision=4)
            logger.info('level %d center of mass offset %s', level, error)
        print(fpath)
    return 0


def run_texture(args):
    from delayed_pipeline.io_registry import ImageFileReader
    from delayed_pipeline.statistics import CooccurrenceMatrix
    from delayed_pipeline.statistics import HistogramToTextureFeatures
    from delayed_pipeline.statistics import unit_offsets
    reader = ImageFileReader(args.fpath)
    offsets = unit_offsets(reader.dimension) if args.all_directions else None
    glcm = CooccurrenceMatrix(reader, offsets=offsets, num_bins=args.num_bins)
    texture = HistogramToTextureFeatures(glcm)
    print(ub.urepr(texture.features, nl=1, precision=6))
    return 0


def run_demo(args):
    from delayed_pipeline.demo import pyramid_test_volume
    from delayed_pipeline.io_registry import ImageFileWriter
    dpath = ub.Path(args.out_dpath).ensuredir()
    fpath = ImageFileWriter(pyramid_test_volume(), dpath / 'pyramid_volume.npz').write()
    print(fpath)
    return 0


if __name__ == '__main__':
    sys.exit(main())
