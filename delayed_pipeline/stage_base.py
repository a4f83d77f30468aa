"""
Abstract stages
"""
import itertools as it
import numpy as np
import ubelt as ub
from delayed_pipeline.container import DataContainer
from delayed_pipeline.container import tick

try:
    import rich as rich_mod
except Exception:
    rich_mod = None

# Flag to evaluate if slots are helping us at all
USE_SLOTS = True

PROGRESS_EVENTS = ('start', 'progress', 'end')


class ProcessingStage:
    """
    Base class for all stages in the pipeline.

    A stage consumes zero or more :class:`DataContainer` inputs, owns one or
    more :class:`DataContainer` outputs, and participates in the demand
    driven update protocol implemented by
    :class:`delayed_pipeline.executor.PipelineExecutor` through the following
    methods, which subclasses overload:

        * :func:`generate_output_information` - compute the largest possible
          region and geometry of every output without touching data.

        * :func:`enlarge_output_requested_region` - adjust output requested
          regions after one of them has been requested.

        * :func:`generate_input_requested_region` - decide what extent of
          each input is needed for the current output requests.

        * :func:`generate_data` - fill the outputs from the buffered inputs.

    The default implementations are the shape-preserving policy: outputs
    inherit the first input's information, and each input is asked for the
    first output's requested region (grown by ``self.radius`` for stages
    with spatial support) cropped to the input's largest possible region.

    Parameters live in the ``meta`` dictionary. Use :func:`set_params` to
    change them, which marks the stage as modified.
    """
    if USE_SLOTS:
        __slots__ = ('meta', 'inputs', 'outputs', 'modified_time',
                     'execution_time', 'information_time', 'num_executions',
                     'progress', '_observers', '_observer_counter',
                     '_trace_logs')

    def __init__(self, inputs=None, num_outputs=1, dimension=None):
        """
        Args:
            inputs (List[DataContainer | ProcessingStage] | None):
                upstream data. Stages are coerced to their first output.

            num_outputs (int): number of output containers to create

            dimension (int | None):
                dimensionality of the outputs. Defaults to the dimension of
                the first input.
        """
        self.meta = {}
        self.inputs = [_coerce_input(inp) for inp in (inputs or [])]
        if dimension is None:
            if not self.inputs:
                raise ValueError('dimension must be given for a stage without inputs')
            dimension = self.inputs[0].dimension
        self.outputs = [DataContainer(dimension, source=self, source_index=idx)
                        for idx in range(num_outputs)]
        self.modified_time = tick()
        self.execution_time = 0
        self.information_time = 0
        self.num_executions = 0
        self.progress = 0.0
        self._observers = {}
        self._observer_counter = 0
        self._trace_logs = []

    def __nice__(self):
        """
        Returns:
            str
        """
        return '{}'.format(self.output.shape)

    def __repr__(self):
        """
        Returns:
            str
        """
        nice = self.__nice__()
        classname = self.__class__.__name__
        return '<{0}({1}) at {2}>'.format(classname, nice, hex(id(self)))

    def __str__(self):
        """
        Returns:
            str
        """
        classname = self.__class__.__name__
        nice = self.__nice__()
        return '<{0}({1})>'.format(classname, nice)

    @property
    def output(self):
        """
        The primary output.

        Returns:
            DataContainer
        """
        return self.outputs[0]

    @property
    def radius(self):
        """
        The spatial support of this stage on each side of an output voxel.

        Returns:
            int | Tuple[int, ...]
        """
        return self.meta.get('radius', 0)

    @property
    def dimension(self):
        return self.output.dimension

    def children(self):
        """
        The distinct upstream stages, in input order.

        Yields:
            ProcessingStage
        """
        seen = set()
        for inp in self.inputs:
            src = inp.source
            if src is not None and id(src) not in seen:
                seen.add(id(src))
                yield src

    def set_input(self, index, data):
        """
        Replace an input and mark the stage modified.

        Args:
            index (int):
            data (DataContainer | ProcessingStage):
        """
        data = _coerce_input(data)
        if index == len(self.inputs):
            self.inputs.append(data)
        else:
            self.inputs[index] = data
        self.modified()

    def modified(self):
        """
        Mark this stage as changed so downstream information and data are
        regenerated on the next update.
        """
        self.modified_time = tick()

    def check_external_changes(self):
        """
        Called at the start of every information pass. Stages that depend on
        state outside the pipeline (e.g. a file on disk) call
        :func:`modified` here when that state changed. Default: no-op.
        """

    def set_params(self, **kwargs):
        """
        Update entries in ``meta`` and mark the stage modified.

        Example:
            >>> from delayed_pipeline.stages import ImageSource, NeighborhoodStage
            >>> import numpy as np
            >>> src = ImageSource(np.zeros((8, 8)))
            >>> self = NeighborhoodStage(src, radius=1)
            >>> before = self.modified_time
            >>> self.set_params(radius=2)
            >>> assert self.modified_time > before
            >>> assert self.radius == 2
        """
        unknown = set(kwargs) - set(self.meta)
        if unknown:
            raise KeyError('Unknown parameters for {}: {}'.format(
                self.__class__.__name__, sorted(unknown)))
        self.meta.update(kwargs)
        self.modified()

    # ---------------
    # Update protocol
    # ---------------

    def generate_output_information(self):
        """
        Default: every output copies the first input's largest possible
        region and geometry.
        """
        if not self.inputs:
            raise NotImplementedError(
                'source stages must define their output information')
        first = self.inputs[0]
        for out in self.outputs:
            out.set_information(first.largest_possible_region,
                                first.geometry.copy())

    def enlarge_output_requested_region(self, output):
        """
        Called after ``output.requested_region`` is set. Stages that produce
        several outputs together, or that must compute more than what was
        asked, overload this. Default does nothing.

        Args:
            output (DataContainer):
        """
        pass

    def generate_input_requested_region(self):
        """
        Default shape-preserving policy: request the first output's
        requested region, padded by the stage radius, cropped to each
        input's largest possible region. An empty result is left in place and
        reported by the executor.
        """
        requested = self.output.requested_region
        radius = self.radius
        for inp in self.inputs:
            needed = requested
            if np.any(np.asarray(radius) > 0):
                needed = needed.pad(radius)
            inp.requested_region = needed.intersection(inp.largest_possible_region)

    def generate_data(self):
        """
        Compute each output's requested region from the buffered inputs and
        store it with :func:`DataContainer.set_buffer`.
        """
        raise NotImplementedError

    def input_data(self, index=0):
        """
        The buffered data of an input restricted to its requested region.

        Returns:
            ndarray
        """
        inp = self.inputs[index]
        return inp.get_region_data(inp.requested_region)

    # ---------
    # Observers
    # ---------

    def add_observer(self, event, callback):
        """
        Subscribe to progress events.

        Args:
            event (str): one of 'start', 'progress', 'end', or 'any'
            callback (Callable[[ProcessingStage, str, float], Any]):
                called synchronously with the stage, the event name and the
                current progress fraction.

        Returns:
            int: a tag that can be passed to :func:`remove_observer`

        Example:
            >>> from delayed_pipeline.stages import ImageSource
            >>> import numpy as np
            >>> self = ImageSource(np.zeros((4, 4)))
            >>> events = []
            >>> tag = self.add_observer('any', lambda s, e, p: events.append((e, p)))
            >>> _ = self.output.update()
            >>> events
            [('start', 0.0), ('progress', 1.0), ('end', 1.0)]
            >>> self.remove_observer(tag)
        """
        if event != 'any' and event not in PROGRESS_EVENTS:
            raise KeyError('Unknown event {!r}'.format(event))
        tag = self._observer_counter
        self._observer_counter += 1
        self._observers[tag] = (event, callback)
        return tag

    def remove_observer(self, tag):
        self._observers.pop(tag)

    def invoke_event(self, event):
        for want, callback in list(self._observers.values()):
            if want == 'any' or want == event:
                callback(self, event, self.progress)

    def update_progress(self, fraction):
        """
        Report fractional progress from inside :func:`generate_data`.

        Args:
            fraction (float): clipped into ``[0, 1]``
        """
        self.progress = float(min(max(fraction, 0.0), 1.0))
        self.invoke_event('progress')

    # -------------
    # Introspection
    # -------------

    def update_output_information(self, executor=None):
        """
        Run only the information pass over this stage and its upstream
        stages. Enough to inspect output shapes and geometry without
        computing data.

        Returns:
            ProcessingStage: self
        """
        if executor is None:
            from delayed_pipeline.executor import PipelineExecutor
            executor = PipelineExecutor()
        executor.update_information(self)
        return self

    def update(self, region=None, executor=None):
        """
        Update the primary output. See :func:`DataContainer.update`.

        Returns:
            ProcessingStage: self
        """
        self.output.update(region, executor=executor)
        return self

    def finalize(self, region=None, executor=None):
        """
        Update the primary output and return its data.

        Returns:
            ndarray
        """
        return self.output.finalize(region, executor=executor)

    def nesting(self):
        """
        Returns:
            Dict[str, dict]
        """
        item = {
            'type': self.__class__.__name__,
            'meta': _concise_meta(self.meta),
        }
        child_nodes = list(self.children())
        if child_nodes:
            item['children'] = [child.nesting() for child in child_nodes]
        return item

    def _traverse(self):
        """
        A flat list of all upstream stages and the stage that consumes them.

        Stages shared by several consumers are yielded once per path.

        Yields:
            Tuple[None | ProcessingStage, ProcessingStage] :
                tuples of consumer / producer stages.
        """
        stack = [(None, self)]
        while stack:
            parent, item = stack.pop()
            yield parent, item
            for child in item.children():
                stack.append((item, child))

    def leafs(self):
        """
        Iterates over all source stages upstream of this one.

        Yields:
            ProcessingStage
        """
        seen = set()
        for _, item in self._traverse():
            if not item.inputs and id(item) not in seen:
                seen.add(id(item))
                yield item

    def _traversed_graph(self):
        """
        The upstream graph with one node per distinct stage. Edges point from
        a consumer to its producers.

        Returns:
            networkx.DiGraph
        """
        import networkx as nx
        graph = nx.DiGraph()
        ids = {}
        counter = it.count(0)
        for parent, item in self._traverse():
            if id(item) not in ids:
                ids[id(item)] = f'{item.__class__.__name__}_{next(counter)}'
                node_id = ids[id(item)]
                graph.add_node(node_id)
                node_data = graph.nodes[node_id]
                node_data['type'] = item.__class__.__name__
                node_data['meta'] = {k: v for k, v in item.meta.items() if v is not None}
                node_data['obj'] = item
            if parent is not None:
                graph.add_edge(ids[id(parent)], ids[id(item)])
        return graph

    def as_graph(self, fields='auto'):
        """
        Builds the upstream graph as a networkx graph with human readable
        labels.

        Args:
            fields (str): 'auto' for concise labels, 'all' for every
                parameter.

        Returns:
            networkx.DiGraph
        """
        graph = self._traversed_graph()
        for node_id, node_data in graph.nodes(data=True):
            item = node_data['obj']
            sub_meta = _concise_meta(node_data['meta'])
            if fields == 'auto':
                sub_meta.pop('func', None)
                sub_meta.pop('num_workers', None)
            sub_meta['shape'] = item.output.shape
            param_key = ub.urepr(sub_meta, sort=0, compact=1, nl=0, precision=4)
            node_data['label'] = f'{item.__class__.__name__} {param_key}'
        return graph

    def print_graph(self, fields='auto', with_labels=True, rich='auto',
                    vertical_chains=True):
        """
        Alias for write_network_text
        """
        self.write_network_text(fields=fields, with_labels=with_labels,
                                rich=rich, vertical_chains=vertical_chains)

    def write_network_text(self, fields='auto', with_labels=True, rich='auto',
                           vertical_chains=True):
        """
        Print the upstream graph of this stage.

        Args:
            fields (str): see :func:`as_graph`
            with_labels (bool): set to false for no label data
            rich (bool | str): defaults to 'auto'
            vertical_chains (bool): save horizontal space for long chains
        """
        import networkx as nx
        graph = self.as_graph(fields=fields)
        path = None
        end = '\n'
        if rich == 'auto':
            rich = rich_mod is not None
        if rich:
            path = rich_mod.print
            end = ''
        nx.write_network_text(graph, with_labels=with_labels, path=path,
                              end=end, vertical_chains=vertical_chains)


class SourceStage(ProcessingStage):
    """
    For stages that have no inputs
    """
    if USE_SLOTS:
        __slots__ = ()

    def __init__(self, dimension, num_outputs=1):
        super().__init__(inputs=None, num_outputs=num_outputs,
                         dimension=dimension)

    def generate_input_requested_region(self):
        pass


class UnaryStage(ProcessingStage):
    """
    For stages that have a single input
    """
    if USE_SLOTS:
        __slots__ = ()

    def __init__(self, input, num_outputs=1, dimension=None):
        super().__init__(inputs=[input], num_outputs=num_outputs,
                         dimension=dimension)

    @property
    def input(self):
        """
        Returns:
            DataContainer
        """
        return self.inputs[0]


class NaryStage(ProcessingStage):
    """
    For stages that have multiple inputs
    """
    if USE_SLOTS:
        __slots__ = ()

    def __init__(self, inputs, num_outputs=1, dimension=None):
        super().__init__(inputs=list(inputs), num_outputs=num_outputs,
                         dimension=dimension)


def _coerce_input(data):
    if isinstance(data, ProcessingStage):
        return data.output
    if isinstance(data, DataContainer):
        return data
    raise TypeError('Stage inputs must be stages or data containers, got {!r}'.format(data))


def _concise_meta(meta):
    meta = dict(meta)
    for key, value in list(meta.items()):
        if hasattr(value, '__json__'):
            meta[key] = value.__json__()
        elif isinstance(value, np.ndarray):
            meta[key] = value.tolist()
        elif callable(value):
            meta[key] = getattr(value, '__name__', value.__class__.__name__)
    return meta
