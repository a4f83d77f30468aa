"""
The demand driven update protocol.

A request for a region of one output container runs three passes over the
upstream graph of its producing stage:

    1. information: producers first, regenerate the largest possible region
       and geometry of every stage whose parameters or inputs changed.

    2. propagation: consumers first, every stage turns the requested regions
       of its outputs into requested regions of its inputs. A container
       consumed by several stages is asked for the union of their requests.

    3. data: producers first, execute exactly the stages whose cached outputs
       do not satisfy their requested regions, or whose parameters (or those
       of any upstream stage) changed since their last execution. A stage
       that only re-ran upstream to serve some other region does not make
       its consumers stale.

Example:
    >>> from delayed_pipeline.executor import *  # NOQA
    >>> from delayed_pipeline.stages import ImageSource, NeighborhoodStage
    >>> from delayed_pipeline.region import Region
    >>> import numpy as np
    >>> src = ImageSource(np.ones((32, 32)))
    >>> smooth = NeighborhoodStage(src, radius=1)
    >>> executor = PipelineExecutor()
    >>> _ = executor.request_output(smooth.output, Region((4, 4), (8, 8)))
    >>> [s.__class__.__name__ for s in executor.executed]
    ['ImageSource', 'NeighborhoodStage']
    >>> # Asking again for something already computed does nothing
    >>> _ = executor.request_output(smooth.output, Region((5, 5), (2, 2)))
    >>> executor.executed
    []
    >>> smooth.num_executions
    1
"""
import logging
import os
import networkx as nx
from delayed_pipeline.container import tick
from delayed_pipeline.exceptions import InsufficientInputError
from delayed_pipeline.exceptions import PipelineCycleError
from delayed_pipeline.exceptions import StaleCacheInconsistency
from delayed_pipeline.region import Region

logger = logging.getLogger(__name__)

# Set to 1 (or set the DELAYED_PIPELINE_TRACE environment variable) to record
# per-stage decisions in ``stage._trace_logs``.
TRACE_UPDATE = int(os.environ.get('DELAYED_PIPELINE_TRACE', '0') or 0)


class PipelineExecutor:
    """
    Runs requests against a pipeline.

    The executor is stateless between requests apart from :attr:`executed`,
    the stages that ran during the most recent request. All cached state
    lives in the stages and their containers, so any number of executors can
    be used on the same pipeline, one request at a time.
    """

    def __init__(self):
        self.executed = []

    def __repr__(self):
        return '<{}()>'.format(self.__class__.__name__)

    def request_output(self, container, region=None):
        """
        Bring ``container`` up to date for ``region``.

        Args:
            container (DataContainer): an output of some stage
            region (Region | None): defaults to the largest possible region

        Returns:
            DataContainer: the container, whose buffered region now contains
                the requested region

        Raises:
            InsufficientInputError: if the region is empty or not inside the
                largest possible region, or if some stage would need input
                that does not exist.
            PipelineCycleError: if the stages do not form a DAG.
        """
        stage = container.source
        self.executed = []
        if stage is None:
            return self._request_unowned(container, region)

        order = self.update_information(stage)

        largest = container.largest_possible_region
        if region is None:
            region = largest
        region = Region.coerce(region)
        if region.dimension != container.dimension:
            raise InsufficientInputError(
                'requested a {}D region from a {}D container'.format(
                    region.dimension, container.dimension),
                stage=stage, requested=region, largest=largest)
        if region.is_empty() or not largest.contains(region):
            raise InsufficientInputError(
                'requested region {} is not inside the largest possible region {}'.format(
                    region, largest),
                stage=stage, requested=region, largest=largest)

        requested_stages = self.propagate_requested_region(order, container, region)
        self.update_output_data(order, requested_stages)

        if not container.buffered_region.contains(region):
            raise StaleCacheInconsistency(
                '{} did not buffer the requested region {}'.format(stage, region))
        return container

    update = request_output

    def update_information(self, stage):
        """
        Run only the information pass for a stage and its upstream graph.

        Args:
            stage (ProcessingStage):

        Returns:
            List[ProcessingStage]: the stages, consumers before producers
        """
        order = list(nx.topological_sort(self.as_graph(stage)))
        self.update_output_information(order)
        return order

    def as_graph(self, stage):
        """
        The upstream graph of a stage with the stage objects as nodes. Edges
        point from consumers to producers.

        Args:
            stage (ProcessingStage):

        Returns:
            networkx.DiGraph

        Raises:
            PipelineCycleError
        """
        graph = nx.DiGraph()
        graph.add_node(stage)
        stack = [stage]
        seen = {id(stage)}
        while stack:
            item = stack.pop()
            for child in item.children():
                graph.add_edge(item, child)
                if id(child) not in seen:
                    seen.add(id(child))
                    stack.append(child)
        if not nx.is_directed_acyclic_graph(graph):
            cycle = nx.find_cycle(graph)
            names = [u.__class__.__name__ for u, _ in cycle]
            raise PipelineCycleError('stages form a cycle: {}'.format(
                ' -> '.join(names + names[:1])))
        return graph

    def update_output_information(self, order):
        """
        Information pass.

        Args:
            order (List[ProcessingStage]): consumers before producers

        Raises:
            InsufficientInputError: if a stage reads an output container its
                producer no longer has.
        """
        for stage in reversed(order):
            stage.check_external_changes()
            for inp in stage.inputs:
                src = inp.source
                if src is not None and not any(out is inp for out in src.outputs):
                    raise InsufficientInputError(
                        '{} reads output {} of {}, which no longer exists'.format(
                            stage, inp.source_index, src),
                        stage=stage, largest=inp.largest_possible_region)
            reasons = []
            if stage.information_time == 0:
                reasons.append('first pass')
            elif stage.modified_time > stage.information_time:
                reasons.append('modified')
            elif any(inp.information_time > stage.information_time
                     for inp in stage.inputs):
                reasons.append('input information changed')
            if not reasons:
                continue
            self._trace(stage, 'regenerate information: {}'.format(reasons[0]))
            for out in stage.outputs:
                out.invalidate()
            stage.generate_output_information()
            stage.information_time = tick()

    def propagate_requested_region(self, order, container, region):
        """
        Propagation pass. Resets the requested regions of every container in
        the graph, then walks from the requested container upstream. A stage
        whose outputs already buffer their requests and whose upstream graph
        did not change since its last execution stops the walk.

        Args:
            order (List[ProcessingStage]): consumers before producers
            container (DataContainer): the container the client asked for
            region (Region): its requested region

        Returns:
            Set[int]: ids of the stages that received a request
        """
        for stage in order:
            for out in stage.outputs:
                out.requested_region = out.empty_region()

        pipeline_times = self._pipeline_times(order)
        requests = {id(container): region}
        requested_stages = set()
        container.requested_region = region

        for stage in order:
            wanted = [out for out in stage.outputs if id(out) in requests]
            if not wanted:
                continue
            requested_stages.add(id(stage))
            for out in wanted:
                out.requested_region = requests[id(out)]
            for out in wanted:
                stage.enlarge_output_requested_region(out)

            if self._is_up_to_date(stage, pipeline_times) and all(
                    out.is_satisfied() for out in stage.outputs
                    if not out.requested_region.is_empty()):
                self._trace(stage, 'up to date')
                continue

            previous = {id(inp): requests.get(id(inp)) for inp in stage.inputs}
            stage.generate_input_requested_region()

            for inp in stage.inputs:
                needed = inp.requested_region
                if needed.is_empty() and needed.dimension:
                    raise InsufficientInputError(
                        '{} needs {} from an input whose largest possible '
                        'region is {}'.format(stage, needed,
                                              inp.largest_possible_region),
                        stage=stage, requested=needed,
                        largest=inp.largest_possible_region)
                prev = previous[id(inp)]
                if prev is not None:
                    needed = prev.union(needed)
                    inp.requested_region = needed
                requests[id(inp)] = needed
                self._trace(stage, 'request {} from input'.format(needed))
        return requested_stages

    def update_output_data(self, order, requested_stages=None):
        """
        Data pass.

        Args:
            order (List[ProcessingStage]): consumers before producers
            requested_stages (Set[int] | None): ids of the stages reached by
                the propagation pass, defaults to all of them
        """
        pipeline_times = self._pipeline_times(order)
        for stage in reversed(order):
            if requested_stages is not None and id(stage) not in requested_stages:
                continue
            reason = self._execution_reason(stage, pipeline_times)
            if reason is None:
                self._trace(stage, 'cached')
                continue
            self._trace(stage, 'execute: {}'.format(reason))
            self._execute(stage)

    def _pipeline_times(self, order):
        """
        The newest modification time of each stage and everything upstream
        of it. Re-executing a stage for a different region does not change
        the content of its outputs and so does not count.
        """
        times = {}
        for stage in reversed(order):
            newest = stage.modified_time
            for inp in stage.inputs:
                src = inp.source
                if src is None:
                    newest = max(newest, inp.information_time, inp.data_time)
                else:
                    newest = max(newest, times[id(src)])
            times[id(stage)] = newest
        return times

    def _is_up_to_date(self, stage, pipeline_times):
        return stage.execution_time > pipeline_times[id(stage)]

    def _execution_reason(self, stage, pipeline_times):
        if stage.execution_time == 0:
            return 'never executed'
        if stage.modified_time > stage.execution_time:
            return 'modified'
        if not self._is_up_to_date(stage, pipeline_times):
            return 'upstream changed'
        for out in stage.outputs:
            if not out.requested_region.is_empty() and not out.is_satisfied():
                return 'requested region not buffered'
        return None

    def _execute(self, stage):
        for inp in stage.inputs:
            if not inp.is_satisfied():
                raise StaleCacheInconsistency(
                    'input of {} does not buffer its requested region {}'.format(
                        stage, inp.requested_region))
        stage.progress = 0.0
        stage.invoke_event('start')
        try:
            stage.generate_data()
            for out in stage.outputs:
                out.validate()
                if not out.requested_region.is_empty() and not out.is_satisfied():
                    raise StaleCacheInconsistency(
                        '{} did not buffer its requested region {}'.format(
                            stage, out.requested_region))
        except Exception:
            for out in stage.outputs:
                out.invalidate()
            logger.debug('Execution of %s failed, outputs invalidated', stage)
            raise
        stage.num_executions += 1
        stage.execution_time = tick()
        stage.progress = 1.0
        stage.invoke_event('end')
        self.executed.append(stage)

    def _request_unowned(self, container, region):
        """
        A container without a producer can only serve what it already holds.
        """
        if region is None:
            region = container.largest_possible_region
        region = Region.coerce(region)
        container.requested_region = region
        if not container.is_satisfied():
            raise InsufficientInputError(
                'container without a producing stage does not buffer {}'.format(region),
                requested=region, largest=container.largest_possible_region)
        return container

    def _trace(self, stage, message):
        logger.debug('%s: %s', stage, message)
        if TRACE_UPDATE:
            stage._trace_logs.append(message)
