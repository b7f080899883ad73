import os
import asyncio
import logging
from typing import Callable, Awaitable, Any, Dict, Tuple, Optional, List

from .graph import StageGraph, Stage
from .meta import DesignTable, AnyKey
from .errors import AggregationError
from ..utils.logging import TASK

logger = logging.getLogger(__name__)

# handler(key, inputs) -> result, key is None for fan-in stages.
# inputs[upstream stage] is the list of upstream results ordered by key
Handler = Callable[[Optional[AnyKey], Dict[str, List[Any]]], Awaitable[Any]]
TaskId = Tuple[str, Optional[AnyKey]]


def taskname(stage: str, key: Optional[AnyKey]) -> str:
    return stage if key is None else f"{stage}:{key.name}"


class Scheduler:
    """
    Executes the planned stage graph. Every (stage, key) is an independent asyncio task which waits for exactly the
    upstream tasks it needs. A failed task doesn't cancel anything, dependent tasks fail with AggregationError.
    """
    def __init__(self, graph: StageGraph, table: DesignTable, handlers: Dict[str, Handler], maxjobs: int = -1):
        missing = [s.name for s in graph.active if s.name not in handlers]
        assert not missing, f"No handlers for stages {missing}"
        self.graph, self.table, self.handlers = graph, table, handlers
        self.maxjobs = os.cpu_count() if maxjobs <= 0 else maxjobs
        self.tasks: Dict[TaskId, asyncio.Task] = {}

    def keys(self, stage: Stage) -> Tuple[Optional[AnyKey], ...]:
        return (None, ) if stage.fanin else self.table.keys(stage.level)

    def requires(self, stage: Stage, upstream: Stage, key: Optional[AnyKey]) -> Tuple[Optional[AnyKey], ...]:
        if upstream.fanin:
            return None,
        if stage.fanin:
            return self.table.keys(upstream.level)
        return self.table.members(key, upstream.level)

    async def _execute(self, semaphore: asyncio.Semaphore, stage: Stage, key: Optional[AnyKey]):
        # each asyncio task runs in its own copy of the context
        TASK.set(taskname(stage.name, key))
        inputs = {}
        for upstream in self.graph.upstream(stage.name):
            keys = self.requires(stage, upstream, key)
            results = await asyncio.gather(*[self.tasks[(upstream.name, k)] for k in keys], return_exceptions=True)
            failed = [taskname(upstream.name, k) for k, r in zip(keys, results) if isinstance(r, BaseException)]
            if not keys or failed:
                raise AggregationError(
                    f"{taskname(stage.name, key)}: incomplete inputs from {upstream.name}, failed: {failed}"
                )
            inputs[upstream.name] = results

        async with semaphore:
            logger.info(f"Start {taskname(stage.name, key)}")
            result = await self.handlers[stage.name](key, inputs)
            logger.info(f"Finished {taskname(stage.name, key)}")
        return result

    async def run(self) -> Tuple[Dict[TaskId, Any], Dict[TaskId, BaseException]]:
        """
        :return: results and failures of all tasks, keyed by (stage name, key)
        """
        semaphore = asyncio.Semaphore(self.maxjobs)
        # stages are topologically ordered, upstream tasks are always created first
        for stage in self.graph.active:
            for key in self.keys(stage):
                self.tasks[(stage.name, key)] = asyncio.create_task(self._execute(semaphore, stage, key))

        ids = list(self.tasks.keys())
        outcomes = await asyncio.gather(*[self.tasks[i] for i in ids], return_exceptions=True)

        results, failures = {}, {}
        for (stage, key), outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                failures[(stage, key)] = outcome
                logger.error(f"{taskname(stage, key)} failed: {type(outcome).__name__}: {outcome}")
            else:
                results[(stage, key)] = outcome
        return results, failures
