import os
import json
import logging
from dataclasses import asdict
from typing import Sequence, Mapping, Dict, Any

from ..utils.logging import config_logging
from . import bam, fastq, genome, graph, peak_calling, differential
from .design import resolve
from .graph import plan
from .meta import RunOptions, Level
from .path import mktree, stagedir
from .scheduler import Scheduler, taskname
from .errors import ConfigurationError
from .config import LOGS_DIR, REFERENCES_DIR, REPORT_FILENAME, ALIGNMENT_DIR, BAM_QC_DIR, BIGWIG_DIR, \
    PEAK_CALLING_DIR, CONSENSUS_DIR, DIFFERENTIAL_DIR

logger = logging.getLogger(__name__)


def _handlers(root: str, table, options: RunOptions, reference: genome.Genome, threads: int) -> Dict[str, Any]:
    paired, force = table.paired, options.force

    async def align(key, inputs):
        artifact = await fastq.align(key, table.reads(key), options.bwa_index,
                                     stagedir(root, Level.LIBRARY, ALIGNMENT_DIR), threads, force)
        flagstat = await bam.qc(artifact, stagedir(root, Level.LIBRARY, BAM_QC_DIR), force)
        return artifact, bam.BamMetrics(flagstat, {})

    def aggregate(upstream: str):
        async def handler(key, inputs):
            artifacts = [artifact for artifact, _ in inputs[upstream]]
            return await bam.aggregate(key, artifacts, root, options, paired, reference.includable, threads, force)
        return handler

    def coverage(level: Level, upstream: str):
        async def handler(key, inputs):
            (artifact, metrics), = inputs[upstream]
            return await bam.bigwig(artifact, metrics.scale_factor, reference.chrominfo,
                                    stagedir(root, level, BIGWIG_DIR), paired, force)
        return handler

    def call_peaks(level: Level, upstream: str):
        async def handler(key, inputs):
            (artifact, _), = inputs[upstream]
            return await peak_calling.call_peaks(artifact, stagedir(root, level, PEAK_CALLING_DIR), options, paired,
                                                 threads, force)
        return handler

    def annotate_peaks(upstream: str):
        async def handler(key, inputs):
            peaks, = inputs[upstream]
            return await peak_calling.annotate(peaks.path, options, threads, force)
        return handler

    def consensus(level: Level, upstream: str):
        async def handler(key, inputs):
            return peak_calling.consensus(inputs[upstream], stagedir(root, level, CONSENSUS_DIR), level,
                                          options.min_reps_consensus, force)
        return handler

    def annotate_consensus(upstream: str):
        async def handler(key, inputs):
            files, = inputs[upstream]
            return await peak_calling.annotate(files.bed, options, threads, force)
        return handler

    def diff(level: Level, upstream: str):
        async def handler(key, inputs):
            files, = inputs[upstream]
            bams = [artifact for artifact, _ in inputs[graph.MERGE_REPLICATE]]
            return await differential.differential(files, bams, stagedir(root, level, DIFFERENTIAL_DIR), options,
                                                   paired, threads, force)
        return handler

    R, C = Level.REPLICATE, Level.CONDITION
    return {
        graph.ALIGN: align,
        graph.MERGE_REPLICATE: aggregate(graph.ALIGN),
        graph.MERGE_CONDITION: aggregate(graph.MERGE_REPLICATE),
        graph.BIGWIG_REPLICATE: coverage(R, graph.MERGE_REPLICATE),
        graph.BIGWIG_CONDITION: coverage(C, graph.MERGE_CONDITION),
        graph.CALL_PEAKS_REPLICATE: call_peaks(R, graph.MERGE_REPLICATE),
        graph.CALL_PEAKS_CONDITION: call_peaks(C, graph.MERGE_CONDITION),
        graph.ANNOTATE_PEAKS_REPLICATE: annotate_peaks(graph.CALL_PEAKS_REPLICATE),
        graph.ANNOTATE_PEAKS_CONDITION: annotate_peaks(graph.CALL_PEAKS_CONDITION),
        graph.CONSENSUS_REPLICATE: consensus(R, graph.CALL_PEAKS_REPLICATE),
        graph.CONSENSUS_CONDITION: consensus(C, graph.CALL_PEAKS_CONDITION),
        graph.ANNOTATE_CONSENSUS_REPLICATE: annotate_consensus(graph.CONSENSUS_REPLICATE),
        graph.ANNOTATE_CONSENSUS_CONDITION: annotate_consensus(graph.CONSENSUS_CONDITION),
        graph.DIFFERENTIAL_REPLICATE: diff(R, graph.CONSENSUS_REPLICATE),
        graph.DIFFERENTIAL_CONDITION: diff(C, graph.CONSENSUS_CONDITION),
    }


def _report(table, stages: graph.StageGraph, results: Dict, failures: Dict) -> Dict[str, Any]:
    report = {
        "design": {
            "paired": table.paired,
            "replicates_exist": table.predicates.replicates_exist,
            "multiple_conditions": table.predicates.multiple_conditions,
            "libraries": {r.key.name: list(r.reads) for r in table.rows},
        },
        "stages": stages.describe(),
        "alignments": {}, "scale_factors": {}, "bigwig": {}, "peaks": {}, "annotation": {},
        "consensus": {}, "differential": {},
        "failures": {taskname(s, k): f"{type(e).__name__}: {e}" for (s, k), e in failures.items()},
    }
    for (stage, key), result in results.items():
        name = taskname(stage, key) if key is None else key.name
        if stage in (graph.ALIGN, graph.MERGE_REPLICATE, graph.MERGE_CONDITION):
            artifact, metrics = result
            report["alignments"][name] = {
                "level": artifact.level.value, "path": artifact.path, "sources": list(artifact.sources),
                "source_keys": [k.name for k in artifact.source_keys], "filters": list(artifact.filters),
                "metrics": asdict(metrics), "mapped": metrics.mapped
            }
            if stage != graph.ALIGN:
                report["scale_factors"][name] = metrics.scale_factor
        elif stage in (graph.BIGWIG_REPLICATE, graph.BIGWIG_CONDITION):
            report["bigwig"][name] = result
        elif stage in (graph.CALL_PEAKS_REPLICATE, graph.CALL_PEAKS_CONDITION):
            report["peaks"][name] = {"path": result.path, "peaks": result.peaks, "reads_in_peaks": result.inpeaks,
                                     "total_reads": result.total, "frip": result.frip}
        elif stage in (graph.CONSENSUS_REPLICATE, graph.CONSENSUS_CONDITION):
            report["consensus"][result.level.value] = {
                "bed": result.bed, "saf": result.saf, "boolean_matrix": result.matrix,
                "intervals": result.intervals, "sources": list(result.sources)
            }
        elif stage in (graph.DIFFERENTIAL_REPLICATE, graph.DIFFERENTIAL_CONDITION):
            report["differential"][result.level.value] = {"counts": result.counts, "comparisons": result.comparisons}
        else:
            report["annotation"][name if key is None else f"{stage}:{name}"] = result
    return report


async def run(root: str, design: Sequence[Mapping], options: RunOptions, paired: bool = True) -> Dict[str, Any]:
    """
    Process the whole experiment: design table -> planned stage graph -> execution -> report.json in the root.
    Configuration errors are raised before any task starts, failures of single tasks are listed in the report.
    """
    maxthreads = os.cpu_count() if options.maxthreads < 0 else max(1, options.maxthreads)
    maxjobs = maxthreads if options.maxjobs < 0 else max(1, options.maxjobs)
    threads = max(1, maxthreads // maxjobs)

    # 1. create run folders tree
    mktree(root)
    config_logging(os.path.join(root, LOGS_DIR))

    # 2. validate everything run-scoped
    table, _, _ = resolve(design, paired)
    genome.validate(options)
    stages = plan(table.predicates, options)
    differential_planned = graph.DIFFERENTIAL_REPLICATE in stages or graph.DIFFERENTIAL_CONDITION in stages
    if differential_planned and not os.path.isfile(options.deseq2_script):
        raise ConfigurationError(f"DESeq2 script {options.deseq2_script} doesn't exist")

    # 3. shared references
    reference = await genome.prepare(options, os.path.join(root, REFERENCES_DIR), options.force)

    # 4. all stages
    scheduler = Scheduler(stages, table, _handlers(root, table, options, reference, threads), maxjobs)
    results, failures = await scheduler.run()

    report = _report(table, stages, results, failures)
    with open(os.path.join(root, REPORT_FILENAME), 'w') as file:
        json.dump(report, file, indent=2)
    if failures:
        logger.error(f"{len(failures)} tasks failed, partial results are kept in {root}")
    else:
        logger.info(f"Finished, report saved in {os.path.join(root, REPORT_FILENAME)}")
    return report
