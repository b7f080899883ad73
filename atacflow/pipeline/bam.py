import os
import asyncio
import logging
import warnings
from subprocess import CalledProcessError
from dataclasses import dataclass
from typing import Sequence, Tuple, Optional, Dict

import pysam

from ..wrappers import samtools, sambamba, picard, bamtools, cookbook
from ..wrappers.utils import replace_bam
from ..utils.orphans import remove_orphans
from .meta import BamArtifact, AnyKey, Level, RunOptions, project
from .path import make_filename, mktemp, stagedir
from .errors import AlignmentError, InsufficientMemoryWarning
from .config import MERGED_SUFFIX, MARKDUP_SUFFIX, DEDUP_SUFFIX, FILTERED_SUFFIX, DEFAULT_MEMORY, SCALE_TO_READS, \
    ALIGNMENT_DIR, FILTERING_DIR, BAM_QC_DIR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BamMetrics:
    # samtools flagstat, QC-passed reads per category
    flagstat: Dict[str, int]
    # picard MarkDuplicates library metrics
    duplication: Dict[str, float]
    # kept and removed records during the orphans removal, paired-end replicates only
    orphans: Optional[Tuple[int, int]] = None

    @property
    def mapped(self) -> int:
        return self.flagstat.get("mapped", 0)

    @property
    def scale_factor(self) -> Optional[float]:
        return SCALE_TO_READS / self.mapped if self.mapped > 0 else None


def memory_hint(memory: Optional[str]) -> str:
    if memory is None:
        warnings.warn(f"Memory budget for picard is not given, fallback to {DEFAULT_MEMORY}", InsufficientMemoryWarning)
        return DEFAULT_MEMORY
    return memory


def check_sorted(artifact: BamArtifact):
    try:
        with pysam.AlignmentFile(artifact.path, "rb") as bam:
            order = bam.header.to_dict().get("HD", {}).get("SO")
    except (ValueError, OSError) as e:
        raise AlignmentError(f"{artifact.path} is not a readable BAM file: {e}") from e
    if order != "coordinate":
        raise AlignmentError(f"{artifact.path} must be coordinate sorted, header sort order: {order}")


async def index(artifact: BamArtifact, threads: int = 1, force: bool = False) -> str:
    if os.path.isfile(artifact.index) and not force:
        return artifact.index
    try:
        return await samtools.index(artifact.path, threads=threads)
    except CalledProcessError as e:
        raise AlignmentError(f"Failed to index {artifact.path}") from e


async def merge(key: AnyKey, artifacts: Sequence[BamArtifact], saveto: str, threads: int = 1,
                force: bool = False) -> BamArtifact:
    """
    Coordinate sorted merge of all artifacts of the group, inputs are processed in the lexicographic order of paths.
    A single artifact is aliased, no new file is created and the lineage of the aliased file is kept.
    :param saveto: folder for the merged BAM file
    """
    assert artifacts and all(project(a.key, key.level) == key for a in artifacts)
    artifacts = sorted(artifacts, key=lambda a: a.path)
    for a in artifacts:
        check_sorted(a)

    filters = artifacts[0].filters if all(a.filters == artifacts[0].filters for a in artifacts) else ()
    if len(artifacts) == 1:
        logger.debug(f"{key.name}: single input {artifacts[0].path}, aliasing it")
        alias = artifacts[0]
        # an aliased merged BAM is the same file, it shares the lineage. Library sources are reads, not BAMs
        sources = (alias.path, ) if alias.level == Level.LIBRARY or not alias.sources else alias.sources
        return BamArtifact(alias.path, key, key.level, sources=sources, source_keys=(alias.key, ), filters=filters)

    paths = tuple(a.path for a in artifacts)
    merged = make_filename(saveto, key=key, suffix=[MERGED_SUFFIX])
    if not os.path.isfile(merged) or force:
        await samtools.merge(list(paths), threads=threads, saveto=merged)
    return BamArtifact(merged, key, key.level, sources=paths, source_keys=tuple(a.key for a in artifacts),
                       filters=filters)


async def markdup(artifact: BamArtifact, saveto: str, qcfolder: str, remove: bool, memory: str,
                  force: bool = False) -> (BamArtifact, Dict[str, float]):
    suffix = [DEDUP_SUFFIX] if remove else [MARKDUP_SUFFIX]
    bam = make_filename(saveto, key=artifact.key, suffix=suffix)
    metrics = make_filename(qcfolder, key=artifact.key, suffix=suffix, format="metrics.txt")
    if not os.path.isfile(bam) or not os.path.isfile(metrics) or force:
        await picard.MarkDuplicates(artifact.path, memory, remove=remove, saveto=bam, metrics=metrics)
    applied = "remove-duplicates" if remove else "mark-duplicates"
    result = BamArtifact(bam, artifact.key, artifact.level, sources=artifact.sources,
                         source_keys=artifact.source_keys, filters=artifact.filters + (applied, ))
    return result, picard.parse_metrics(metrics)


async def filter(artifact: BamArtifact, saveto: str, options: RunOptions, paired: bool, regions: str = None,
                 threads: int = 1, force: bool = False) -> (BamArtifact, Optional[Tuple[int, int]]):
    """
    Flag based filtering restricted to the includable regions, then the optional bamtools rules and,
    for paired-end data, orphans removal. The input must be indexed.
    :param saveto: folder for the filtered BAM file
    :return: filtered and indexed artifact, (kept, removed) records by the orphans removal if it was executed
    """
    assert os.path.isfile(artifact.index), "Filtering by regions requires an indexed BAM"
    rule = sambamba.filter_rule(paired, options.keep_dups, options.keep_multi_map, options.min_mapq)
    filters = [f"sambamba:{rule}"]
    if regions:
        filters.append(f"regions:{regions}")
    if options.bamtools_filter_config:
        filters.append(f"bamtools:{options.bamtools_filter_config}")
    if paired:
        filters.append("fr-pairs" if options.only_fr_pairs else "orphans")

    bam = make_filename(saveto, key=artifact.key, suffix=[FILTERED_SUFFIX])
    result = BamArtifact(bam, artifact.key, artifact.level, sources=artifact.sources,
                         source_keys=artifact.source_keys, filters=artifact.filters + tuple(filters))
    if os.path.isfile(bam) and os.path.isfile(result.index) and not force:
        return result, None

    orphans, temporary = None, []
    try:
        file = await sambamba.filter(artifact.path, rule, regions=regions, threads=threads, saveto=mktemp(saveto))
        temporary.append(file)
        if options.bamtools_filter_config:
            file = await bamtools.filter(file, options.bamtools_filter_config, saveto=mktemp(saveto))
            temporary.append(file)

        if paired:
            byname = await samtools.sort(file, saveto=mktemp(saveto), threads=threads, byname=True)
            temporary.append(byname)
            pairs = mktemp(saveto)
            temporary.append(pairs)
            orphans = await asyncio.get_event_loop().run_in_executor(
                None, remove_orphans, byname, pairs, options.only_fr_pairs
            )
            await samtools.sort(pairs, saveto=bam, threads=threads)
        else:
            # region based sambamba output is already coordinate sorted
            replace_bam(file, bam)
            temporary.remove(file)
    finally:
        for file in temporary:
            if os.path.exists(file):
                os.remove(file)

    await index(result, threads, force=True)
    return result, orphans


async def qc(artifact: BamArtifact, saveto: str, force: bool = False) -> Dict[str, int]:
    """
    samtools flagstat/idxstats/stats reports for the given (indexed) BAM file
    :return: parsed flagstat
    """
    assert os.path.isdir(saveto) and artifact.path.endswith(".bam")
    filename = artifact.identifier
    reports = {tool: os.path.join(saveto, filename.replace(".bam", f".samtools-{tool}"))
               for tool in ("flagstat", "idxstats", "stats")}
    tools = {"flagstat": samtools.flagstat, "idxstats": samtools.idxstats, "stats": samtools.stats}
    coro = [tools[tool](artifact.path, saveto=path) for tool, path in reports.items()
            if not os.path.isfile(path) or force]
    await asyncio.gather(*coro)
    return samtools.parse_flagstat(reports["flagstat"])


async def aggregate(key: AnyKey, artifacts: Sequence[BamArtifact], root: str, options: RunOptions, paired: bool,
                    regions: str = None, threads: int = 1, force: bool = False) -> (BamArtifact, BamMetrics):
    """
    Fan-in of the finer level artifacts into a single artifact of the key level.
    Replicate level: merge -> mark duplicates (flag only) -> filtering -> orphans removal(paired-end)
    Condition level: merge -> remove duplicates
    """
    level = key.level
    assert level in (Level.REPLICATE, Level.CONDITION)
    alignment, qcfolder = stagedir(root, level, ALIGNMENT_DIR), stagedir(root, level, BAM_QC_DIR)
    memory = memory_hint(options.memory)

    merged = await merge(key, artifacts, alignment, threads, force)
    orphans = None
    if level == Level.REPLICATE:
        marked, duplication = await markdup(merged, alignment, qcfolder, remove=False, memory=memory, force=force)
        await index(marked, threads, force)
        result, orphans = await filter(marked, stagedir(root, level, FILTERING_DIR), options, paired, regions,
                                       threads, force)
    else:
        result, duplication = await markdup(merged, alignment, qcfolder, remove=True, memory=memory, force=force)
        await index(result, threads, force)

    flagstat = await qc(result, qcfolder, force)
    metrics = BamMetrics(flagstat, duplication, orphans)
    logger.info(f"{key.name}: {metrics.mapped} mapped reads in {result.path}")
    return result, metrics


async def bigwig(artifact: BamArtifact, scale: Optional[float], chrominfo: str, saveto: str, paired: bool,
                 force: bool = False) -> str:
    if scale is None:
        raise AlignmentError(f"{artifact.path} has no mapped reads, coverage can't be scaled")
    track = make_filename(saveto, key=artifact.key, format="bigWig")
    if not os.path.isfile(track) or force:
        await cookbook.bam_to_bigwig(artifact.path, chrominfo, scale, paired, track)
    return track
