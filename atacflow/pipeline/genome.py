import os
import logging
from subprocess import CalledProcessError
from typing import Optional, Tuple
from dataclasses import dataclass

from pybedtools import BedTool, Interval
from pybedtools.helpers import BEDToolsError
from pybedtools.cbedtools import MalformedBedLineError

from ..wrappers import samtools
from .meta import RunOptions
from .errors import ConfigurationError
from .config import MITO_NAMES, CHROMINFO_FILENAME, INCLUDABLE_REGIONS_FILENAME

logger = logging.getLogger(__name__)

BWA_INDEX_EXTENSIONS = (".amb", ".ann", ".bwt", ".pac", ".sa")


@dataclass(frozen=True)
class Genome:
    fasta: str
    chrominfo: str
    # genome - blacklist - mitochondrial contig
    includable: str
    mito: Optional[str]


def validate(options: RunOptions):
    """All shared references must exist before anything starts"""
    for path in options.references:
        if not os.path.isfile(path):
            raise ConfigurationError(f"Reference file {path} doesn't exist")
    missing = [options.bwa_index + ext for ext in BWA_INDEX_EXTENSIONS if not os.path.isfile(options.bwa_index + ext)]
    if missing:
        raise ConfigurationError(f"BWA index {options.bwa_index} is incomplete, missing: {', '.join(missing)}")
    if options.min_reps_consensus < 1:
        raise ConfigurationError(f"min_reps_consensus must be positive, got {options.min_reps_consensus}")


def read_chrominfo(path: str) -> [Tuple[str, int]]:
    """(contig, size) pairs from a FASTA index or a chrom.sizes file"""
    with open(path, 'r') as file:
        rows = [line.rstrip("\n").split("\t") for line in file if line.strip()]
    try:
        sizes = [(row[0], int(row[1])) for row in rows]
    except (IndexError, ValueError) as e:
        raise ConfigurationError(f"Malformed contig sizes in {path}: {e}") from e
    if any(size <= 0 for _, size in sizes):
        raise ConfigurationError(f"Malformed contig sizes in {path}: non-positive contig size")
    return sizes


def mitochondrial(chroms: [str], mito_name: Optional[str]) -> Optional[str]:
    if mito_name is not None:
        if mito_name not in chroms:
            raise ConfigurationError(f"Mitochondrial contig {mito_name} is not present in the genome")
        return mito_name
    for name in MITO_NAMES:
        if name in chroms:
            return name
    return None


async def _faidx(options: RunOptions, folder: str, force: bool) -> str:
    if os.path.isfile(options.fasta + ".fai"):
        return options.fasta + ".fai"
    fai = os.path.join(folder, os.path.basename(options.fasta) + ".fai")
    if not os.path.isfile(fai) or force:
        try:
            await samtools.faidx(options.fasta, saveto=fai)
        except CalledProcessError as e:
            raise ConfigurationError(f"Failed to index the reference {options.fasta}") from e
    return fai


def _includable(sizes: [Tuple[str, int]], exclude: Optional[str], blacklist: Optional[str], saveto: str):
    genome = BedTool([Interval(chrom, 0, size) for chrom, size in sizes if chrom != exclude])
    if not blacklist:
        genome.saveas(saveto)
        return saveto
    try:
        genome.sort().subtract(BedTool(blacklist).sort()).saveas(saveto)
    except (BEDToolsError, MalformedBedLineError, ValueError, OSError) as e:
        if os.path.exists(saveto):
            os.remove(saveto)
        raise ConfigurationError(f"Failed to subtract the blacklist {blacklist}: {e}") from e
    return saveto


async def prepare(options: RunOptions, folder: str, force: bool = False) -> Genome:
    """Chromosome sizes and includable regions for the given genome. References themselves are never modified"""
    assert os.path.isdir(folder)
    fai = await _faidx(options, folder, force)

    chrominfo = os.path.join(folder, CHROMINFO_FILENAME)
    if not os.path.isfile(chrominfo) or force:
        sizes = read_chrominfo(fai)
        with open(chrominfo, 'w') as file:
            for chrom, size in sizes:
                file.write(f"{chrom}\t{size}\n")
    sizes = read_chrominfo(chrominfo)
    if not sizes:
        raise ConfigurationError(f"No contigs found in the {options.fasta} index")

    mito = mitochondrial([chrom for chrom, _ in sizes], options.mito_name)
    exclude = None if options.keep_mito else mito
    includable = os.path.join(folder, INCLUDABLE_REGIONS_FILENAME)
    if not os.path.isfile(includable) or force:
        _includable(sizes, exclude, options.blacklist, includable)
        logger.info(f"Includable regions saved in {includable}, blacklist: {options.blacklist}, "
                    f"excluded mitochondrial contig: {exclude}")
    return Genome(options.fasta, chrominfo, includable, mito)
