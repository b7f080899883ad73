import os
import csv
import logging
from collections import defaultdict
from typing import Mapping, Sequence, Tuple

from .errors import ConfigurationError
from .meta import SampleKey, DesignRow, DesignTable, DesignPredicates, Level

logger = logging.getLogger(__name__)

CONDITION_COLUMNS = ("condition", "group")
READS_COLUMNS = ("fastq_1", "fastq_2")


def read_design(path: str) -> [dict]:
    """Raw rows of the comma separated design file: condition(or group),replicate,fastq_1[,fastq_2]"""
    if not os.path.isfile(path):
        raise ConfigurationError(f"Design file {path} doesn't exist")
    with open(path, 'r', newline='') as file:
        rows = [row for row in csv.DictReader(file) if any(v and v.strip() for v in row.values())]
    logger.debug(f"Parsed {len(rows)} rows from the design file {path}")
    return rows


def _condition(row: Mapping, ind: int) -> str:
    for column in CONDITION_COLUMNS:
        if row.get(column) is not None:
            condition = row[column].strip()
            break
    else:
        raise ConfigurationError(f"Design row {ind}: condition label is missing")
    if not condition or any(c.isspace() for c in condition):
        raise ConfigurationError(f"Design row {ind}: condition label '{condition}' must be non-empty without spaces")
    return condition


def _replicate(row: Mapping, ind: int) -> int:
    value = row.get("replicate")
    try:
        replicate = int(str(value).strip())
    except ValueError:
        raise ConfigurationError(f"Design row {ind}: replicate '{value}' is not an integer")
    if replicate <= 0:
        raise ConfigurationError(f"Design row {ind}: replicate number must be positive, got {replicate}")
    return replicate


def _reads(row: Mapping, ind: int, paired: bool) -> Tuple[str, ...]:
    reads = tuple(row[c].strip() for c in READS_COLUMNS if row.get(c) and row[c].strip())
    expected = 2 if paired else 1
    if len(reads) != expected:
        mode = "paired-end" if paired else "single-end"
        raise ConfigurationError(f"Design row {ind}: {mode} data requires exactly {expected} read files, "
                                 f"got {len(reads)}")
    for path in reads:
        if not os.path.isfile(path):
            raise ConfigurationError(f"Design row {ind}: read file {path} doesn't exist")
    return reads


def resolve(rows: Sequence[Mapping], paired: bool) -> Tuple[DesignTable, bool, bool]:
    """
    Turn raw design rows into the hierarchical key space.
    Rows sharing (condition, replicate) are technical libraries of the same replicate, technical indices 1..k are
    assigned in the original order of rows.
    :param rows: mappings with condition (or group), replicate, fastq_1 and, for paired-end data, fastq_2
    :param paired: paired-end data or not
    :return: design table, replicates_exist, multiple_conditions
    """
    if not rows:
        raise ConfigurationError("Design table is empty")

    technical = defaultdict(int)
    resolved = []
    for ind, row in enumerate(rows, start=1):
        condition, replicate = _condition(row, ind), _replicate(row, ind)
        reads = _reads(row, ind, paired)
        technical[(condition, replicate)] += 1
        resolved.append(DesignRow(SampleKey(condition, replicate, technical[(condition, replicate)]), reads))

    replicates = defaultdict(set)
    for r in resolved:
        replicates[r.key.condition].add(r.key.replicate)
    predicates = DesignPredicates(
        replicates_exist=any(len(reps) > 1 for reps in replicates.values()),
        multiple_conditions=len(replicates) > 1
    )
    table = DesignTable(tuple(resolved), paired, predicates)
    logger.info(f"Design: {len(table)} libraries, {len(table.keys(Level.REPLICATE))} replicates, "
                f"{len(table.keys(Level.CONDITION))} conditions; replicates exist: {predicates.replicates_exist}, "
                f"multiple conditions: {predicates.multiple_conditions}")
    return table, predicates.replicates_exist, predicates.multiple_conditions
