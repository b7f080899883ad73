import pytest

from atacflow.pipeline import graph
from atacflow.pipeline.graph import plan, Mode
from atacflow.pipeline.meta import DesignPredicates, RunOptions, Level

PEAKS = RunOptions(fasta="genome.fa", bwa_index="genome", macs_gsize="hs")
NO_PEAKS = RunOptions(fasta="genome.fa", bwa_index="genome")


def _active(replicates: bool, conditions: bool, options: RunOptions = PEAKS) -> set:
    return {s.name for s in plan(DesignPredicates(replicates, conditions), options).active}


def test_replicated_two_conditions_activates_everything():
    # {A: [1, 2], B: [1]}
    active = _active(replicates=True, conditions=True)
    for stage in (graph.MERGE_CONDITION, graph.CALL_PEAKS_REPLICATE, graph.CALL_PEAKS_CONDITION,
                  graph.CONSENSUS_REPLICATE, graph.CONSENSUS_CONDITION,
                  graph.DIFFERENTIAL_REPLICATE, graph.DIFFERENTIAL_CONDITION):
        assert stage in active


def test_single_replicate_single_condition():
    # {A: [1]}
    active = _active(replicates=False, conditions=False)
    assert {graph.ALIGN, graph.MERGE_REPLICATE, graph.CALL_PEAKS_REPLICATE} <= active
    for stage in (graph.MERGE_CONDITION, graph.CALL_PEAKS_CONDITION, graph.CONSENSUS_REPLICATE,
                  graph.CONSENSUS_CONDITION, graph.DIFFERENTIAL_REPLICATE, graph.DIFFERENTIAL_CONDITION):
        assert stage not in active


def test_conditions_without_replicates():
    active = _active(replicates=False, conditions=True)
    assert graph.CONSENSUS_REPLICATE in active
    assert graph.MERGE_CONDITION not in active and graph.CONSENSUS_CONDITION not in active
    assert graph.DIFFERENTIAL_REPLICATE not in active


def test_replicates_of_single_condition():
    active = _active(replicates=True, conditions=False)
    assert {graph.MERGE_CONDITION, graph.CALL_PEAKS_CONDITION, graph.CONSENSUS_REPLICATE} <= active
    assert graph.CONSENSUS_CONDITION not in active and graph.DIFFERENTIAL_REPLICATE not in active


def test_skip_merge_replicates():
    options = RunOptions(fasta="genome.fa", bwa_index="genome", macs_gsize="hs", skip_merge_replicates=True)
    active = _active(True, True, options)
    assert graph.MERGE_CONDITION not in active and graph.CALL_PEAKS_CONDITION not in active
    assert graph.CONSENSUS_CONDITION not in active and graph.DIFFERENTIAL_CONDITION not in active
    assert {graph.CONSENSUS_REPLICATE, graph.DIFFERENTIAL_REPLICATE} <= active


def test_peak_calling_requires_genome_size():
    active = _active(True, True, NO_PEAKS)
    assert active == {graph.ALIGN, graph.MERGE_REPLICATE, graph.MERGE_CONDITION,
                      graph.BIGWIG_REPLICATE, graph.BIGWIG_CONDITION}


def test_optional_stages():
    options = RunOptions(fasta="genome.fa", bwa_index="genome", macs_gsize="hs", gtf="genes.gtf",
                         skip_bigwig=True, skip_diff_analysis=True)
    active = _active(True, True, options)
    assert graph.BIGWIG_REPLICATE not in active and graph.DIFFERENTIAL_REPLICATE not in active
    assert {graph.ANNOTATE_PEAKS_REPLICATE, graph.ANNOTATE_CONSENSUS_CONDITION} <= active
    assert graph.ANNOTATE_PEAKS_REPLICATE not in _active(True, True, PEAKS)


def test_graph_structure():
    stages = plan(DesignPredicates(True, True), PEAKS)
    assert stages[graph.CONSENSUS_CONDITION].mode == Mode.FAN_IN
    assert stages[graph.MERGE_CONDITION].level == Level.CONDITION
    assert [s.name for s in stages.upstream(graph.DIFFERENTIAL_CONDITION)] == \
           [graph.CONSENSUS_CONDITION, graph.MERGE_REPLICATE]
    assert graph.MERGE_CONDITION in stages
    assert stages.describe()[graph.ANNOTATE_PEAKS_CONDITION] is False

    names = [s.name for s in stages.stages]
    for s in stages.stages:
        assert all(names.index(u) < names.index(s.name) for u in s.upstream)
    with pytest.raises(KeyError):
        stages["unknown"]
