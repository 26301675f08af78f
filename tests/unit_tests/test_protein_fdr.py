import numpy as np
import pandas as pd
import pytest

from alphaident.constants.keys import ProteinGroupCols, PsmCols
from alphaident.exceptions import DataConsistencyError, TooFewProteinsError
from alphaident.inference.containers import ProteinGroup, Protein
from alphaident.inference.parsimony import perform_parsimony
from alphaident.inference.protein_fdr import (
    best_psm_score_per_sequence,
    perform_protein_fdr,
    protein_groups_to_df,
    score_protein_groups,
)

from conftest import mock_database

p1, p2, p3, p4 = "PEPTIDEK", "LGNVMASR", "WFHYQCEK", "ADSLGTVK"


def _psm_df(rows):
    """PSM dataframe from (scan_index, peptide_id, score, qval) tuples."""
    scan_index, peptide_ids, scores, qvals = zip(*rows, strict=True)
    return pd.DataFrame(
        {
            PsmCols.SCAN_INDEX: scan_index,
            PsmCols.NOTCH: [0] * len(rows),
            PsmCols.SCORE: np.array(scores, dtype=np.float64),
            PsmCols.PEPTIDE_IDS: [[i] for i in peptide_ids],
            PsmCols.QVAL: qvals,
            PsmCols.QVAL_NOTCH: qvals,
        }
    )


def _score(protein_peptides, rows, **kwargs):
    proteins, compact_peptides, peptide_mapping = mock_database(protein_peptides)
    peptides = sorted(compact_peptides.values(), key=lambda p: p.peptide_id)
    result = perform_parsimony(peptide_mapping)
    groups = score_protein_groups(
        result.protein_groups,
        _psm_df(rows),
        peptides,
        result.peptide_mapping,
        **kwargs,
    )
    # proteins are only weakly referenced by the compact peptides
    return groups, proteins


def _target_group(name, score, is_decoy=False):
    group = ProteinGroup([Protein(name, p1, is_decoy=is_decoy)], set(), set())
    group.score = score
    return group


def test_score_is_sum_of_best_psm_per_sequence():
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0), (2, 2, 5.0, 0.0), (3, 0, 12.0, 0.0)]

    # when
    groups, _ = _score({"A": [p1, p2], "B": [p2, p3]}, rows)

    # then
    group_a, group_b = groups
    assert group_a.score == 32.0
    assert group_b.score == 25.0
    assert [psm.scan_index for psm in group_a.psms] == [0, 1, 3]


def test_psms_above_q_value_cutoff_are_ignored():
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0), (2, 2, 5.0, 0.0), (3, 2, 100.0, 0.5)]

    # when
    groups, _ = _score({"A": [p1, p2], "B": [p2, p3]}, rows, psm_qval_cutoff=0.01)

    # then
    assert groups[1].score == 25.0


def test_shared_sequences_become_razor_peptides_of_all_groups():
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0), (2, 2, 5.0, 0.0)]

    # when
    groups, _ = _score({"A": [p1, p2], "B": [p2, p3]}, rows)

    # then
    group_a, group_b = groups
    assert group_a.sequences(group_a.razor_peptides) == {p2}
    assert group_b.sequences(group_b.razor_peptides) == {p2}
    assert group_a.sequences(group_a.unique_peptides) == {p1}
    assert group_b.sequences(group_b.unique_peptides) == {p3}


def test_groups_without_psms_are_removed():
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0)]

    # when
    groups, _ = _score({"A": [p1, p2], "B": [p3]}, rows)

    # then
    assert [g.name for g in groups] == ["A"]


def test_unobserved_peptides_are_removed_and_coverage_is_calculated():
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0)]

    # when
    groups, _ = _score({"A": [p1, p2, p4], "B": [p3]}, rows)

    # then
    (group_a,) = groups
    assert group_a.sequences() == {p1, p2}
    assert group_a.sequence_coverage == {"A": pytest.approx(16 / 24)}


@pytest.mark.parametrize(
    "merge, expected_names", [(False, ["A", "B"]), (True, ["A;B"])]
)
def test_merge_indistinguishable_groups(merge, expected_names):
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0)]

    # when
    groups, _ = _score(
        {"A": [p1, p2, p4], "B": [p1, p2, p3]},
        rows,
        merge_indistinguishable_groups=merge,
    )

    # then
    assert [g.name for g in groups] == expected_names
    assert all(g.score == 30.0 for g in groups)


@pytest.mark.parametrize(
    "score_b, expected_names",
    [(1.0000000006, ["A;B"]), (1.0000000004, ["A;B"]), (1.1, ["A", "B"])],
)
def test_merge_compares_scores_within_epsilon(score_b, expected_names):
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0)]
    scores = {"A": 1.0000000004, "B": score_b}

    # when
    groups, _ = _score(
        {"A": [p1, p2, p4], "B": [p1, p2, p3]},
        rows,
        score_function=lambda group: scores[group.master],
        merge_indistinguishable_groups=True,
    )

    # then
    assert sorted(g.name for g in groups) == expected_names


@pytest.mark.parametrize(
    "no_one_hit_wonders, expected_names", [(False, ["A", "B"]), (True, ["A"])]
)
def test_no_one_hit_wonders(no_one_hit_wonders, expected_names):
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0), (2, 2, 30.0, 0.0)]

    # when
    groups, _ = _score(
        {"A": [p1, p2], "B": [p3]}, rows, no_one_hit_wonders=no_one_hit_wonders
    )

    # then
    assert [g.name for g in groups] == expected_names


def test_custom_score_function():
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0), (2, 0, 11.0, 0.0)]

    # when
    groups, _ = _score(
        {"A": [p1, p2]}, rows, score_function=lambda group: float(len(group.psms))
    )

    # then
    assert groups[0].score == 3.0


def test_psm_with_unknown_peptide_raises():
    # given
    proteins, compact_peptides, peptide_mapping = mock_database({"A": [p1], "B": [p2]})
    peptides = sorted(compact_peptides.values(), key=lambda p: p.peptide_id)
    result = perform_parsimony(peptide_mapping)
    del result.peptide_mapping[compact_peptides[p2]]

    # when, then
    with pytest.raises(DataConsistencyError):
        score_protein_groups(
            result.protein_groups,
            _psm_df([(0, 1, 10.0, 0.0)]),
            peptides,
            result.peptide_mapping,
        )


def test_best_psm_score_per_sequence_of_empty_group():
    assert best_psm_score_per_sequence(_target_group("A", 0.0)) == 0.0


def test_perform_protein_fdr():
    # given
    groups = [
        _target_group("T3", 70.0),
        _target_group("D1", 80.0, is_decoy=True),
        _target_group("T1", 100.0),
        _target_group("D2", 60.0, is_decoy=True),
        _target_group("T2", 90.0),
    ]

    # when
    ordered, protein_group_df = perform_protein_fdr(groups)

    # then
    assert [g.name for g in ordered] == ["T1", "T2", "D1", "T3", "D2"]
    assert np.allclose([g.qvalue for g in ordered], [0, 0, 1 / 4, 1 / 4, 2 / 5])
    assert np.allclose([g.fdr for g in ordered], [0, 0, 1 / 3, 1 / 4, 2 / 5])
    assert [g.cumulative_decoy for g in ordered] == [0, 0, 1, 1, 2]
    assert list(protein_group_df[ProteinGroupCols.PG]) == ["T1", "T2", "D1", "T3", "D2"]
    assert np.allclose(
        protein_group_df[ProteinGroupCols.QVAL], [0, 0, 1 / 4, 1 / 4, 2 / 5]
    )


def test_protein_fdr_ties_are_broken_by_accession():
    # given
    groups = [_target_group("B", 50.0), _target_group("A", 50.0, is_decoy=True)]

    # when
    ordered, _ = perform_protein_fdr(groups)

    # then
    assert [g.name for g in ordered] == ["A", "B"]
    assert ordered[0].fdr == 1.0
    assert ordered[1].qvalue == 0.5


def test_perform_protein_fdr_empty():
    with pytest.raises(TooFewProteinsError):
        perform_protein_fdr([])


def test_protein_groups_to_df():
    # given
    rows = [(0, 0, 10.0, 0.0), (1, 1, 20.0, 0.0), (2, 2, 5.0, 0.0)]
    groups, _ = _score({"A": [p1, p2], "B": [p2, p3]}, rows)

    # when
    protein_group_df = protein_groups_to_df(groups)

    # then
    row = protein_group_df.iloc[0]
    assert row[ProteinGroupCols.PG] == "A"
    assert row[ProteinGroupCols.PEPTIDES] == ";".join(sorted([p1, p2]))
    assert row[ProteinGroupCols.UNIQUE_PEPTIDES] == p1
    assert row[ProteinGroupCols.RAZOR_PEPTIDES] == p2
    assert row[ProteinGroupCols.N_PSMS] == 2
    assert row[ProteinGroupCols.COVERAGE] == "1.0000"
