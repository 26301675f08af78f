import numpy as np
import pandas as pd
import pytest

from alphaident.constants.keys import DissociationType
from alphaident.exceptions import EmptyIndexError
from alphaident.search.containers import FragmentIndex, Scan
from alphaident.search.scoring import IndexedScorer, brute_force_scores
from alphaident.search.tolerance import AbsoluteTolerance, PpmTolerance
from alphaident.utils import PROTON_MASS, WATER_MASS

from conftest import mock_compact_peptide, mock_scan


def _fragment_masses(peptides, decimals=5):
    return [
        np.unique(
            np.round(
                np.concatenate(
                    [p.n_terminal_masses[:-1], p.c_terminal_masses[:-1] + WATER_MASS]
                ),
                decimals,
            )
        )
        for p in peptides
    ]


def test_fragment_index_from_df_groups_equal_masses():
    # given
    fragment_df = pd.DataFrame(
        {"mass": [300.0, 100.0, 200.0, 100.0], "peptide_id": [2, 1, 0, 0]}
    )

    # when
    index = FragmentIndex.from_df(fragment_df, n_peptides=3)

    # then
    assert np.array_equal(index.keys, [100.0, 200.0, 300.0])
    assert np.array_equal(index.indptr, [0, 2, 3, 4])
    assert np.array_equal(index.peptide_ids, [0, 1, 0, 2])
    assert index.n_peptides == 3


def test_fragment_index_validation():
    with pytest.raises(EmptyIndexError):
        FragmentIndex(np.array([]), np.array([0]), np.array([]))

    with pytest.raises(ValueError):
        FragmentIndex(np.array([2.0, 1.0]), np.array([0, 1, 2]), np.array([0, 1]))

    with pytest.raises(ValueError):
        FragmentIndex(np.array([1.0]), np.array([0, 1]), np.array([4]), n_peptides=2)

    with pytest.raises(EmptyIndexError):
        FragmentIndex.from_peptides([])


def test_indexed_scores_match_brute_force(small_database):
    # given
    peptides = small_database["peptides"]
    tolerance = PpmTolerance(20)
    scorer = IndexedScorer(small_database["fragment_index"], tolerance)
    fragment_masses = _fragment_masses(peptides)
    scores = scorer.new_buffer()

    for scan in small_database["scans"]:
        # when
        scorer.score(scan, scores)

        # then
        expected = brute_force_scores(scan, fragment_masses, tolerance)
        assert np.allclose(scores, expected)


def test_matching_peptide_scores_highest(small_database):
    # given
    scorer = IndexedScorer(small_database["fragment_index"], PpmTolerance(20))
    scores = scorer.new_buffer()

    for scan, target in zip(
        small_database["scans"], small_database["targets"], strict=True
    ):
        # when
        scorer.score(scan, scores)

        # then
        assert np.argmax(scores) == target.peptide_id
        assert scores[target.peptide_id] >= 2 * (len(target) - 1)


def test_score_increment_uses_intensity():
    # given
    peptide = mock_compact_peptide(0, "PEPTIDEK")
    index = FragmentIndex.from_peptides([peptide])
    b2 = peptide.n_terminal_masses[1] + PROTON_MASS
    scan = Scan(0, 1, peptide.monoisotopic_mass, 2, 0.0, [b2, 1500.0], [30.0, 70.0])
    scorer = IndexedScorer(index, PpmTolerance(10))

    # when
    scores = scorer.score(scan, scorer.new_buffer())

    # then
    assert np.isclose(scores[0], 1.3)


def test_empty_spectrum_scores_zero():
    # given
    peptide = mock_compact_peptide(0, "PEPTIDEK")
    scorer = IndexedScorer(FragmentIndex.from_peptides([peptide]), PpmTolerance(10))
    scan = Scan(0, 1, peptide.monoisotopic_mass, 2, 0.0, [], [])
    scores = np.full(1, 5.0)

    # when
    scorer.score(scan, scores)

    # then
    assert np.array_equal(scores, [0.0])


def test_buffer_is_reset_between_scans():
    # given
    peptide = mock_compact_peptide(0, "PEPTIDEK")
    scorer = IndexedScorer(FragmentIndex.from_peptides([peptide]), PpmTolerance(10))
    scan = mock_scan(0, peptide)
    scores = scorer.new_buffer()

    # when
    first = scorer.score(scan, scores).copy()
    second = scorer.score(scan, scores).copy()

    # then
    assert np.array_equal(first, second)


def test_zero_total_ion_current_disables_intensity_term():
    # given
    peptide = mock_compact_peptide(0, "PEPTIDEK")
    scorer = IndexedScorer(FragmentIndex.from_peptides([peptide]), PpmTolerance(10))
    b2 = peptide.n_terminal_masses[1] + PROTON_MASS
    scan = Scan(0, 1, peptide.monoisotopic_mass, 2, 0.0, [b2], [0.0])

    # when
    scores = scorer.score(scan, scorer.new_buffer())

    # then
    assert np.isclose(scores[0], 1.0)


@pytest.mark.parametrize(
    "dissociation_type, n_protons",
    [(DissociationType.HCD, 1), (DissociationType.ETD, 2)],
)
def test_complementary_ions(dissociation_type, n_protons):
    # given
    peptide = mock_compact_peptide(0, "PEPTIDEK")
    index = FragmentIndex.from_peptides([peptide])
    precursor_mass = peptide.monoisotopic_mass
    # complementary mass of the peak is y5
    y5 = peptide.c_terminal_masses[4] + WATER_MASS
    peak_mz = precursor_mass - y5 + n_protons * PROTON_MASS
    scan = Scan(0, 1, precursor_mass, 2, 0.0, [peak_mz], [1.0])

    without = IndexedScorer(index, AbsoluteTolerance(0.001), dissociation_type)
    with_complementary = IndexedScorer(
        index,
        AbsoluteTolerance(0.001),
        dissociation_type,
        add_complementary_ions=True,
    )

    # when
    score_without = without.score(scan, without.new_buffer())[0]
    score_with = with_complementary.score(scan, with_complementary.new_buffer())[0]

    # then
    assert np.isclose(score_with - score_without, 2.0)


def test_unknown_dissociation_type():
    peptide = mock_compact_peptide(0, "PEPTIDEK")

    with pytest.raises(ValueError):
        IndexedScorer(FragmentIndex.from_peptides([peptide]), PpmTolerance(10), "UVPD")


def test_score_fragments_matches_brute_force(small_database):
    # given
    tolerance = PpmTolerance(20)
    scorer = IndexedScorer(small_database["fragment_index"], tolerance)
    fragments = _fragment_masses(small_database["peptides"][:1])

    for scan in small_database["scans"]:
        # when
        score = scorer.score_fragments(scan, fragments[0])

        # then
        assert np.isclose(score, brute_force_scores(scan, fragments, tolerance)[0])

    assert scorer.score_fragments(small_database["scans"][0], np.array([])) == 0.0
