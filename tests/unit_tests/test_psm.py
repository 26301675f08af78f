import numpy as np
import pytest

from alphaident.constants.keys import PsmCols
from alphaident.inference.containers import Protein
from alphaident.search.nonspecific import TruncatedCandidate
from alphaident.search.psm import PsmSlot, PsmTable

from conftest import mock_compact_peptide, mock_scan


def test_higher_score_replaces_ties():
    # given
    slot = PsmSlot(0, 0, peptide_id=1, score=10.0)
    slot.add_or_replace(2, 10.0)

    # when
    slot.add_or_replace(3, 12.0)

    # then
    assert slot.peptide_ids == [3]
    assert slot.score == 12.0
    assert slot.runner_up_score == 10.0
    assert slot.delta_score == 2.0


def test_ties_within_epsilon_are_appended_once():
    # given
    slot = PsmSlot(0, 0, peptide_id=1, score=10.0)

    # when
    slot.add_or_replace(2, 10.0 + 1e-12)
    slot.add_or_replace(2, 10.0)
    slot.add_or_replace(1, 10.0)

    # then
    assert slot.peptide_ids == [1, 2]
    assert slot.score == 10.0


def test_lower_score_only_updates_runner_up():
    # given
    slot = PsmSlot(0, 0, peptide_id=1, score=10.0)

    # when
    slot.add_or_replace(2, 7.0)
    slot.add_or_replace(3, 8.0)
    slot.add_or_replace(4, 5.0)

    # then
    assert slot.peptide_ids == [1]
    assert slot.runner_up_score == 8.0
    assert slot.delta_score == 2.0


def test_candidate_identities_follow_the_ties():
    # given
    first = TruncatedCandidate(1, "N", 7, 800.0, 0, 1, 7)
    second = TruncatedCandidate(2, "N", 8, 900.0, 0, 1, 8)
    slot = PsmSlot(0, 0, 1, 10.0, first)

    # when
    slot.add_or_replace(2, 11.0, second)

    # then
    assert slot.candidates == {2: second}


def test_slot_is_decoy_if_any_tie_is_decoy():
    # given
    target_protein = Protein("P1", "PEPTIDEK")
    decoy_protein = Protein("rev_P1", "EDITPEPK", is_decoy=True)
    target = mock_compact_peptide(0, "PEPTIDEK")
    decoy = mock_compact_peptide(1, "EDITPEPK")
    target.add_protein(target_protein)
    decoy.add_protein(decoy_protein)
    slot = PsmSlot(0, 0, 0, 10.0)

    # when, then
    assert not slot.is_decoy([target, decoy])
    slot.add_or_replace(1, 10.0)
    assert slot.is_decoy([target, decoy])


def test_table_materializes_slots_on_first_use():
    # given
    table = PsmTable(n_scans=3, n_notches=2)

    # when
    table.add_or_replace(1, 1, 5, 3.0)
    table.add_or_replace(1, 1, 6, 4.0)
    table.add_or_replace(2, 0, 5, 2.0)

    # then
    assert len(table) == 2
    assert table.get(0, 0) is None
    assert table.get(1, 1).peptide_ids == [6]
    assert [(s.scan_index, s.notch) for s in table] == [(1, 1), (2, 0)]


def test_table_clear_scans():
    # given
    table = PsmTable(n_scans=3, n_notches=1)
    for scan_index in range(3):
        table.add_or_replace(scan_index, 0, 0, 1.0)

    # when
    table.clear_scans(0, 2)

    # then
    assert [s.scan_index for s in table] == [2]


def test_table_to_df():
    # given
    protein = Protein("P1", "PEPTIDEK")
    peptide = mock_compact_peptide(0, "PEPTIDEK")
    peptide.add_protein(protein)
    scan = mock_scan(0, peptide, precursor_mass=peptide.monoisotopic_mass + 0.002)
    table = PsmTable(1, 1)
    table.add_or_replace(0, 0, 0, 15.0)

    # when
    psm_df = table.to_df([scan], [peptide])

    # then
    assert len(psm_df) == 1
    row = psm_df.iloc[0]
    assert row[PsmCols.PEPTIDE_IDS] == [0]
    assert row[PsmCols.SCAN_NUMBER] == 1
    assert np.isclose(row[PsmCols.MASS_ERROR], 0.002)
    assert np.isclose(row[PsmCols.ABS_MASS_ERROR], 0.002)
    assert row[PsmCols.DECOY] == 0
    assert psm_df[PsmCols.DECOY].dtype == np.uint8


def test_table_to_df_uses_truncated_mass():
    # given
    peptide = mock_compact_peptide(0, "PEPTIDEKPEPTIDEK")
    scan = mock_scan(0, peptide, precursor_mass=900.0)
    candidate = TruncatedCandidate(0, "N", 8, 900.001, 0, 1, 8, truncated=True)
    table = PsmTable(1, 1)
    table.add_or_replace(0, 0, 0, 10.0, candidate)

    # when
    psm_df = table.to_df([scan], [peptide])

    # then
    assert psm_df[PsmCols.PEPTIDE_MASS].iloc[0] == pytest.approx(900.001)
    assert psm_df[PsmCols.MASS_ERROR].iloc[0] == pytest.approx(-0.001)


def test_empty_table_to_df():
    peptide = mock_compact_peptide(0, "PEPTIDEK")

    psm_df = PsmTable(1, 1).to_df([mock_scan(0, peptide)], [peptide])

    assert len(psm_df) == 0
    assert PsmCols.SCORE in psm_df.columns
