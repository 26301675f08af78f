"""Protein group scoring, razor peptide assignment and protein level FDR."""

from collections import defaultdict
from collections.abc import Callable

import numpy as np
import pandas as pd

from alphaident.constants.keys import FdrDenominator, ProteinGroupCols, PsmCols
from alphaident.exceptions import DataConsistencyError, TooFewProteinsError
from alphaident.fdr.fdr import get_q_values
from alphaident.inference.containers import ProteinGroup, SupportingPsm
from alphaident.reporting.logging import logger
from alphaident.search.containers import CompactPeptide
from alphaident.utils import SCORE_EPSILON
from alphaident.validation.schemas import protein_group_schema


def best_psm_score_per_sequence(protein_group: ProteinGroup) -> float:
    """Sum over all distinct peptide sequences of the best score of a PSM supporting the sequence."""
    best_scores = {}
    for psm in protein_group.psms:
        for sequence in protein_group.sequences(
            {p for p in psm.peptides if p in protein_group.all_peptides}
        ):
            best_scores[sequence] = max(best_scores.get(sequence, 0.0), psm.score)
    return float(sum(best_scores.values()))


def _supporting_psms(
    psm_df: pd.DataFrame,
    peptides: list[CompactPeptide],
    peptide_mapping: dict,
    psm_qval_cutoff: float,
) -> list[SupportingPsm]:
    """PSMs passing the global and the notch q-value cutoff, with their placed peptides."""
    mask = psm_df[PsmCols.QVAL] <= psm_qval_cutoff
    if PsmCols.QVAL_NOTCH in psm_df.columns:
        mask &= psm_df[PsmCols.QVAL_NOTCH] <= psm_qval_cutoff
    passing_df = psm_df[mask]

    supporting = []
    for scan_index, notch, score, peptide_ids in zip(
        passing_df[PsmCols.SCAN_INDEX],
        passing_df[PsmCols.NOTCH],
        passing_df[PsmCols.SCORE],
        passing_df[PsmCols.PEPTIDE_IDS],
        strict=True,
    ):
        placed = []
        for peptide_id in peptide_ids:
            compact_peptide = peptides[peptide_id]
            if compact_peptide not in peptide_mapping:
                raise DataConsistencyError(
                    f"PSM of scan_index={scan_index} references peptide {peptide_id} "
                    f"({compact_peptide.full_sequence}) which is missing from the peptide mapping."
                )
            placed.extend(peptide_mapping[compact_peptide])
        supporting.append(SupportingPsm(int(scan_index), int(notch), float(score), placed))

    logger.info(
        f"{len(supporting):,} of {len(psm_df):,} PSMs pass q-value {psm_qval_cutoff} and support protein groups"
    )
    return supporting


def _assign_razor_peptides(protein_groups: list[ProteinGroup]) -> None:
    """Peptides whose sequence is shared by several groups become razor peptides of each of them."""
    sequence_to_groups = defaultdict(list)
    for group in protein_groups:
        for sequence in group.sequences():
            sequence_to_groups[sequence].append(group)

    for sequence, groups in sequence_to_groups.items():
        if len(groups) < 2:
            continue
        for group in groups:
            shared = {
                p
                for p in group.all_peptides
                if p.sequence(group.treat_modified_peptides_as_different) == sequence
            }
            group.razor_peptides |= shared
            group.unique_peptides -= shared


def _merge_indistinguishable_groups(
    protein_groups: list[ProteinGroup],
) -> list[ProteinGroup]:
    """Merge groups with identical peptide sequences whose scores agree within `SCORE_EPSILON`."""
    by_sequences = defaultdict(list)
    for group in protein_groups:
        by_sequences[frozenset(group.sequences())].append(group)

    merged_away = set()
    for groups in by_sequences.values():
        groups = sorted(groups, key=lambda g: g.score)
        representative = previous = groups[0]
        for group in groups[1:]:
            if abs(group.score - previous.score) <= SCORE_EPSILON:
                representative.merge(group)
                merged_away.add(id(group))
            else:
                representative = group
            previous = group

    if len(merged_away) > 0:
        logger.info(f"Merged {len(merged_away):,} indistinguishable protein groups")
    return [g for g in protein_groups if id(g) not in merged_away]


def score_protein_groups(
    protein_groups: list[ProteinGroup],
    psm_df: pd.DataFrame,
    peptides: list[CompactPeptide],
    peptide_mapping: dict,
    psm_qval_cutoff: float = 0.01,
    score_function: Callable[[ProteinGroup], float] = best_psm_score_per_sequence,
    merge_indistinguishable_groups: bool = False,
    no_one_hit_wonders: bool = False,
) -> list[ProteinGroup]:
    """Attach supporting PSMs to the protein groups and score them.

    Parameters
    ----------
    protein_groups : list[ProteinGroup]
        Groups as produced by parsimony, modified in-place.

    psm_df : pd.DataFrame
        PSMs with q-values as produced by `perform_psm_fdr`.

    peptides : list[CompactPeptide]
        Peptide index used by the search, indexed by peptide id.

    peptide_mapping : dict[CompactPeptide, set[PeptideWithSetMods]]
        Mapping restricted to the proteins of the groups.

    psm_qval_cutoff : float, default=0.01
        PSMs need a global and a notch q-value at or below this value.

    score_function : Callable[[ProteinGroup], float]
        Scores a single group, defaults to the sum of the best PSM score per sequence.

    merge_indistinguishable_groups : bool, default=False
        Merge groups with equal score and identical peptide sequences after scoring.

    no_one_hit_wonders : bool, default=False
        Remove target groups with only a single peptide sequence.

    Returns
    -------
    list[ProteinGroup]
        Groups with a non-zero score.

    Raises
    ------
    DataConsistencyError
        If a PSM references a peptide missing from the mapping.
    """
    supporting = _supporting_psms(psm_df, peptides, peptide_mapping, psm_qval_cutoff)

    peptide_to_psms = defaultdict(list)
    for psm in supporting:
        for peptide in psm.peptides:
            peptide_to_psms[peptide].append(psm)

    for group in protein_groups:
        observed = {p for p in group.all_peptides if p in peptide_to_psms}
        group.all_peptides = observed
        group.unique_peptides &= observed

        psms = {}
        for peptide in observed:
            for psm in peptide_to_psms[peptide]:
                psms[id(psm)] = psm
        group.psms = sorted(psms.values(), key=lambda psm: (psm.scan_index, psm.notch))
        group.score = float(score_function(group))

    n_groups = len(protein_groups)
    protein_groups = [g for g in protein_groups if g.score > 0]
    logger.info(
        f"Removed {n_groups - len(protein_groups):,} protein groups without supporting PSMs"
    )

    _assign_razor_peptides(protein_groups)

    if merge_indistinguishable_groups:
        protein_groups = _merge_indistinguishable_groups(protein_groups)

    if no_one_hit_wonders:
        n_groups = len(protein_groups)
        protein_groups = [
            g for g in protein_groups if g.is_decoy or len(g.sequences()) > 1
        ]
        logger.info(f"Removed {n_groups - len(protein_groups):,} one-hit wonders")

    for group in protein_groups:
        group.calculate_sequence_coverage()

    return protein_groups


def protein_groups_to_df(protein_groups: list[ProteinGroup]) -> pd.DataFrame:
    """Tabular representation of the protein groups, list columns are joined with ';'."""

    def _join(peptides):
        return ";".join(sorted({p.full_sequence for p in peptides}))

    records = [
        {
            ProteinGroupCols.PG: group.name,
            ProteinGroupCols.PG_MASTER: group.master,
            ProteinGroupCols.N_PROTEINS: len(group.proteins),
            ProteinGroupCols.PEPTIDES: _join(group.all_peptides),
            ProteinGroupCols.UNIQUE_PEPTIDES: _join(group.unique_peptides),
            ProteinGroupCols.RAZOR_PEPTIDES: _join(group.razor_peptides),
            ProteinGroupCols.N_PSMS: len(group.psms),
            ProteinGroupCols.COVERAGE: ";".join(
                f"{group.sequence_coverage.get(p.accession, 0.0):.4f}"
                for p in group.proteins
            ),
            ProteinGroupCols.SCORE: group.score,
            ProteinGroupCols.DECOY: int(group.is_decoy),
            ProteinGroupCols.CONTAMINANT: int(group.is_contaminant),
        }
        for group in protein_groups
    ]
    columns = [
        ProteinGroupCols.PG,
        ProteinGroupCols.PG_MASTER,
        ProteinGroupCols.N_PROTEINS,
        ProteinGroupCols.PEPTIDES,
        ProteinGroupCols.UNIQUE_PEPTIDES,
        ProteinGroupCols.RAZOR_PEPTIDES,
        ProteinGroupCols.N_PSMS,
        ProteinGroupCols.COVERAGE,
        ProteinGroupCols.SCORE,
        ProteinGroupCols.DECOY,
        ProteinGroupCols.CONTAMINANT,
    ]
    return pd.DataFrame.from_records(records, columns=columns)


def perform_protein_fdr(
    protein_groups: list[ProteinGroup],
    qval_cutoff: float = 0.01,
) -> tuple[list[ProteinGroup], pd.DataFrame]:
    """Calculates protein group q-values with decoys / (targets + decoys).

    Groups are ordered by descending score, ties by master accession.

    Parameters
    ----------
    protein_groups : list[ProteinGroup]
        Scored protein groups, their cumulative counts and q-values are set in-place.

    qval_cutoff : float, default=0.01
        Threshold used for logging the number of accepted groups.

    Returns
    -------
    tuple[list[ProteinGroup], pd.DataFrame]
        Groups in FDR order and their tabular representation including q-values.

    Raises
    ------
    TooFewProteinsError
        If no protein groups are available.
    """
    if len(protein_groups) == 0:
        raise TooFewProteinsError()

    protein_group_df = protein_groups_to_df(protein_groups)
    protein_group_schema.validate(protein_group_df)
    protein_group_df["_position"] = np.arange(len(protein_groups))

    protein_group_df = get_q_values(
        protein_group_df,
        score_column=ProteinGroupCols.SCORE,
        decoy_column=ProteinGroupCols.DECOY,
        notch_column=None,
        denominator=FdrDenominator.TARGETS_AND_DECOYS,
        tie_break_columns=[ProteinGroupCols.PG_MASTER],
    )

    ordered_groups = []
    for position, cumulative_target, cumulative_decoy, fdr, qval in zip(
        protein_group_df["_position"],
        protein_group_df[ProteinGroupCols.CUMULATIVE_TARGET],
        protein_group_df[ProteinGroupCols.CUMULATIVE_DECOY],
        protein_group_df[ProteinGroupCols.FDR],
        protein_group_df[ProteinGroupCols.QVAL],
        strict=True,
    ):
        group = protein_groups[position]
        group.cumulative_target = int(cumulative_target)
        group.cumulative_decoy = int(cumulative_decoy)
        group.fdr = float(fdr)
        group.qvalue = float(qval)
        ordered_groups.append(group)

    protein_group_df = protein_group_df.drop(columns=["_position"])

    n_accepted = sum(
        1 for g in ordered_groups if not g.is_decoy and g.qvalue <= qval_cutoff
    )
    logger.progress(
        f"{n_accepted:,} target protein groups at {qval_cutoff * 100:.1f}% FDR"
    )
    return ordered_groups, protein_group_df
