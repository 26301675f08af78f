"""Protein parsimony by greedy set cover.

The observed peptides are explained by the smallest set of proteins found by a greedy approximation:
1. Peptides mapping to a decoy protein lose their target associations, peptides mapping to a contaminant lose their
   non-contaminant associations.
2. Proteins owning a unique peptide sequence are selected up front.
3. While uncovered sequences remain, the protein covering the most of them is selected, together with all proteins
   containing every newly covered sequence. Once no protein covers more than one uncovered sequence, each remaining
   sequence is assigned to its best protein individually.
4. Single-protein groups without unique peptides absorb unselected proteins with an identical peptide set.

Ties are broken by the total number of sequences of a protein, then by accession.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass

from alphaident.inference.containers import Protein, ProteinGroup
from alphaident.search.containers import CompactPeptide

logger = logging.getLogger()


@dataclass
class ParsimonyResult:
    """Protein groups and the peptide mapping restricted to the proteins of these groups."""

    protein_groups: list
    peptide_mapping: dict


def _screen_peptides(peptide_mapping: dict) -> dict:
    """Drop target associations of decoy peptides and non-contaminant associations of contaminant peptides."""
    screened = {}
    n_decoy, n_contaminant = 0, 0
    for compact_peptide, placed_peptides in peptide_mapping.items():
        placed_peptides = set(placed_peptides)
        if any(p.protein.is_decoy for p in placed_peptides):
            placed_peptides = {p for p in placed_peptides if p.protein.is_decoy}
            n_decoy += 1
        elif any(p.protein.is_contaminant for p in placed_peptides):
            placed_peptides = {p for p in placed_peptides if p.protein.is_contaminant}
            n_contaminant += 1
        screened[compact_peptide] = placed_peptides

    logger.info(
        f"Screened {len(screened):,} peptides, {n_decoy:,} map to decoys and {n_contaminant:,} to contaminants"
    )
    return screened


def _tie_break_key(protein: Protein, gain: int, protein_to_sequences: dict):
    return (-gain, -len(protein_to_sequences[protein]), protein.accession)


def _select_proteins(
    sequence_to_proteins: dict, protein_to_sequences: dict
) -> list[Protein]:
    """Greedy set cover over sequences, returns the selected proteins in selection order."""
    selected = []
    selected_set = set()
    covered = set()

    def select(protein: Protein) -> None:
        selected.append(protein)
        selected_set.add(protein)
        covered.update(protein_to_sequences[protein])

    # proteins with unique sequences need no search
    for sequence in sorted(sequence_to_proteins):
        proteins = sequence_to_proteins[sequence]
        if len(proteins) == 1:
            protein = next(iter(proteins))
            if protein not in selected_set:
                select(protein)

    candidates = sorted(
        (p for p in protein_to_sequences if p not in selected_set),
        key=lambda p: p.accession,
    )

    while True:
        candidates = [p for p in candidates if p not in selected_set]
        gains = {p: len(protein_to_sequences[p] - covered) for p in candidates}
        best_gain = max(gains.values(), default=0)

        if best_gain == 0:
            break

        if best_gain >= 2:
            best = min(
                candidates,
                key=lambda p: _tie_break_key(p, gains[p], protein_to_sequences),
            )
            newly_covered = protein_to_sequences[best] - covered
            select(best)
            for protein in candidates:
                if protein not in selected_set and newly_covered <= protein_to_sequences[protein]:
                    select(protein)
            continue

        # every candidate adds at most one sequence, resolve them one by one
        uncovered = set()
        for protein in candidates:
            uncovered |= protein_to_sequences[protein] - covered
        for sequence in sorted(uncovered):
            if sequence in covered:
                continue
            best = min(
                (p for p in sequence_to_proteins[sequence] if p not in selected_set),
                key=lambda p: _tie_break_key(p, 1, protein_to_sequences),
            )
            select(best)
        break

    return selected


def _build_groups(
    selected: list[Protein],
    sequence_to_proteins: dict,
    protein_to_sequences: dict,
    protein_to_peptides: dict,
    treat_modified_peptides_as_different: bool,
) -> list[ProteinGroup]:
    """One group per distinct sequence set among the selected proteins, then fold in indistinguishable proteins."""
    unique_sequences = {s for s, proteins in sequence_to_proteins.items() if len(proteins) == 1}

    proteins_by_sequences = defaultdict(list)
    for protein in selected:
        proteins_by_sequences[frozenset(protein_to_sequences[protein])].append(protein)

    group_members = list(proteins_by_sequences.values())
    selected_set = set(selected)
    unselected = sorted(
        (p for p in protein_to_sequences if p not in selected_set),
        key=lambda p: p.accession,
    )

    for members in group_members:
        if len(members) != 1:
            continue
        sequences = protein_to_sequences[members[0]]
        if sequences & unique_sequences:
            continue
        for protein in unselected:
            if protein not in selected_set and protein_to_sequences[protein] == sequences:
                members.append(protein)
                selected_set.add(protein)

    protein_groups = []
    for members in group_members:
        member_set = set(members)
        all_peptides = set()
        for protein in members:
            all_peptides |= protein_to_peptides[protein]
        unique_peptides = {
            p
            for p in all_peptides
            if sequence_to_proteins[p.sequence(treat_modified_peptides_as_different)]
            <= member_set
        }
        protein_groups.append(
            ProteinGroup(
                members,
                all_peptides,
                unique_peptides,
                treat_modified_peptides_as_different=treat_modified_peptides_as_different,
            )
        )

    return sorted(protein_groups, key=lambda g: g.master)


def perform_parsimony(
    peptide_mapping: dict[CompactPeptide, set],
    treat_modified_peptides_as_different: bool = False,
) -> ParsimonyResult:
    """Reduce the peptide to protein mapping to a minimal list of protein groups.

    Parameters
    ----------
    peptide_mapping : dict[CompactPeptide, set[PeptideWithSetMods]]
        Observed compact peptides and all of their placements on database proteins.

    treat_modified_peptides_as_different : bool, default=False
        Compare peptides by modified sequence instead of base sequence.

    Returns
    -------
    ParsimonyResult
        Protein groups sorted by master accession and the mapping restricted to the proteins of these groups.

    """
    logger.info(f"Performing parsimony on {len(peptide_mapping):,} peptides")
    screened = _screen_peptides(peptide_mapping)

    sequence_to_proteins = defaultdict(set)
    protein_to_sequences = defaultdict(set)
    protein_to_peptides = defaultdict(set)
    for placed_peptides in screened.values():
        for peptide in placed_peptides:
            sequence = peptide.sequence(treat_modified_peptides_as_different)
            sequence_to_proteins[sequence].add(peptide.protein)
            protein_to_sequences[peptide.protein].add(sequence)
            protein_to_peptides[peptide.protein].add(peptide)

    selected = _select_proteins(sequence_to_proteins, protein_to_sequences)
    protein_groups = _build_groups(
        selected,
        sequence_to_proteins,
        protein_to_sequences,
        protein_to_peptides,
        treat_modified_peptides_as_different,
    )

    surviving = {protein for group in protein_groups for protein in group.proteins}
    restricted_mapping = {
        compact_peptide: {p for p in placed_peptides if p.protein in surviving}
        for compact_peptide, placed_peptides in screened.items()
    }

    logger.info(
        f"Parsimony selected {len(surviving):,} of {len(protein_to_sequences):,} proteins "
        f"in {len(protein_groups):,} protein groups"
    )
    return ParsimonyResult(protein_groups, restricted_mapping)
