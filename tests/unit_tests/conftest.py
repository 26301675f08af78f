import numpy as np
import pytest

from alphaident.inference.containers import PeptideWithSetMods, Protein
from alphaident.search.containers import CompactPeptide, FragmentIndex, Scan
from alphaident.utils import PROTON_MASS, WATER_MASS

AA_MASSES = {
    "G": 57.02146,
    "A": 71.03711,
    "S": 87.03203,
    "P": 97.05276,
    "V": 99.06841,
    "T": 101.04768,
    "C": 103.00919,
    "L": 113.08406,
    "I": 113.08406,
    "N": 114.04293,
    "D": 115.02694,
    "Q": 128.05858,
    "K": 128.09496,
    "E": 129.04259,
    "M": 131.04049,
    "H": 137.05891,
    "F": 147.06841,
    "R": 156.10111,
    "Y": 163.06333,
    "W": 186.07931,
}


def mock_compact_peptide(
    peptide_id: int,
    sequence: str,
    modifications: dict | None = None,
    terminal_mods: dict | None = None,
) -> CompactPeptide:
    """Create a compact peptide with mass ladders calculated from the sequence.

    Parameters
    ----------

    peptide_id : int
        Id of the peptide

    sequence : str
        Amino acid sequence

    modifications : dict, optional
        Modification masses by one-based residue position, added to the ladders

    terminal_mods : dict, optional
        Modifications on a newly created terminus, keyed by retained length

    Returns
    -------

    CompactPeptide
        A compact peptide
    """
    modifications = {} if modifications is None else modifications
    residue_masses = np.array([AA_MASSES[aa] for aa in sequence])
    for position, mass in modifications.items():
        # terminal groups are added to the first or last residue
        index = min(max(position, 1), len(sequence)) - 1
        residue_masses[index] += mass

    return CompactPeptide(
        peptide_id=peptide_id,
        base_sequence=sequence,
        monoisotopic_mass=float(residue_masses.sum() + WATER_MASS),
        n_terminal_masses=np.cumsum(residue_masses),
        c_terminal_masses=np.cumsum(residue_masses[::-1]),
        modifications=dict(modifications),
        terminal_mods={} if terminal_mods is None else terminal_mods,
    )


def mock_scan(
    scan_index: int,
    peptide: CompactPeptide,
    precursor_mass: float | None = None,
    intensity: float = 100.0,
) -> Scan:
    """Create a scan containing all singly charged b- and y-type fragments of a peptide."""
    b_ions = peptide.n_terminal_masses[:-1] + PROTON_MASS
    y_ions = peptide.c_terminal_masses[:-1] + WATER_MASS + PROTON_MASS
    mz = np.sort(np.concatenate([b_ions, y_ions]))
    return Scan(
        scan_index=scan_index,
        scan_number=scan_index + 1,
        precursor_mass=peptide.monoisotopic_mass
        if precursor_mass is None
        else precursor_mass,
        precursor_charge=2,
        rt=float(scan_index),
        mz=mz,
        intensity=np.full(len(mz), intensity),
    )


def mock_database(protein_peptides: dict[str, list[str]], decoys: tuple = (), contaminants: tuple = ()):
    """Create proteins, compact peptides and the peptide mapping from a protein to peptide sequence mapping.

    Each protein sequence is the concatenation of its peptide sequences.

    Returns
    -------

    proteins : dict[str, Protein]
        Proteins by accession

    compact_peptides : dict[str, CompactPeptide]
        One compact peptide per distinct sequence

    peptide_mapping : dict[CompactPeptide, set[PeptideWithSetMods]]
        All placements of each compact peptide
    """
    proteins = {
        accession: Protein(
            accession,
            "".join(sequences),
            is_decoy=accession in decoys,
            is_contaminant=accession in contaminants,
        )
        for accession, sequences in protein_peptides.items()
    }

    compact_peptides = {}
    peptide_mapping = {}
    for accession, sequences in protein_peptides.items():
        protein = proteins[accession]
        start = 1
        for sequence in sequences:
            if sequence not in compact_peptides:
                compact_peptides[sequence] = mock_compact_peptide(
                    len(compact_peptides), sequence
                )
                peptide_mapping[compact_peptides[sequence]] = set()
            compact_peptide = compact_peptides[sequence]
            compact_peptide.add_protein(protein)
            peptide_mapping[compact_peptide].add(
                PeptideWithSetMods(protein, start, start + len(sequence) - 1)
            )
            start += len(sequence)

    return proteins, compact_peptides, peptide_mapping


@pytest.fixture()
def small_database():
    """Five target proteins with one peptide each and their reversed decoys."""
    target_sequences = ["PEPTIDEK", "LGNVMASR", "WFHYQCEK", "ADSLGTVK", "MNQDFEYR"]

    protein_peptides = {}
    decoys = []
    for i, sequence in enumerate(target_sequences):
        protein_peptides[f"P{i}"] = [sequence]
        decoy_sequence = sequence[-2::-1] + sequence[-1]
        protein_peptides[f"rev_P{i}"] = [decoy_sequence]
        decoys.append(f"rev_P{i}")

    proteins, compact_peptides, peptide_mapping = mock_database(
        protein_peptides, decoys=tuple(decoys)
    )
    peptides = sorted(compact_peptides.values(), key=lambda p: p.peptide_id)
    fragment_index = FragmentIndex.from_peptides(peptides)

    targets = [compact_peptides[s] for s in target_sequences]
    scans = [mock_scan(i, peptide) for i, peptide in enumerate(targets)]

    return {
        "proteins": proteins,
        "peptides": peptides,
        "targets": targets,
        "peptide_mapping": peptide_mapping,
        "fragment_index": fragment_index,
        "scans": scans,
    }
