"""Proteins, protein-placed peptides and protein groups used for protein inference."""

from dataclasses import dataclass, field


@dataclass(eq=False)
class Protein:
    """A database protein.

    Parameters
    ----------
    accession : str
        Unique accession.
    sequence : str
        Amino acid sequence.
    is_decoy : bool
        Whether the protein is a decoy.
    is_contaminant : bool
        Whether the protein is a known contaminant.
    """

    accession: str
    sequence: str
    is_decoy: bool = False
    is_contaminant: bool = False

    def __len__(self):
        return len(self.sequence)

    def __repr__(self):
        return f"Protein({self.accession!r})"


@dataclass(eq=False)
class PeptideWithSetMods:
    """A peptide placed on a protein with a fixed set of modifications.

    Parameters
    ----------
    protein : Protein
        The protein the peptide was digested from.
    start : int
        One-based start residue within the protein.
    end : int
        One-based end residue within the protein, inclusive.
    full_sequence : str, optional
        Modified sequence, defaults to the base sequence.
    modifications : dict[int, float], optional
        Modification masses by one-based position within the peptide.
    """

    protein: Protein
    start: int
    end: int
    full_sequence: str = None
    modifications: dict = field(default_factory=dict)

    def __post_init__(self):
        if not 1 <= self.start <= self.end <= len(self.protein):
            raise ValueError(
                f"Peptide [{self.start}, {self.end}] is outside of protein {self.protein.accession} "
                f"of length {len(self.protein)}"
            )
        if self.full_sequence is None:
            self.full_sequence = self.base_sequence

    @property
    def base_sequence(self) -> str:
        return self.protein.sequence[self.start - 1 : self.end]

    def sequence(self, treat_modified_peptides_as_different: bool = False) -> str:
        """Sequence identity used for inference."""
        if treat_modified_peptides_as_different:
            return self.full_sequence
        return self.base_sequence

    def __repr__(self):
        return f"PeptideWithSetMods({self.full_sequence!r}, {self.protein.accession}:{self.start}-{self.end})"


@dataclass
class SupportingPsm:
    """A PSM passing the q-value threshold which supports a protein group."""

    scan_index: int
    notch: int
    score: float
    peptides: list


class ProteinGroup:
    """One or more indistinguishable proteins and the evidence supporting them."""

    def __init__(
        self,
        proteins: list[Protein],
        all_peptides: set,
        unique_peptides: set,
        treat_modified_peptides_as_different: bool = False,
    ):
        self.proteins = sorted(proteins, key=lambda p: p.accession)
        self.all_peptides = set(all_peptides)
        self.unique_peptides = set(unique_peptides)
        self.razor_peptides = set()
        self.treat_modified_peptides_as_different = treat_modified_peptides_as_different

        self.psms = []
        self.score = 0.0
        self.cumulative_target = 0
        self.cumulative_decoy = 0
        self.fdr = 0.0
        self.qvalue = 0.0
        self.sequence_coverage = {}

    @property
    def name(self) -> str:
        return ";".join(p.accession for p in self.proteins)

    @property
    def master(self) -> str:
        return self.proteins[0].accession

    @property
    def is_decoy(self) -> bool:
        return any(p.is_decoy for p in self.proteins)

    @property
    def is_contaminant(self) -> bool:
        return any(p.is_contaminant for p in self.proteins)

    def sequences(self, peptides: set = None) -> set[str]:
        """Distinct sequences of the given peptides, defaults to all peptides of the group."""
        if peptides is None:
            peptides = self.all_peptides
        return {
            p.sequence(self.treat_modified_peptides_as_different) for p in peptides
        }

    def merge(self, other: "ProteinGroup") -> None:
        """Fold another group into this one."""
        self.proteins = sorted(
            {*self.proteins, *other.proteins}, key=lambda p: p.accession
        )
        self.all_peptides |= other.all_peptides
        self.unique_peptides |= other.unique_peptides
        self.razor_peptides |= other.razor_peptides
        known = {id(psm) for psm in self.psms}
        self.psms.extend(psm for psm in other.psms if id(psm) not in known)

    def calculate_sequence_coverage(self) -> dict[str, float]:
        """Fraction of residues of each protein covered by the group's peptides."""
        self.sequence_coverage = {}
        for protein in self.proteins:
            covered = set()
            for peptide in self.all_peptides:
                if peptide.protein is protein:
                    covered.update(range(peptide.start, peptide.end + 1))
            self.sequence_coverage[protein.accession] = (
                len(covered) / len(protein) if len(protein) > 0 else 0.0
            )
        return self.sequence_coverage

    def __repr__(self):
        return f"ProteinGroup({self.name!r}, score={self.score:.3f})"
