"""Data containers consumed by the search: scans, compact peptides and the fragment index."""

import logging
import weakref
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from alphaident.exceptions import EmptyIndexError
from alphaident.utils import WATER_MASS
from alphaident.validation.schemas import fragment_index_schema

logger = logging.getLogger()


@dataclass
class Scan:
    """A single MS2 scan.

    Parameters
    ----------
    scan_index : int
        Zero-based position of the scan in the scan list, used as key into the results table.
    scan_number : int
        One-based scan number as reported by the instrument.
    precursor_mass : float
        Neutral monoisotopic precursor mass.
    precursor_charge : int
        Precursor charge state.
    rt : float
        Retention time in minutes.
    mz : np.ndarray
        Peak m/z values, sorted ascending.
    intensity : np.ndarray
        Peak intensities, same length as `mz`.
    total_ion_current : float, optional
        Defaults to the sum of all peak intensities.
    """

    scan_index: int
    scan_number: int
    precursor_mass: float
    precursor_charge: int
    rt: float
    mz: np.ndarray
    intensity: np.ndarray
    total_ion_current: float = None

    def __post_init__(self):
        self.mz = np.asarray(self.mz, dtype=np.float64)
        self.intensity = np.asarray(self.intensity, dtype=np.float64)
        if len(self.mz) != len(self.intensity):
            raise ValueError(
                f"Scan {self.scan_number}: mz and intensity differ in length ({len(self.mz)} != {len(self.intensity)})"
            )
        if len(self.mz) > 1 and np.any(np.diff(self.mz) < 0):
            order = np.argsort(self.mz, kind="stable")
            self.mz = self.mz[order]
            self.intensity = self.intensity[order]
        if self.total_ion_current is None:
            self.total_ion_current = float(self.intensity.sum())

    @property
    def n_peaks(self) -> int:
        return len(self.mz)


@dataclass(eq=False)
class CompactPeptide:
    """Mass-only representation of a candidate peptide as stored in the peptide index.

    Parameters
    ----------
    peptide_id : int
        Position of the peptide in the peptide index.
    base_sequence : str
        Unmodified amino acid sequence.
    monoisotopic_mass : float
        Neutral monoisotopic mass of the full peptide including all modifications.
    n_terminal_masses : np.ndarray
        Cumulative residue masses from the N-terminus, entry i holds the mass of the first i+1 residues.
        Includes modifications which survive a C-terminal truncation.
    c_terminal_masses : np.ndarray
        Cumulative residue masses from the C-terminus, entry i holds the mass of the last i+1 residues.
        Includes modifications which survive an N-terminal truncation.
    full_sequence : str, optional
        Modified sequence, defaults to `base_sequence`.
    modifications : dict[int, float], optional
        Modification masses by one-based residue position. Position 0 is the N-terminal group,
        position `len(base_sequence) + 1` is the C-terminal group.
    terminal_mods : dict[int, list[tuple[str, float]]], optional
        Modifications which would occur on a newly created terminus, keyed by the number of residues retained
        from the searched terminus. Only used by the non-specific search.
    """

    peptide_id: int
    base_sequence: str
    monoisotopic_mass: float
    n_terminal_masses: np.ndarray
    c_terminal_masses: np.ndarray
    full_sequence: str = None
    modifications: dict = field(default_factory=dict)
    terminal_mods: dict = field(default_factory=dict)
    _proteins: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if self.full_sequence is None:
            self.full_sequence = self.base_sequence
        self.n_terminal_masses = np.asarray(self.n_terminal_masses, dtype=np.float64)
        self.c_terminal_masses = np.asarray(self.c_terminal_masses, dtype=np.float64)

    def __len__(self):
        return len(self.base_sequence)

    def add_protein(self, protein) -> None:
        """Register an owning protein. Only a weak reference is kept, the protein list owns the proteins."""
        self._proteins.append(weakref.ref(protein))

    @property
    def proteins(self) -> list:
        return [p for p in (ref() for ref in self._proteins) if p is not None]

    @property
    def is_decoy(self) -> bool:
        """True if all owning proteins are decoys."""
        proteins = self.proteins
        return len(proteins) > 0 and all(p.is_decoy for p in proteins)

    @property
    def is_contaminant(self) -> bool:
        proteins = self.proteins
        return len(proteins) > 0 and all(p.is_contaminant for p in proteins)


class FragmentIndex:
    """Sorted fragment mass bins mapped to peptide ids in CSR layout.

    The peptide ids of bin `i` are `peptide_ids[indptr[i]:indptr[i + 1]]`.

    Parameters
    ----------
    keys : np.ndarray
        Sorted neutral fragment masses of the bins.
    indptr : np.ndarray
        Start offsets into `peptide_ids`, length `len(keys) + 1`.
    peptide_ids : np.ndarray
        Flat array of peptide ids.
    n_peptides : int
        Number of peptides in the peptide index. Defaults to the largest referenced id + 1.
    """

    def __init__(
        self,
        keys: np.ndarray,
        indptr: np.ndarray,
        peptide_ids: np.ndarray,
        n_peptides: int = None,
    ):
        self.keys = np.ascontiguousarray(keys, dtype=np.float64)
        self.indptr = np.ascontiguousarray(indptr, dtype=np.int64)
        self.peptide_ids = np.ascontiguousarray(peptide_ids, dtype=np.int64)

        if len(self.keys) == 0 or len(self.peptide_ids) == 0:
            raise EmptyIndexError()
        if len(self.indptr) != len(self.keys) + 1:
            raise ValueError(
                f"indptr must have length {len(self.keys) + 1}, got {len(self.indptr)}"
            )
        if np.any(np.diff(self.keys) < 0):
            raise ValueError("Fragment index keys must be sorted ascending")

        max_id = int(self.peptide_ids.max()) + 1
        self.n_peptides = max_id if n_peptides is None else int(n_peptides)
        if self.n_peptides < max_id:
            raise ValueError(
                f"Fragment index references peptide id {max_id - 1}, but n_peptides is {self.n_peptides}"
            )

    def __len__(self):
        return len(self.keys)

    @classmethod
    def from_df(cls, fragment_df: pd.DataFrame, n_peptides: int = None) -> "FragmentIndex":
        """Build the index from a long dataframe with one row per (fragment mass, peptide id).

        Rows with identical masses share a bin.

        Parameters
        ----------
        fragment_df : pd.DataFrame
            Dataframe with the columns `mass` and `peptide_id`.

        n_peptides : int, optional
            Number of peptides in the peptide index.

        Returns
        -------
        FragmentIndex
            The fragment index.
        """
        if len(fragment_df) == 0:
            raise EmptyIndexError()
        fragment_df = fragment_df.copy()
        fragment_index_schema.validate(fragment_df)

        fragment_df = fragment_df.sort_values(["mass", "peptide_id"], kind="mergesort")
        keys, counts = np.unique(fragment_df["mass"].to_numpy(), return_counts=True)
        indptr = np.zeros(len(keys) + 1, dtype=np.int64)
        indptr[1:] = np.cumsum(counts)

        logger.info(
            f"Built fragment index with {len(keys):,} bins and {len(fragment_df):,} entries"
        )
        return cls(keys, indptr, fragment_df["peptide_id"].to_numpy(), n_peptides)

    @classmethod
    def from_peptides(
        cls, peptides: list[CompactPeptide], decimals: int = 5
    ) -> "FragmentIndex":
        """Build the index from the N- and C-terminal ladders of the given peptides.

        Neutral b-type fragments are the N-terminal ladder, neutral y-type fragments are the C-terminal ladder
        plus water. The full-length entry is excluded, masses are rounded to `decimals`.
        """
        masses, ids = [], []
        for peptide in peptides:
            for ladder, shift in (
                (peptide.n_terminal_masses, 0.0),
                (peptide.c_terminal_masses, WATER_MASS),
            ):
                fragments = np.round(ladder[:-1] + shift, decimals)
                masses.append(fragments)
                ids.append(np.full(len(fragments), peptide.peptide_id, dtype=np.int64))
        if len(masses) == 0:
            raise EmptyIndexError("No peptides were provided to build the fragment index.")

        fragment_df = pd.DataFrame(
            {"mass": np.concatenate(masses), "peptide_id": np.concatenate(ids)}
        ).drop_duplicates()
        return cls.from_df(fragment_df, n_peptides=len(peptides))
