"""Per-scan candidate resolution into PSM slots.

Each (scan, notch) pair owns at most one `PsmSlot`. The slot keeps the best score seen so far together with all
candidates tying that score. Slots live in a `PsmTable` which is allocated once for all scans, workers only ever write
to the rows of their own scans.
"""

import logging

import numpy as np
import pandas as pd

from alphaident.constants.keys import PsmCols
from alphaident.search.containers import CompactPeptide, Scan
from alphaident.utils import SCORE_EPSILON

logger = logging.getLogger()


class PsmSlot:
    """Best scoring candidates of a single scan within a single notch."""

    __slots__ = (
        "scan_index",
        "notch",
        "score",
        "runner_up_score",
        "peptide_ids",
        "candidates",
    )

    def __init__(
        self, scan_index: int, notch: int, peptide_id: int, score: float, candidate=None
    ):
        self.scan_index = scan_index
        self.notch = notch
        self.score = score
        self.runner_up_score = 0.0
        self.peptide_ids = [peptide_id]
        # truncated candidate identities of a non-specific search, keyed by peptide id
        self.candidates = {} if candidate is None else {peptide_id: candidate}

    def add_or_replace(self, peptide_id: int, score: float, candidate=None) -> None:
        """Merge a new candidate into the slot.

        A score higher by more than `SCORE_EPSILON` replaces all tied candidates, a score within `SCORE_EPSILON`
        is appended to the ties unless the peptide is already present, lower scores only update the runner-up score.

        Parameters
        ----------
        peptide_id : int
            Id of the candidate peptide.

        score : float
            Score of the candidate.

        candidate : TruncatedCandidate, optional
            Identity of a truncated candidate.
        """
        if score - self.score > SCORE_EPSILON:
            self.runner_up_score = self.score
            self.score = score
            self.peptide_ids = [peptide_id]
            self.candidates = {} if candidate is None else {peptide_id: candidate}
        elif score - self.score > -SCORE_EPSILON:
            if peptide_id not in self.peptide_ids:
                self.peptide_ids.append(peptide_id)
                if candidate is not None:
                    self.candidates[peptide_id] = candidate
        elif score > self.runner_up_score:
            self.runner_up_score = score

    @property
    def delta_score(self) -> float:
        return self.score - self.runner_up_score

    def is_decoy(self, peptides: list[CompactPeptide]) -> bool:
        """A slot is decoy if any of its tied candidates is a decoy."""
        return any(peptides[i].is_decoy for i in self.peptide_ids)

    def theoretical_mass(self, peptides: list[CompactPeptide]) -> float:
        """Mass of the first tied candidate, using the truncated mass where available."""
        peptide_id = self.peptide_ids[0]
        if peptide_id in self.candidates:
            return self.candidates[peptide_id].theoretical_mass
        return peptides[peptide_id].monoisotopic_mass

    def __repr__(self):
        return (
            f"PsmSlot(scan_index={self.scan_index}, notch={self.notch}, "
            f"score={self.score:.4f}, peptide_ids={self.peptide_ids})"
        )


class PsmTable:
    """Preallocated arena of PSM slots indexed by (scan_index, notch)."""

    def __init__(self, n_scans: int, n_notches: int):
        self.n_scans = n_scans
        self.n_notches = n_notches
        self._slots = [[None] * n_notches for _ in range(n_scans)]

    def get(self, scan_index: int, notch: int) -> PsmSlot | None:
        return self._slots[scan_index][notch]

    def add_or_replace(
        self,
        scan_index: int,
        notch: int,
        peptide_id: int,
        score: float,
        candidate=None,
    ) -> None:
        """Materialize the slot on first use, merge into it afterwards."""
        slot = self._slots[scan_index][notch]
        if slot is None:
            self._slots[scan_index][notch] = PsmSlot(
                scan_index, notch, peptide_id, score, candidate
            )
        else:
            slot.add_or_replace(peptide_id, score, candidate)

    def clear_scans(self, start: int, stop: int) -> None:
        """Reset the slots of a scan range, used when a partition did not complete."""
        for scan_index in range(start, stop):
            self._slots[scan_index] = [None] * self.n_notches

    def __iter__(self):
        for row in self._slots:
            for slot in row:
                if slot is not None:
                    yield slot

    def __len__(self):
        return sum(1 for _ in self)

    def to_df(self, scans: list[Scan], peptides: list[CompactPeptide]) -> pd.DataFrame:
        """Flatten all materialized slots into a PSM dataframe.

        Parameters
        ----------
        scans : list[Scan]
            Scans in scan_index order.

        peptides : list[CompactPeptide]
            Peptides in peptide_id order.

        Returns
        -------
        pd.DataFrame
            One row per materialized slot with the columns defined in `PsmCols`.
        """
        records = []
        for slot in self:
            scan = scans[slot.scan_index]
            peptide_mass = slot.theoretical_mass(peptides)
            mass_error = scan.precursor_mass - peptide_mass
            records.append(
                {
                    PsmCols.SCAN_INDEX: slot.scan_index,
                    PsmCols.SCAN_NUMBER: scan.scan_number,
                    PsmCols.NOTCH: slot.notch,
                    PsmCols.SCORE: slot.score,
                    PsmCols.RUNNER_UP_SCORE: slot.runner_up_score,
                    PsmCols.DELTA_SCORE: slot.delta_score,
                    PsmCols.PEPTIDE_IDS: list(slot.peptide_ids),
                    PsmCols.PRECURSOR_MASS: scan.precursor_mass,
                    PsmCols.PRECURSOR_CHARGE: scan.precursor_charge,
                    PsmCols.RT: scan.rt,
                    PsmCols.PEPTIDE_MASS: peptide_mass,
                    PsmCols.MASS_ERROR: mass_error,
                    PsmCols.ABS_MASS_ERROR: abs(mass_error),
                    PsmCols.DECOY: int(slot.is_decoy(peptides)),
                }
            )

        columns = [
            PsmCols.SCAN_INDEX,
            PsmCols.SCAN_NUMBER,
            PsmCols.NOTCH,
            PsmCols.SCORE,
            PsmCols.RUNNER_UP_SCORE,
            PsmCols.DELTA_SCORE,
            PsmCols.PEPTIDE_IDS,
            PsmCols.PRECURSOR_MASS,
            PsmCols.PRECURSOR_CHARGE,
            PsmCols.RT,
            PsmCols.PEPTIDE_MASS,
            PsmCols.MASS_ERROR,
            PsmCols.ABS_MASS_ERROR,
            PsmCols.DECOY,
        ]
        psm_df = pd.DataFrame.from_records(records, columns=columns)
        psm_df[PsmCols.DECOY] = psm_df[PsmCols.DECOY].astype(np.uint8)
        return psm_df
