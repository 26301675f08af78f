"""Indexed fragment scoring.

Every peak of a spectrum is converted to a neutral fragment mass and looked up in the sorted fragment index.
All bins within tolerance of the peak are visited and each peptide referenced by a visited bin receives the
increment `1 + intensity / total_ion_current`.
"""

import logging

import numba as nb
import numpy as np

from alphaident.constants.keys import DissociationType
from alphaident.search.containers import FragmentIndex, Scan
from alphaident.search.tolerance import DA_UNIT, PPM_UNIT, PpmTolerance, Tolerance
from alphaident.utils import PROTON_MASS, USE_NUMBA_CACHING

logger = logging.getLogger()

# number of protons added to the complementary fragment mass
COMPLEMENTARY_PROTONS = {
    DissociationType.HCD: 1,
    DissociationType.CID: 1,
    DissociationType.ETD: 2,
    DissociationType.ECD: 2,
}


@nb.njit(nogil=True, cache=USE_NUMBA_CACHING)
def _within(
    experimental: float, theoretical: float, tol_value: float, tol_unit: int
) -> bool:
    if tol_unit == PPM_UNIT:
        return abs((experimental - theoretical) / theoretical * 1e6) <= tol_value
    return abs(experimental - theoretical) <= tol_value


@nb.njit(nogil=True, cache=USE_NUMBA_CACHING)
def _tolerance_in_da(mass: float, tol_value: float, tol_unit: int) -> float:
    if tol_unit == PPM_UNIT:
        return abs(mass) * tol_value / 1e6
    return tol_value


@nb.njit(nogil=True, cache=USE_NUMBA_CACHING)
def _add_matching_bins(
    fragment_mass: float,
    increment: float,
    keys: np.ndarray,
    indptr: np.ndarray,
    peptide_ids: np.ndarray,
    tol_value: float,
    tol_unit: int,
    scores: np.ndarray,
) -> None:
    """Add `increment` to every peptide of every bin within tolerance of `fragment_mass`.

    Parameters
    ----------
    fragment_mass : float
        Neutral experimental fragment mass.

    increment : float
        Score increment for each referenced peptide.

    keys, indptr, peptide_ids : np.ndarray
        Fragment index in CSR layout.

    tol_value : float
        Tolerance value.

    tol_unit : int
        Tolerance unit code, `PPM_UNIT` or `DA_UNIT`.

    scores : np.ndarray
        Dense score buffer over all peptides, modified in-place.

    """
    pos = np.searchsorted(keys, fragment_mass)

    # walk down
    i = pos - 1
    while i >= 0 and _within(fragment_mass, keys[i], tol_value, tol_unit):
        for j in range(indptr[i], indptr[i + 1]):
            scores[peptide_ids[j]] += increment
        i -= 1

    # walk up
    i = pos
    while i < len(keys) and _within(fragment_mass, keys[i], tol_value, tol_unit):
        for j in range(indptr[i], indptr[i + 1]):
            scores[peptide_ids[j]] += increment
        i += 1


@nb.njit(nogil=True, cache=USE_NUMBA_CACHING)
def score_spectrum(
    mz: np.ndarray,
    intensity: np.ndarray,
    total_ion_current: float,
    precursor_mass: float,
    keys: np.ndarray,
    indptr: np.ndarray,
    peptide_ids: np.ndarray,
    tol_value: float,
    tol_unit: int,
    complementary_protons: int,
    precursor_tol_value: float,
    precursor_tol_unit: int,
    scores: np.ndarray,
) -> None:
    """Score a single spectrum against the fragment index.

    Parameters
    ----------
    mz, intensity : np.ndarray
        Peaks of the spectrum.

    total_ion_current : float
        Total ion current used to normalize the intensities. Non-positive values disable the intensity term.

    precursor_mass : float
        Neutral precursor mass, only used for complementary peaks.

    keys, indptr, peptide_ids : np.ndarray
        Fragment index in CSR layout.

    tol_value : float
        Fragment tolerance value.

    tol_unit : int
        Fragment tolerance unit code.

    complementary_protons : int
        Number of protons added to complementary fragment masses. 0 disables complementary peaks.

    precursor_tol_value : float
        Precursor tolerance value, propagated into the complementary fragment tolerance.

    precursor_tol_unit : int
        Precursor tolerance unit code.

    scores : np.ndarray
        Dense score buffer over all peptides. Scores are added, the caller is responsible for zeroing.

    """
    precursor_tol_da = _tolerance_in_da(
        precursor_mass, precursor_tol_value, precursor_tol_unit
    )

    for k in range(len(mz)):
        if total_ion_current > 0:
            increment = 1.0 + intensity[k] / total_ion_current
        else:
            increment = 1.0

        _add_matching_bins(
            mz[k] - PROTON_MASS,
            increment,
            keys,
            indptr,
            peptide_ids,
            tol_value,
            tol_unit,
            scores,
        )

        if complementary_protons > 0:
            complementary_mass = (
                precursor_mass - mz[k] + complementary_protons * PROTON_MASS
            )
            if complementary_mass <= 0:
                continue
            fragment_tol_da = _tolerance_in_da(complementary_mass, tol_value, tol_unit)
            expanded_tol = np.sqrt(fragment_tol_da**2 + precursor_tol_da**2)
            _add_matching_bins(
                complementary_mass,
                increment,
                keys,
                indptr,
                peptide_ids,
                expanded_tol,
                DA_UNIT,
                scores,
            )


class IndexedScorer:
    """Scores scans against a fragment index using a caller-owned score buffer."""

    def __init__(
        self,
        fragment_index: FragmentIndex,
        fragment_tolerance: Tolerance,
        dissociation_type: str = DissociationType.HCD,
        add_complementary_ions: bool = False,
        precursor_tolerance: Tolerance = None,
    ):
        if dissociation_type not in COMPLEMENTARY_PROTONS:
            raise ValueError(
                f"Unknown dissociation type '{dissociation_type}', expected one of {DissociationType.get_values()}"
            )
        self.fragment_index = fragment_index
        self.fragment_tolerance = fragment_tolerance
        self.dissociation_type = dissociation_type
        self.add_complementary_ions = add_complementary_ions
        self.precursor_tolerance = (
            precursor_tolerance if precursor_tolerance is not None else PpmTolerance(5)
        )

    @property
    def n_peptides(self) -> int:
        return self.fragment_index.n_peptides

    def new_buffer(self) -> np.ndarray:
        return np.zeros(self.n_peptides, dtype=np.float64)

    def score(self, scan: Scan, scores: np.ndarray) -> np.ndarray:
        """Zero `scores` and fill it with the scores of all peptides for `scan`."""
        scores[:] = 0.0
        if scan.n_peaks == 0:
            return scores

        complementary_protons = (
            COMPLEMENTARY_PROTONS[self.dissociation_type]
            if self.add_complementary_ions
            else 0
        )
        score_spectrum(
            scan.mz,
            scan.intensity,
            float(scan.total_ion_current),
            float(scan.precursor_mass),
            self.fragment_index.keys,
            self.fragment_index.indptr,
            self.fragment_index.peptide_ids,
            self.fragment_tolerance.value,
            self.fragment_tolerance.unit_code,
            complementary_protons,
            self.precursor_tolerance.value,
            self.precursor_tolerance.unit_code,
            scores,
        )
        return scores

    def score_fragments(self, scan: Scan, fragment_masses: np.ndarray) -> float:
        """Score `scan` against the fragments of a single peptide which is not part of the index.

        The same increments as for indexed peptides are used, so scores of rescored and indexed peptides are
        comparable.

        Parameters
        ----------
        scan : Scan
            The scan to score.

        fragment_masses : np.ndarray
            Sorted distinct neutral fragment masses of the peptide.

        Returns
        -------
        float
            Score of the peptide.
        """
        fragment_masses = np.ascontiguousarray(fragment_masses, dtype=np.float64)
        if scan.n_peaks == 0 or len(fragment_masses) == 0:
            return 0.0

        complementary_protons = (
            COMPLEMENTARY_PROTONS[self.dissociation_type]
            if self.add_complementary_ions
            else 0
        )
        score = np.zeros(1, dtype=np.float64)
        score_spectrum(
            scan.mz,
            scan.intensity,
            float(scan.total_ion_current),
            float(scan.precursor_mass),
            fragment_masses,
            np.arange(len(fragment_masses) + 1, dtype=np.int64),
            np.zeros(len(fragment_masses), dtype=np.int64),
            self.fragment_tolerance.value,
            self.fragment_tolerance.unit_code,
            complementary_protons,
            self.precursor_tolerance.value,
            self.precursor_tolerance.unit_code,
            score,
        )
        return float(score[0])


def brute_force_scores(
    scan: Scan,
    fragment_masses: list[np.ndarray],
    fragment_tolerance: Tolerance,
) -> np.ndarray:
    """Reference scorer comparing every peak with every theoretical fragment of every peptide.

    Parameters
    ----------
    scan : Scan
        The scan to score.

    fragment_masses : list[np.ndarray]
        Distinct neutral fragment masses for each peptide id.

    fragment_tolerance : Tolerance
        Fragment tolerance.

    Returns
    -------
    np.ndarray
        Score per peptide id.
    """
    scores = np.zeros(len(fragment_masses), dtype=np.float64)
    tic = scan.total_ion_current
    for peak_mz, peak_intensity in zip(scan.mz, scan.intensity, strict=True):
        increment = 1.0 + peak_intensity / tic if tic > 0 else 1.0
        experimental = peak_mz - PROTON_MASS
        for peptide_id, masses in enumerate(fragment_masses):
            for theoretical in masses:
                if fragment_tolerance.within(experimental, theoretical):
                    scores[peptide_id] += increment
    return scores
