"""Precursor mass acceptance for non-specific digestion.

With a non-specific (or semi-specific) protease only one terminus of an indexed peptide is known. The candidate is
truncated from the other side until its mass matches the precursor. The cumulative mass ladder of the retained
terminus is walked from `min_peptide_length` upwards. Since residue masses are positive the walk stops as soon as the
truncated mass exceeds the observed precursor mass.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from alphaident.constants.keys import Terminus
from alphaident.search.acceptors import NOT_ACCEPTED, AcceptorChain
from alphaident.search.containers import CompactPeptide
from alphaident.utils import WATER_MASS

logger = logging.getLogger()


@dataclass
class TruncatedCandidate:
    """Identity of a (possibly truncated) candidate accepted by the ladder walk.

    Parameters
    ----------
    peptide_id : int
        Id of the indexed peptide the candidate was derived from.
    terminus : str
        Retained terminus, `Terminus.N` or `Terminus.C`.
    length : int
        Number of residues retained.
    theoretical_mass : float
        Neutral mass of the candidate including surviving and newly added modifications.
    notch : int
        Global notch which accepted the candidate.
    start : int
        One-based start residue within the indexed peptide.
    end : int
        One-based end residue within the indexed peptide.
    modifications : dict[int, float]
        Modifications of the candidate keyed by one-based position within the candidate,
        0 is the N-terminal group and `length + 1` the C-terminal group.
    """

    peptide_id: int
    terminus: str
    length: int
    theoretical_mass: float
    notch: int
    start: int
    end: int
    modifications: dict = field(default_factory=dict)
    truncated: bool = False


def truncate_modifications(
    modifications: dict,
    peptide_length: int,
    length: int,
    terminus: str,
) -> dict:
    """Modifications surviving a truncation to `length` residues retained from `terminus`.

    Parameters
    ----------
    modifications : dict[int, float]
        Modifications by one-based position, 0 and `peptide_length + 1` are the terminal groups.
    peptide_length : int
        Number of residues of the untruncated peptide.
    length : int
        Number of residues retained.
    terminus : str
        Retained terminus.

    Returns
    -------
    dict[int, float]
        Modifications keyed by position within the truncated peptide. The group at the cleaved terminus is dropped.
    """
    if length >= peptide_length:
        return dict(modifications)

    if terminus == Terminus.N:
        return {pos: mass for pos, mass in modifications.items() if pos <= length}

    shift = peptide_length - length
    return {
        pos - shift: mass for pos, mass in modifications.items() if pos > shift
    }


def ladder_accepts(
    peptide: CompactPeptide,
    observed_mass: float,
    acceptors: AcceptorChain,
    terminus: str = Terminus.N,
    min_peptide_length: int = 7,
) -> TruncatedCandidate | None:
    """Find the first truncation of `peptide` whose mass is accepted for the observed precursor mass.

    Lengths are tested in increasing order starting at `min_peptide_length`. At each length the plain truncated mass
    is tested first, then every terminal modification annotated for that length. If no truncation is accepted, the
    full-length peptide mass is tested, provided the peptide is not shorter than `min_peptide_length`.

    Parameters
    ----------
    peptide : CompactPeptide
        Indexed peptide, its ladder for `terminus` is used.
    observed_mass : float
        Neutral precursor mass of the scan.
    acceptors : AcceptorChain
        Ordered acceptors, the first one accepting a mass wins.
    terminus : str
        Retained terminus, `Terminus.N` or `Terminus.C`.
    min_peptide_length : int
        Shortest truncation to consider.

    Returns
    -------
    TruncatedCandidate | None
        The accepted candidate or None if neither a truncation nor the full peptide is accepted.
    """
    if terminus == Terminus.N:
        ladder = peptide.n_terminal_masses
    elif terminus == Terminus.C:
        ladder = peptide.c_terminal_masses
    else:
        raise ValueError(f"Unknown terminus '{terminus}', expected one of {Terminus.get_values()}")

    peptide_length = len(ladder)
    length = max(1, min_peptide_length)

    # truncations only, the full length is handled below
    while length < peptide_length:
        theoretical_mass = ladder[length - 1] + WATER_MASS

        alternatives = [(theoretical_mass, None)] + [
            (theoretical_mass + mod_mass, mod_mass)
            for _, mod_mass in peptide.terminal_mods.get(length, [])
        ]
        for mass, mod_mass in alternatives:
            notch = acceptors.accepts(observed_mass, mass)
            if notch != NOT_ACCEPTED:
                return _make_candidate(
                    peptide, terminus, length, peptide_length, mass, notch, mod_mass
                )

        if theoretical_mass > observed_mass:
            break
        length += 1

    if peptide_length < min_peptide_length:
        return None

    notch = acceptors.accepts(observed_mass, peptide.monoisotopic_mass)
    if notch != NOT_ACCEPTED:
        return _make_candidate(
            peptide,
            terminus,
            peptide_length,
            peptide_length,
            peptide.monoisotopic_mass,
            notch,
            None,
        )
    return None


def _make_candidate(
    peptide: CompactPeptide,
    terminus: str,
    length: int,
    peptide_length: int,
    theoretical_mass: float,
    notch: int,
    new_terminal_mod: float | None,
) -> TruncatedCandidate:
    modifications = truncate_modifications(
        peptide.modifications, peptide_length, length, terminus
    )
    if new_terminal_mod is not None:
        # the mod sits on the terminus created by the cleavage
        modifications[length + 1 if terminus == Terminus.N else 0] = new_terminal_mod

    if terminus == Terminus.N:
        start, end = 1, length
    else:
        start, end = peptide_length - length + 1, peptide_length

    return TruncatedCandidate(
        peptide_id=peptide.peptide_id,
        terminus=terminus,
        length=length,
        theoretical_mass=float(theoretical_mass),
        notch=int(notch),
        start=start,
        end=end,
        modifications=modifications,
        truncated=length < peptide_length,
    )


def candidate_fragment_masses(
    peptide: CompactPeptide, candidate: TruncatedCandidate
) -> np.ndarray:
    """Sorted distinct neutral b- and y-type fragment masses of an accepted candidate.

    Fragments of the retained terminus are read from its ladder. Fragments of the new terminus are differences
    within that ladder and carry the modification added at the cleavage site, if any.

    Parameters
    ----------
    peptide : CompactPeptide
        Indexed peptide the candidate was derived from.
    candidate : TruncatedCandidate
        Candidate as returned by `ladder_accepts`.

    Returns
    -------
    np.ndarray
        Fragment masses, excluding the full-length entry.
    """
    length = candidate.length
    if candidate.terminus == Terminus.N:
        ladder = peptide.n_terminal_masses[:length]
        new_terminal_mod = candidate.modifications.get(length + 1, 0.0)
    else:
        ladder = peptide.c_terminal_masses[:length]
        new_terminal_mod = candidate.modifications.get(0, 0.0)

    retained = ladder[:-1]
    # entry k - 1 holds the last k residues counted from the retained terminus
    opposite = ladder[-1] - ladder[-2::-1] + new_terminal_mod

    if candidate.terminus == Terminus.N:
        b_ions, y_ions = retained, opposite + WATER_MASS
    else:
        b_ions, y_ions = opposite, retained + WATER_MASS
    return np.unique(np.concatenate([b_ions, y_ions]))
