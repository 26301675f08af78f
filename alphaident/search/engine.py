"""Multithreaded indexed database search.

The scan list is split into contiguous partitions which are processed by a thread pool. The numba scoring kernel
releases the GIL, each worker owns one score buffer for its whole partition. Results are written into a shared
`PsmTable` where every scan owns its row, so no locking is needed while searching. The only shared aggregate is the
map of observed peptide ids to scan indices, each partition builds a local map and folds it into the global one under a
lock once the partition has completed.
"""

import logging
import multiprocessing.pool
import threading
from dataclasses import dataclass, field

import alphatims.utils
import numpy as np
import pandas as pd

from alphaident.constants.keys import DissociationType, Terminus
from alphaident.exceptions import (
    ConfigError,
    DataConsistencyError,
    EmptyIndexError,
    EmptyScanListError,
    WorkerError,
)
from alphaident.reporting.logging import logger
from alphaident.search.acceptors import NOT_ACCEPTED, AcceptorChain
from alphaident.search.cancellation import CancellationToken
from alphaident.search.containers import CompactPeptide, FragmentIndex, Scan
from alphaident.search.nonspecific import candidate_fragment_masses, ladder_accepts
from alphaident.search.psm import PsmTable
from alphaident.search.scoring import IndexedScorer
from alphaident.search.tolerance import Tolerance
from alphaident.utils import get_contiguous_partitions, merge_sets_into

# partitions per thread, smaller partitions balance the load but merge more often
PARTITIONS_PER_THREAD = 4


@dataclass
class NonSpecificSettings:
    """Settings of a non-specific search, see `alphaident.search.nonspecific`."""

    terminus: str = Terminus.N
    min_peptide_length: int = 7

    def __post_init__(self):
        if self.terminus not in Terminus.get_values():
            raise ValueError(
                f"Unknown terminus '{self.terminus}', expected one of {Terminus.get_values()}"
            )


@dataclass
class SearchResults:
    """Output of a search: the PSM table and the peptides observed in each scan."""

    psm_table: PsmTable
    scans: list
    peptides: list
    peptide_to_scans: dict = field(default_factory=dict)

    def to_df(self) -> pd.DataFrame:
        return self.psm_table.to_df(self.scans, self.peptides)


class IndexedSearchEngine:
    def __init__(
        self,
        scans: list[Scan],
        peptides: list[CompactPeptide],
        fragment_index: FragmentIndex,
        acceptors: AcceptorChain,
        fragment_tolerance: Tolerance,
        dissociation_type: str = DissociationType.HCD,
        add_complementary_ions: bool = False,
        precursor_tolerance: Tolerance = None,
        score_cutoff: float = 1.0,
        non_specific: NonSpecificSettings = None,
        thread_count: int = 1,
        cancellation_token: CancellationToken = None,
    ):
        """Search scans against an indexed peptide database.

        Parameters
        ----------
        scans : list[Scan]
            Scans to search, `scans[i].scan_index` must equal `i`.

        peptides : list[CompactPeptide]
            Peptide index, `peptides[i].peptide_id` must equal `i`.

        fragment_index : FragmentIndex
            Fragment index referencing the peptide ids.

        acceptors : AcceptorChain
            Ordered precursor mass difference acceptors.

        fragment_tolerance : Tolerance
            Fragment mass tolerance.

        dissociation_type : str
            Fragmentation method, determines the complementary ion offset.

        add_complementary_ions : bool
            Whether to also score complementary fragment masses.

        precursor_tolerance : Tolerance, optional
            Precursor tolerance propagated into the complementary ion tolerance.

        score_cutoff : float
            Candidates scoring at or below this value are not considered.

        non_specific : NonSpecificSettings, optional
            If set, candidates are truncated by walking their terminal mass ladder.

        thread_count : int
            Number of threads, values <= 0 are relative to the number of cores.

        cancellation_token : CancellationToken, optional
            Token which can be used to cancel the search from another thread.

        """
        if len(scans) == 0:
            raise EmptyScanListError()
        if len(peptides) == 0:
            raise EmptyIndexError("The peptide index contains no peptides.")
        if fragment_index.n_peptides > len(peptides):
            raise DataConsistencyError(
                f"Fragment index references {fragment_index.n_peptides} peptides, but only {len(peptides)} were provided."
            )
        for i, scan in enumerate(scans):
            if scan.scan_index != i:
                raise DataConsistencyError(
                    f"Scan at position {i} has scan_index {scan.scan_index}."
                )

        self.scans = scans
        self.peptides = peptides
        self.acceptors = acceptors
        self.score_cutoff = score_cutoff
        self.non_specific = non_specific
        self.thread_count = thread_count
        self.cancellation_token = (
            cancellation_token if cancellation_token is not None else CancellationToken()
        )

        self.scorer = IndexedScorer(
            fragment_index,
            fragment_tolerance,
            dissociation_type=dissociation_type,
            add_complementary_ions=add_complementary_ions,
            precursor_tolerance=precursor_tolerance,
        )
        self._peptide_masses = np.array(
            [peptide.monoisotopic_mass for peptide in peptides], dtype=np.float64
        )

        self.psm_table = PsmTable(len(scans), acceptors.n_notches)
        self.peptide_to_scans = {}
        self._lock = threading.Lock()

    def run(self) -> SearchResults:
        """Search all scans.

        Returns
        -------
        SearchResults
            The populated PSM table and the peptide to scan map.

        Raises
        ------
        WorkerError
            If a worker failed, the remaining workers are cancelled.

        ConfigError
            If a worker hit a configuration fault such as an acceptor reporting an undeclared notch.
            The remaining workers are cancelled.

        SearchCancelledError
            If the cancellation token was set before all partitions completed.
        """
        n_threads = alphatims.utils.set_threads(self.thread_count)
        partitions = get_contiguous_partitions(
            len(self.scans), n_threads * PARTITIONS_PER_THREAD
        )
        logger.progress(
            f"Searching {len(self.scans):,} scans against {len(self.peptides):,} peptides "
            f"in {len(partitions)} partitions using {n_threads} threads"
        )

        completed = 0
        next_report = 0.1
        with multiprocessing.pool.ThreadPool(n_threads) as pool:
            for merged in pool.imap_unordered(self._search_partition, partitions):
                completed += int(merged)
                if completed / len(partitions) >= next_report:
                    logger.progress(
                        f"Search progress: {completed / len(partitions) * 100:.0f}%"
                    )
                    next_report += 0.1

        self.cancellation_token.raise_if_cancelled()

        logger.info(
            f"Search finished with {len(self.psm_table):,} PSMs for {len(self.peptide_to_scans):,} peptides"
        )
        return SearchResults(
            self.psm_table, self.scans, self.peptides, self.peptide_to_scans
        )

    def _search_partition(self, partition: tuple[int, int]) -> bool:
        """Search the scans of one partition and merge the local peptide map.

        Returns
        -------
        bool
            True if the partition completed and was merged, False if it was cancelled.
        """
        start, stop = partition
        scan_index = start
        local_peptide_to_scans = {}
        scores = self.scorer.new_buffer()

        try:
            for scan_index in range(start, stop):
                if self.cancellation_token.is_cancelled:
                    self.psm_table.clear_scans(start, stop)
                    return False
                self._search_scan(self.scans[scan_index], scores, local_peptide_to_scans)
        except ConfigError:
            self.cancellation_token.cancel()
            raise
        except Exception as e:
            self.cancellation_token.cancel()
            raise WorkerError(start, stop, scan_index, repr(e)) from e

        if self.cancellation_token.is_cancelled:
            self.psm_table.clear_scans(start, stop)
            return False

        with self._lock:
            merge_sets_into(self.peptide_to_scans, local_peptide_to_scans)
        return True

    def _search_scan(
        self, scan: Scan, scores: np.ndarray, local_peptide_to_scans: dict
    ) -> None:
        self.scorer.score(scan, scores)

        # ascending peptide ids make ties deterministic
        candidate_ids = np.flatnonzero(scores > self.score_cutoff)
        if len(candidate_ids) == 0:
            return

        if self.non_specific is not None:
            for peptide_id in candidate_ids:
                candidate = ladder_accepts(
                    self.peptides[peptide_id],
                    scan.precursor_mass,
                    self.acceptors,
                    terminus=self.non_specific.terminus,
                    min_peptide_length=self.non_specific.min_peptide_length,
                )
                if candidate is None:
                    continue

                score = float(scores[peptide_id])
                if candidate.truncated:
                    score = self.scorer.score_fragments(
                        scan,
                        candidate_fragment_masses(self.peptides[peptide_id], candidate),
                    )
                    if score <= self.score_cutoff:
                        continue

                self.psm_table.add_or_replace(
                    scan.scan_index,
                    candidate.notch,
                    int(peptide_id),
                    score,
                    candidate,
                )
                local_peptide_to_scans.setdefault(int(peptide_id), set()).add(
                    scan.scan_index
                )
            return

        notches = self.acceptors.accepts_array(
            scan.precursor_mass, self._peptide_masses[candidate_ids]
        )
        for peptide_id, notch in zip(candidate_ids, notches, strict=True):
            if notch == NOT_ACCEPTED:
                continue
            self.psm_table.add_or_replace(
                scan.scan_index, int(notch), int(peptide_id), float(scores[peptide_id])
            )
            local_peptide_to_scans.setdefault(int(peptide_id), set()).add(
                scan.scan_index
            )
