"""Module performing target-decoy False Discovery Rate (FDR) control."""

import numpy as np
import pandas as pd

from alphaident.constants.keys import FdrDenominator, PsmCols
from alphaident.exceptions import TooFewPSMError
from alphaident.reporting.logging import logger
from alphaident.validation.schemas import psm_schema


def keep_best(
    df: pd.DataFrame,
    score_column: str = PsmCols.SCORE,
    group_columns: list[str] | None = None,
    tie_break_columns: list[str] | None = None,
) -> pd.DataFrame:
    """Keep the best scoring row for each group.

    Parameters
    ----------
    df : pd.DataFrame
        The dataframe containing the PSMs.

    score_column : str
        The name of the column containing the score, higher is better.

    group_columns : list[str], default=['scan_index']
        The columns to use for the grouping.

    tie_break_columns : list[str], default=['abs_mass_error', 'notch']
        Columns sorted ascending to break score ties.

    Returns
    -------
    pd.DataFrame
        The dataframe containing the best row of each group, in the original order.

    """
    if group_columns is None:
        group_columns = [PsmCols.SCAN_INDEX]
    if tie_break_columns is None:
        tie_break_columns = [PsmCols.ABS_MASS_ERROR, PsmCols.NOTCH]
    tie_break_columns = [c for c in tie_break_columns if c in df.columns]

    df = df.reset_index(drop=True)
    df = df.sort_values(
        [score_column, *tie_break_columns],
        ascending=[False] + [True] * len(tie_break_columns),
        kind="mergesort",
    )
    df = df.groupby(group_columns).head(1)
    return df.sort_index().reset_index(drop=True)


def fdr_to_q_values(fdr_values: np.ndarray) -> np.ndarray:
    """Converts FDR values to q-values.

    Takes FDR values sorted from best to worst score. Every element receives the lowest FDR of itself and all
    worse scoring elements, which is the lowest FDR at which it would be accepted.

    Parameters
    ----------
    fdr_values : np.ndarray
        The FDR values to convert, may contain +inf.

    Returns
    -------
    np.ndarray
        The q-values.

    """
    fdr_values_flipped = np.flip(fdr_values)
    q_values_flipped = np.minimum.accumulate(fdr_values_flipped)
    return np.flip(q_values_flipped)


def _raw_fdr(
    decoy_cumsum: np.ndarray, target_cumsum: np.ndarray, denominator: str
) -> np.ndarray:
    """Raw FDR from cumulative counts, +inf where the denominator is zero."""
    if denominator == FdrDenominator.TARGETS:
        denom = target_cumsum
    elif denominator == FdrDenominator.TARGETS_AND_DECOYS:
        denom = target_cumsum + decoy_cumsum
    else:
        raise ValueError(
            f"Unknown denominator '{denominator}', expected one of {FdrDenominator.get_values()}"
        )

    decoy_cumsum = decoy_cumsum.astype(np.float64)
    return np.divide(
        decoy_cumsum,
        denom,
        out=np.full(len(decoy_cumsum), np.inf),
        where=denom > 0,
    )


def get_q_values(
    df: pd.DataFrame,
    score_column: str = PsmCols.SCORE,
    decoy_column: str = PsmCols.DECOY,
    notch_column: str | None = PsmCols.NOTCH,
    n_notches: int | None = None,
    denominator: str = FdrDenominator.TARGETS,
    tie_break_columns: list[str] | None = None,
) -> pd.DataFrame:
    """Calculates cumulative counts, raw FDR and q-values, globally and per notch.

    Rows are sorted by descending score. Ties are broken by the ascending `tie_break_columns`, the sort is stable.
    A single top-to-bottom pass computes cumulative target and decoy counts and the raw FDR,
    a bottom-to-top running minimum turns them into q-values. Division by zero results in +inf.

    Parameters
    ----------
    df : pd.DataFrame
        The dataframe containing the PSMs or protein groups.

    score_column : str, default='score'
        Column containing the score, higher is better.

    decoy_column : str, default='decoy'
        Column containing the decoy information. Decoys are expected to be 1 and targets 0.

    notch_column : str | None, default='notch'
        Column containing the notch. If None or missing, no per-notch values are calculated.
        Negative or missing notches are collected in an unassigned bucket with index `n_notches`.

    n_notches : int, optional
        Number of notches, defaults to the largest notch + 1.

    denominator : str, default='targets'
        `FdrDenominator.TARGETS` for decoys / targets,
        `FdrDenominator.TARGETS_AND_DECOYS` for decoys / (targets + decoys).

    tie_break_columns : list[str], default=['abs_mass_error', 'scan_index', 'notch']
        Columns sorted ascending to break score ties. Columns missing in `df` are skipped.

    Returns
    -------
    pd.DataFrame
        Sorted copy of the dataframe with the columns `cumulative_target`, `cumulative_decoy`, `fdr` and `qval`,
        and, if notches are used, the same columns with the suffix `_notch`.

    """
    if tie_break_columns is None:
        tie_break_columns = [PsmCols.ABS_MASS_ERROR, PsmCols.SCAN_INDEX, PsmCols.NOTCH]
    tie_break_columns = [
        c for c in tie_break_columns if c in df.columns and c != score_column
    ]

    df = df.sort_values(
        [score_column, *tie_break_columns],
        ascending=[False] + [True] * len(tie_break_columns),
        kind="mergesort",
    ).reset_index(drop=True)

    decoy_values = df[decoy_column].to_numpy().astype(np.int64)
    target_values = 1 - decoy_values

    decoy_cumsum = np.cumsum(decoy_values)
    target_cumsum = np.cumsum(target_values)
    fdr_values = _raw_fdr(decoy_cumsum, target_cumsum, denominator)

    df[PsmCols.CUMULATIVE_TARGET] = target_cumsum
    df[PsmCols.CUMULATIVE_DECOY] = decoy_cumsum
    df[PsmCols.FDR] = fdr_values
    df[PsmCols.QVAL] = fdr_to_q_values(fdr_values)

    if notch_column is None or notch_column not in df.columns:
        return df

    notches = df[notch_column].fillna(-1).to_numpy().astype(np.int64)
    if n_notches is None:
        n_notches = int(notches.max()) + 1 if len(notches) > 0 else 0
    notches = np.where((notches < 0) | (notches >= n_notches), n_notches, notches)

    target_cumsum_notch = np.zeros(len(df), dtype=np.int64)
    decoy_cumsum_notch = np.zeros(len(df), dtype=np.int64)
    fdr_notch = np.zeros(len(df), dtype=np.float64)
    qval_notch = np.zeros(len(df), dtype=np.float64)

    for notch in np.unique(notches):
        mask = notches == notch
        notch_decoy_cumsum = np.cumsum(decoy_values[mask])
        notch_target_cumsum = np.cumsum(target_values[mask])
        notch_fdr = _raw_fdr(notch_decoy_cumsum, notch_target_cumsum, denominator)

        target_cumsum_notch[mask] = notch_target_cumsum
        decoy_cumsum_notch[mask] = notch_decoy_cumsum
        fdr_notch[mask] = notch_fdr
        qval_notch[mask] = fdr_to_q_values(notch_fdr)

    df[PsmCols.CUMULATIVE_TARGET_NOTCH] = target_cumsum_notch
    df[PsmCols.CUMULATIVE_DECOY_NOTCH] = decoy_cumsum_notch
    df[PsmCols.FDR_NOTCH] = fdr_notch
    df[PsmCols.QVAL_NOTCH] = qval_notch

    return df


def perform_psm_fdr(
    psm_df: pd.DataFrame,
    n_notches: int | None = None,
    keep_best_per_scan: bool = False,
    qval_cutoff: float = 0.01,
) -> pd.DataFrame:
    """Calculates PSM level q-values, globally and per notch.

    Parameters
    ----------
    psm_df : pd.DataFrame
        PSM dataframe as produced by the search.

    n_notches : int, optional
        Number of notches of the acceptor chain used in the search.

    keep_best_per_scan : bool, default=False
        Only keep the best scoring notch of each scan before calculating q-values.

    qval_cutoff : float, default=0.01
        Threshold used for logging the number of accepted PSMs.

    Returns
    -------
    pd.DataFrame
        PSM dataframe sorted by descending score with q-value columns.

    Raises
    ------
    TooFewPSMError
        If the dataframe is empty.
    """
    if len(psm_df) == 0:
        raise TooFewPSMError()

    psm_df = psm_df.copy()
    psm_schema.validate(psm_df, warn_on_critical_values=True)

    if keep_best_per_scan:
        n_before = len(psm_df)
        psm_df = keep_best(psm_df)
        logger.info(f"Kept best notch per scan: {n_before:,} -> {len(psm_df):,} PSMs")

    n_targets = int((psm_df[PsmCols.DECOY] == 0).sum())
    n_decoys = len(psm_df) - n_targets
    logger.info(f"FDR calculation for {n_targets:,} target and {n_decoys:,} decoy PSMs")

    psm_df = get_q_values(
        psm_df, n_notches=n_notches, denominator=FdrDenominator.TARGETS
    )

    n_accepted = int(
        ((psm_df[PsmCols.QVAL] <= qval_cutoff) & (psm_df[PsmCols.DECOY] == 0)).sum()
    )
    logger.progress(
        f"{n_accepted:,} target PSMs at {qval_cutoff * 100:.1f}% FDR"
    )
    return psm_df
