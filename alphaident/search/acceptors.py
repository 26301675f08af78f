"""Precursor mass difference acceptors.

An acceptor decides whether a peptide with a given theoretical mass may explain a scan with a given observed
precursor mass. Each acceptor owns a fixed number of notches, one per tolerance window, and reports which notch
accepted the pair. Several acceptors can be combined into an `AcceptorChain`, which maps the local notches of each
acceptor into one global notch space in the order of the chain.
"""

import logging
from abc import ABC, abstractmethod
from typing import NamedTuple

import numpy as np

from alphaident.constants.keys import AcceptorType, ToleranceUnit
from alphaident.exceptions import ConfigError, NotchOutOfRangeError
from alphaident.search.tolerance import (
    AbsoluteTolerance,
    PpmTolerance,
    Tolerance,
    tolerance_from_config,
)

logger = logging.getLogger()

NOT_ACCEPTED = -1


class AllowedInterval(NamedTuple):
    """Closed interval of theoretical masses accepted under a single notch."""

    min: float
    max: float
    notch: int


class MassDiffAcceptor(ABC):
    """Base class for all mass difference acceptors."""

    def __init__(self, name: str):
        self.name = name

    @property
    @abstractmethod
    def n_notches(self) -> int:
        """Number of notches this acceptor can report."""

    @abstractmethod
    def accepts(self, observed_mass: float, theoretical_mass: float) -> int:
        """Local notch which accepts the pair of masses or -1.

        Parameters
        ----------
        observed_mass : float
            Neutral precursor mass of the scan.

        theoretical_mass : float
            Monoisotopic mass of the candidate peptide.

        Returns
        -------
        int
            The first notch which accepts the pair, -1 if no notch does.
        """

    @abstractmethod
    def allowed_intervals(self, observed_mass: float) -> list[AllowedInterval]:
        """Intervals of theoretical masses accepted for an observed mass, one per notch."""

    def accepts_array(
        self, observed_mass: float, theoretical_masses: np.ndarray
    ) -> np.ndarray:
        """Vectorized version of `accepts` for many candidates of the same scan."""
        notches = np.full(len(theoretical_masses), NOT_ACCEPTED, dtype=np.int64)
        for interval in reversed(self.allowed_intervals(observed_mass)):
            mask = (theoretical_masses >= interval.min) & (
                theoretical_masses <= interval.max
            )
            notches[mask] = interval.notch
        return notches

    def __repr__(self):
        return f"{self.__class__.__name__}({self.name!r}, n_notches={self.n_notches})"


class SinglePpmAroundZero(MassDiffAcceptor):
    """Accepts a single window of the given ppm width around a mass difference of zero."""

    def __init__(self, ppm: float, name: str = None):
        super().__init__(name or f"{ppm}ppmAroundZero")
        self.tolerance = PpmTolerance(ppm)

    @property
    def n_notches(self) -> int:
        return 1

    def accepts(self, observed_mass: float, theoretical_mass: float) -> int:
        return 0 if self.tolerance.within(observed_mass, theoretical_mass) else NOT_ACCEPTED

    def accepts_array(
        self, observed_mass: float, theoretical_masses: np.ndarray
    ) -> np.ndarray:
        ppm_error = np.abs((observed_mass - theoretical_masses) / theoretical_masses * 1e6)
        return np.where(ppm_error <= self.tolerance.value, 0, NOT_ACCEPTED).astype(
            np.int64
        )

    def allowed_intervals(self, observed_mass: float) -> list[AllowedInterval]:
        factor = self.tolerance.value / 1e6
        return [
            AllowedInterval(observed_mass / (1 + factor), observed_mass / (1 - factor), 0)
        ]


class SingleAbsoluteAroundZero(MassDiffAcceptor):
    """Accepts a single window of the given width in Dalton around a mass difference of zero."""

    def __init__(self, value: float, name: str = None):
        super().__init__(name or f"{value}daltonsAroundZero")
        self.tolerance = AbsoluteTolerance(value)

    @property
    def n_notches(self) -> int:
        return 1

    def accepts(self, observed_mass: float, theoretical_mass: float) -> int:
        return 0 if self.tolerance.within(observed_mass, theoretical_mass) else NOT_ACCEPTED

    def allowed_intervals(self, observed_mass: float) -> list[AllowedInterval]:
        return [
            AllowedInterval(
                observed_mass - self.tolerance.value,
                observed_mass + self.tolerance.value,
                0,
            )
        ]


class DotMassDiffAcceptor(MassDiffAcceptor):
    """Accepts mass differences close to one of several discrete offsets, e.g. missed monoisotopic peaks.

    The notch is the index of the accepted offset. Offsets are tested in the given order.
    """

    def __init__(self, name: str, mass_offsets: list[float], tolerance: Tolerance):
        super().__init__(name)
        if len(mass_offsets) == 0:
            raise ConfigError("mass_offsets", "[]", name, "At least one offset is required.")
        self.mass_offsets = np.asarray(mass_offsets, dtype=np.float64)
        self.tolerance = tolerance

    @property
    def n_notches(self) -> int:
        return len(self.mass_offsets)

    def accepts(self, observed_mass: float, theoretical_mass: float) -> int:
        for notch, offset in enumerate(self.mass_offsets):
            if self.tolerance.within(observed_mass, theoretical_mass + offset):
                return notch
        return NOT_ACCEPTED

    def allowed_intervals(self, observed_mass: float) -> list[AllowedInterval]:
        intervals = []
        for notch, offset in enumerate(self.mass_offsets):
            # theoretical + offset must be within tolerance of the observed mass
            if isinstance(self.tolerance, PpmTolerance):
                factor = self.tolerance.value / 1e6
                low = observed_mass / (1 + factor) - offset
                high = observed_mass / (1 - factor) - offset
            else:
                low = observed_mass - self.tolerance.value - offset
                high = observed_mass + self.tolerance.value - offset
            intervals.append(AllowedInterval(low, high, notch))
        return intervals

    def accepts_array(
        self, observed_mass: float, theoretical_masses: np.ndarray
    ) -> np.ndarray:
        notches = np.full(len(theoretical_masses), NOT_ACCEPTED, dtype=np.int64)
        for notch, offset in reversed(list(enumerate(self.mass_offsets))):
            mask = self.tolerance.within_array(observed_mass, theoretical_masses + offset)
            notches[mask] = notch
        return notches


class IntervalMassDiffAcceptor(MassDiffAcceptor):
    """Accepts mass differences (observed - theoretical) inside one of several closed intervals.

    The notch is the index of the interval. Intervals are tested in the given order.
    """

    def __init__(self, name: str, intervals: list[tuple[float, float]]):
        super().__init__(name)
        if len(intervals) == 0:
            raise ConfigError("intervals", "[]", name, "At least one interval is required.")
        for low, high in intervals:
            if low > high:
                raise ConfigError(
                    "intervals", f"[{low}, {high}]", name, "Interval bounds are reversed."
                )
        self.intervals = [(float(low), float(high)) for low, high in intervals]

    @property
    def n_notches(self) -> int:
        return len(self.intervals)

    def accepts(self, observed_mass: float, theoretical_mass: float) -> int:
        mass_difference = observed_mass - theoretical_mass
        for notch, (low, high) in enumerate(self.intervals):
            if low <= mass_difference <= high:
                return notch
        return NOT_ACCEPTED

    def allowed_intervals(self, observed_mass: float) -> list[AllowedInterval]:
        return [
            AllowedInterval(observed_mass - high, observed_mass - low, notch)
            for notch, (low, high) in enumerate(self.intervals)
        ]


class OpenSearchMode(MassDiffAcceptor):
    """Accepts every mass difference in a single notch."""

    def __init__(self, name: str = "OpenSearch"):
        super().__init__(name)

    @property
    def n_notches(self) -> int:
        return 1

    def accepts(self, observed_mass: float, theoretical_mass: float) -> int:
        return 0

    def accepts_array(
        self, observed_mass: float, theoretical_masses: np.ndarray
    ) -> np.ndarray:
        return np.zeros(len(theoretical_masses), dtype=np.int64)

    def allowed_intervals(self, observed_mass: float) -> list[AllowedInterval]:
        return [AllowedInterval(-np.inf, np.inf, 0)]


class AcceptorChain:
    """Ordered list of acceptors sharing one global notch space.

    Acceptor k owns the global notches [offset_k, offset_k + n_notches_k), where offset_k is the sum of the
    notch counts of all preceding acceptors. The first acceptor in the chain that accepts a pair wins.
    """

    def __init__(self, acceptors: list[MassDiffAcceptor]):
        if len(acceptors) == 0:
            raise ConfigError("acceptors", "[]", "", "At least one acceptor is required.")
        self.acceptors = list(acceptors)
        self.offsets = np.cumsum([0] + [a.n_notches for a in self.acceptors])

    @property
    def n_notches(self) -> int:
        return int(self.offsets[-1])

    def __len__(self):
        return len(self.acceptors)

    def _to_global(self, acceptor_idx: int, notch: int) -> int:
        acceptor = self.acceptors[acceptor_idx]
        if notch >= acceptor.n_notches or notch < NOT_ACCEPTED:
            raise NotchOutOfRangeError(acceptor.name, notch, acceptor.n_notches)
        return int(self.offsets[acceptor_idx]) + notch

    def accepts(self, observed_mass: float, theoretical_mass: float) -> int:
        """Global notch of the first acceptor accepting the pair, -1 if none does."""
        for i, acceptor in enumerate(self.acceptors):
            notch = acceptor.accepts(observed_mass, theoretical_mass)
            if notch != NOT_ACCEPTED:
                return self._to_global(i, notch)
        return NOT_ACCEPTED

    def accepts_array(
        self, observed_mass: float, theoretical_masses: np.ndarray
    ) -> np.ndarray:
        """Global notches for many candidates of the same scan, -1 where no acceptor accepts."""
        theoretical_masses = np.asarray(theoretical_masses, dtype=np.float64)
        notches = np.full(len(theoretical_masses), NOT_ACCEPTED, dtype=np.int64)
        for i, acceptor in enumerate(self.acceptors):
            open_mask = notches == NOT_ACCEPTED
            if not open_mask.any():
                break
            local = acceptor.accepts_array(observed_mass, theoretical_masses[open_mask])
            if np.any(local >= acceptor.n_notches) or np.any(local < NOT_ACCEPTED):
                bad = int(local[(local >= acceptor.n_notches) | (local < NOT_ACCEPTED)][0])
                raise NotchOutOfRangeError(acceptor.name, bad, acceptor.n_notches)
            local = np.where(local == NOT_ACCEPTED, NOT_ACCEPTED, local + self.offsets[i])
            notches[open_mask] = local
        return notches

    def allowed_intervals(self, observed_mass: float) -> list[AllowedInterval]:
        """Allowed intervals of all acceptors with global notches."""
        intervals = []
        for i, acceptor in enumerate(self.acceptors):
            for interval in acceptor.allowed_intervals(observed_mass):
                intervals.append(
                    AllowedInterval(
                        interval.min, interval.max, self._to_global(i, interval.notch)
                    )
                )
        return intervals

    def acceptor_of_notch(self, notch: int) -> MassDiffAcceptor:
        """The acceptor owning a global notch."""
        if not 0 <= notch < self.n_notches:
            raise NotchOutOfRangeError("chain", notch, self.n_notches)
        return self.acceptors[int(np.searchsorted(self.offsets, notch, side="right")) - 1]


def acceptor_from_config(entry: dict) -> MassDiffAcceptor:
    """Create a single acceptor from a config entry.

    Parameters
    ----------
    entry : dict
        Mapping with a `type` key, one of `AcceptorType`, and the type specific parameters:
        `tolerance` for `ppm_around_zero` and `da_around_zero`,
        `mass_offsets`, `tolerance` and `unit` for `dot`,
        `intervals` for `interval`.

    Returns
    -------
    MassDiffAcceptor
        The configured acceptor.
    """
    acceptor_type = entry.get("type")
    name = entry.get("name")

    if acceptor_type == AcceptorType.PPM_AROUND_ZERO:
        return SinglePpmAroundZero(entry["tolerance"], name=name)
    if acceptor_type == AcceptorType.DA_AROUND_ZERO:
        return SingleAbsoluteAroundZero(entry["tolerance"], name=name)
    if acceptor_type == AcceptorType.DOT:
        tolerance = tolerance_from_config(
            entry["tolerance"], entry.get("unit", ToleranceUnit.PPM)
        )
        return DotMassDiffAcceptor(name or "dot", entry["mass_offsets"], tolerance)
    if acceptor_type == AcceptorType.INTERVAL:
        return IntervalMassDiffAcceptor(name or "interval", entry["intervals"])
    if acceptor_type == AcceptorType.OPEN:
        return OpenSearchMode(name or "OpenSearch")

    raise ConfigError(
        "search.acceptors",
        str(acceptor_type),
        "",
        f"Unknown acceptor type, expected one of {AcceptorType.get_values()}",
    )


def acceptors_from_config(entries: list[dict]) -> AcceptorChain:
    """Create an acceptor chain from the `search.acceptors` config list."""
    chain = AcceptorChain([acceptor_from_config(entry) for entry in entries])
    logger.info(
        f"Using {len(chain)} acceptor(s) with {chain.n_notches} notch(es): "
        + ", ".join(a.name for a in chain.acceptors)
    )
    return chain
