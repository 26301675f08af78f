"""Mass tolerances in ppm or Dalton."""

from abc import ABC, abstractmethod

import numpy as np

from alphaident.constants.keys import ToleranceUnit

# integer codes used to pass the unit into numba kernels
PPM_UNIT = 0
DA_UNIT = 1


class Tolerance(ABC):
    """Symmetric mass tolerance. All interval checks are closed."""

    unit_code: int

    def __init__(self, value: float):
        if value < 0:
            raise ValueError(f"Tolerance must not be negative, got {value}")
        self.value = float(value)

    @abstractmethod
    def within(self, experimental: float, theoretical: float) -> bool:
        """Whether the experimental mass lies within tolerance of the theoretical mass."""

    @abstractmethod
    def to_da(self, mass: float) -> float:
        """Half width of the tolerance window in Dalton at the given mass."""

    def get_range(self, mass: float) -> tuple[float, float]:
        """Closed interval of experimental masses accepted for a theoretical mass."""
        width = self.to_da(mass)
        return mass - width, mass + width

    def __repr__(self):
        return f"{self.__class__.__name__}({self.value})"


class PpmTolerance(Tolerance):
    unit_code = PPM_UNIT

    def within(self, experimental: float, theoretical: float) -> bool:
        return abs((experimental - theoretical) / theoretical * 1e6) <= self.value

    def within_array(
        self, experimental: np.ndarray | float, theoretical: np.ndarray | float
    ) -> np.ndarray:
        return np.abs((experimental - theoretical) / theoretical * 1e6) <= self.value

    def to_da(self, mass: float) -> float:
        return abs(mass) * self.value / 1e6

    def __str__(self):
        return f"±{self.value:.4f} PPM"


class AbsoluteTolerance(Tolerance):
    unit_code = DA_UNIT

    def within(self, experimental: float, theoretical: float) -> bool:
        return abs(experimental - theoretical) <= self.value

    def within_array(
        self, experimental: np.ndarray | float, theoretical: np.ndarray | float
    ) -> np.ndarray:
        return np.abs(experimental - theoretical) <= self.value

    def to_da(self, mass: float) -> float:
        return self.value

    def __str__(self):
        return f"±{self.value:.4f} Da"


def tolerance_from_config(value: float, unit: str) -> Tolerance:
    """Create a tolerance from a value and a unit string ('ppm' or 'Da')."""
    if unit.lower() == ToleranceUnit.PPM.lower():
        return PpmTolerance(value)
    if unit.lower() == ToleranceUnit.DA.lower():
        return AbsoluteTolerance(value)
    raise ValueError(f"Unknown tolerance unit '{unit}', expected one of {ToleranceUnit.get_values()}")
