import logging

import numpy as np
import pandas as pd

logger = logging.getLogger()


class Property:
    """Column property base class"""

    def __init__(self, name: str, type: type):
        """Base class for all properties

        Parameters
        ----------
        name: str
            Name of the column

        type: type
            dtype the column is cast to

        """
        self.name = name
        self.type = type

    def _cast(self, df: pd.DataFrame) -> None:
        if df[self.name].dtype != self.type:
            df[self.name] = df[self.name].astype(self.type)

    def __call__(self, df: pd.DataFrame) -> bool:
        raise NotImplementedError


class Optional(Property):
    """Column which is cast if present"""

    def __call__(self, df: pd.DataFrame) -> bool:
        if self.name in df.columns:
            self._cast(df)
        return True


class Required(Property):
    """Column which must be present and is cast"""

    def __call__(self, df: pd.DataFrame) -> bool:
        if self.name not in df.columns:
            return False
        self._cast(df)
        return True


class Schema:
    def __init__(self, name: str, properties: list[Property]):
        """Schema for validating dataframes in-place

        Parameters
        ----------
        name: str
            Name of the schema, used in error messages

        properties: list
            List of Property objects

        """
        self.name = name
        self.schema = properties
        for property in self.schema:
            if not isinstance(property, Property):
                raise ValueError("Schema must contain only Property objects")

    def validate(
        self,
        df: pd.DataFrame,
        warn_on_critical_values: bool = False,
    ) -> None:
        """Validates the dataframe and casts all known columns.

        Parameters
        ----------
        df: pd.DataFrame
            Dataframe to validate

        warn_on_critical_values: bool
            If True, warn on NaN values in float columns. Defaults to False.

        Raises
        ------
        ValueError
            If a required column is missing.

        """
        if warn_on_critical_values:
            self._warn_on_critical_values(df)

        for property in self.schema:
            if not property(df):
                raise ValueError(
                    f"Validation of {self.name} failed: Column {property.name} is not present in the dataframe"
                )

    def _warn_on_critical_values(self, input_df: pd.DataFrame) -> None:
        """Warns about NaN values in float columns. Infinite values are legitimate q-values and are not reported."""
        for col in input_df.columns:
            if np.issubdtype(input_df[col].dtype, np.floating):
                nan_count = input_df[col].isna().sum()
                if nan_count > 0:
                    nan_percentage = nan_count / len(input_df) * 100
                    logger.warning(
                        f"{self.name}: {col} has {nan_count} NaNs ( {nan_percentage:.2f} % out of {len(input_df)})"
                    )
