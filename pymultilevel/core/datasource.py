"""
Universal DataSource for PyMultilevel.

DataSource is the "I have data" abstraction. It doesn't know or care
which model consumes it. It just provides named columns.

Unlike a purely numeric store, columns keep their own dtype: grouping
labels stay strings (or integers), covariates stay numeric or boolean.
Role assignment (response, fixed-effect term, grouping factor) happens
in the model specification, not here.

Usage:
    from pymultilevel import DataSource

    ds = DataSource.from_columns(y=y, x=x, school=school)
    ds = DataSource.from_file("data.csv")
    ds = DataSource.from_dataframe(df)

    ds.keys()  # frozenset({'y', 'x', 'school'})
    school = ds['school']
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TYPE_CHECKING
import numpy as np

from pymultilevel.core.exceptions import ValidationError, DimensionError
from pymultilevel.core.capabilities import (
    CAPABILITY_MATERIALIZED,
    CAPABILITY_REPEATABLE,
)

if TYPE_CHECKING:
    import pandas as pd


@dataclass
class DataSource:
    """
    Universal column container. Domain-agnostic.

    Construct via factory classmethods, not directly.
    """
    _data: dict[str, np.ndarray]
    _capabilities: frozenset[str]
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column Access ===

    def keys(self) -> frozenset[str]:
        """
        Return the names of all available columns.

        Example:
            >>> ds = DataSource.from_columns(y=y, school=school)
            >>> ds.keys()
            frozenset({'y', 'school'})
        """
        return frozenset(self._data.keys())

    def __getitem__(self, key: str) -> np.ndarray:
        """
        Get a column by name.

        Raises:
            KeyError: If key not found, with helpful message listing available keys
        """
        if key not in self._data:
            available = sorted(self.keys())
            raise KeyError(
                f"DataSource has no column '{key}'. Available: {available}"
            )
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        """Check if a key exists."""
        return key in self._data

    def take(self, indices) -> DataSource:
        """Return a new DataSource restricted to the given row indices."""
        idx = np.asarray(indices)
        return DataSource(
            _data={k: v[idx] for k, v in self._data.items()},
            _capabilities=self._capabilities,
            _metadata={**self._metadata, 'n_observations': int(len(idx))},
        )

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of rows."""
        return self._metadata.get('n_observations', 0)

    @property
    def metadata(self) -> dict[str, Any]:
        """Domain-agnostic metadata."""
        return self._metadata.copy()

    def supports(self, capability: str) -> bool:
        """
        Check if this DataSource supports a capability.

        Note:
            Unknown capabilities return False, never raise.
        """
        return capability in self._capabilities

    # === Factory Methods ===

    @classmethod
    def from_columns(cls, **columns: Any) -> DataSource:
        """Construct from named 1-D sequences of equal length."""
        storage: dict[str, np.ndarray] = {}
        n_obs: int | None = None

        for name, values in columns.items():
            arr = np.asarray(values)
            if arr.ndim != 1:
                raise DimensionError(
                    f"column '{name}': expected 1D, got shape {arr.shape}"
                )
            if n_obs is None:
                n_obs = arr.shape[0]
            elif arr.shape[0] != n_obs:
                raise DimensionError(
                    f"column '{name}' has {arr.shape[0]} rows, expected {n_obs}"
                )
            storage[name] = arr

        return cls(
            _data=storage,
            _capabilities=frozenset({CAPABILITY_MATERIALIZED, CAPABILITY_REPEATABLE}),
            _metadata={'n_observations': n_obs or 0, 'source': 'columns'},
        )

    @classmethod
    def from_file(cls, path: str | Path, *, columns: list[str] | None = None) -> DataSource:
        """Construct from a delimited text file (CSV, TSV)."""
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix == '.csv':
            import pandas as pd
            df = pd.read_csv(path, usecols=columns)
        elif suffix == '.tsv':
            import pandas as pd
            df = pd.read_csv(path, sep='\t', usecols=columns)
        else:
            raise ValidationError(f"Unknown file format: {suffix}")
        return cls.from_dataframe(df, source_path=str(path))

    @classmethod
    def from_dataframe(cls, df: 'pd.DataFrame', *, source_path: str | None = None) -> DataSource:
        """Construct from pandas DataFrame, keeping each column's dtype."""
        storage: dict[str, np.ndarray] = {}

        for col in df.columns:
            series = df[col]
            if series.dtype.name == 'category':
                series = series.astype(object)
            storage[str(col)] = series.to_numpy()

        metadata = {
            'n_observations': len(df),
            'source': 'dataframe',
            'columns': [str(c) for c in df.columns],
        }
        if source_path:
            metadata['source_path'] = source_path

        return cls(
            _data=storage,
            _capabilities=frozenset({CAPABILITY_MATERIALIZED, CAPABILITY_REPEATABLE}),
            _metadata=metadata,
        )

    @classmethod
    def build(cls, *args, **kwargs) -> DataSource:
        """
        Convenience factory that dispatches to the appropriate from_* method.

        Examples:
            DataSource.build(df)              # from_dataframe
            DataSource.build("data.csv")      # from_file
            DataSource.build({'y': y, ...})   # from_columns
            DataSource.build(y=y, x=x)        # from_columns
        """
        if args:
            source = args[0]
            if isinstance(source, DataSource):
                return source
            if isinstance(source, (str, Path)):
                return cls.from_file(source, **kwargs)
            if isinstance(source, Mapping):
                return cls.from_columns(**{str(k): v for k, v in source.items()})
            if hasattr(source, 'columns') and hasattr(source, 'to_numpy'):
                return cls.from_dataframe(source, **kwargs)
            raise ValidationError(
                f"Cannot build a DataSource from {type(source).__name__}"
            )
        return cls.from_columns(**kwargs)
