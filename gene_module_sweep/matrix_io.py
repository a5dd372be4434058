"""
Matrix Input and Validation

Loads expression compendia and annotation matrices from disk and checks them before a
batch is built. Both kinds of matrix are genes x columns; genes are the row index.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class InvalidMatrix(Exception):
    """Raised when an input matrix cannot be used for a sweep."""
    pass


def load_matrix(file_path: str, file_type: str = 'auto') -> pd.DataFrame:
    """Load a genes x columns matrix; the first column holds the gene identifiers."""
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    # Determine file type
    if file_type == 'auto':
        suffix = file_path.suffix.lower()
        if suffix in ['.xlsx', '.xls']:
            file_type = 'excel'
        elif suffix == '.csv':
            file_type = 'csv'
        elif suffix in ['.tsv', '.txt']:
            file_type = 'tsv'
        elif suffix == '.json':
            file_type = 'json'
        else:
            raise ValueError(f"Unsupported file type: {file_path.suffix}")

    if file_type == 'excel':
        data = pd.read_excel(file_path, index_col=0)
    elif file_type == 'csv':
        data = pd.read_csv(file_path, index_col=0)
    elif file_type == 'tsv':
        data = pd.read_csv(file_path, sep='\t', index_col=0)
    elif file_type == 'json':
        data = pd.read_json(file_path, orient='index')
    else:
        raise ValueError(f"Unsupported file type: {file_type}")

    data.index = data.index.astype(str)
    logger.info(f"Loaded {data.shape[0]} x {data.shape[1]} matrix from {file_path}")
    return data


def as_frame(matrix: Any) -> pd.DataFrame:
    """Wrap arrays in a DataFrame with a positional gene index."""
    if isinstance(matrix, pd.DataFrame):
        return matrix
    values = np.asarray(matrix)
    if values.ndim != 2:
        raise InvalidMatrix(f"Expected a 2-dimensional matrix, got {values.ndim} dimension(s)")
    return pd.DataFrame(values)


def validate_compendium(name: str, matrix: Any) -> pd.DataFrame:
    """Check an expression compendium and return it as a float DataFrame."""
    frame = as_frame(matrix)

    if frame.shape[0] < 2 or frame.shape[1] < 2:
        raise InvalidMatrix(f"Compendium '{name}' needs at least 2 genes and 2 samples, got {frame.shape}")
    if frame.index.has_duplicates:
        raise InvalidMatrix(f"Compendium '{name}' has duplicate gene identifiers")

    numeric = frame.apply(pd.to_numeric, errors='coerce')
    if numeric.isna().to_numpy().any():
        raise InvalidMatrix(f"Compendium '{name}' has missing or non-numeric values")
    if not np.isfinite(numeric.to_numpy(dtype=float)).all():
        raise InvalidMatrix(f"Compendium '{name}' has infinite values")

    return numeric.astype(float)


def validate_annotations(name: str, matrix: Any,
                         compendia: Optional[Iterable[pd.DataFrame]] = None) -> pd.DataFrame:
    """Check a binary gene x annotation matrix against the compendia it will score."""
    frame = as_frame(matrix)

    if frame.shape[1] < 1:
        raise InvalidMatrix(f"Annotation set '{name}' has no annotations")
    if frame.index.has_duplicates:
        raise InvalidMatrix(f"Annotation set '{name}' has duplicate gene identifiers")

    numeric = frame.apply(pd.to_numeric, errors='coerce')
    values = numeric.to_numpy(dtype=float)
    if np.isnan(values).any() or not np.isin(values, (0.0, 1.0)).all():
        raise InvalidMatrix(f"Annotation set '{name}' must contain only 0/1 values")

    for compendium in compendia or []:
        if not compendium.index.isin(numeric.index).any():
            raise InvalidMatrix(f"Annotation set '{name}' shares no genes with a compendium")

    return numeric.astype(np.int8)
