"""
Compendium preprocessing: optional column centering and scaling before ICA.
"""

import logging
from typing import Any

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

logger = logging.getLogger(__name__)


def preprocess(matrix: Any, center: bool, scale: bool) -> Any:
    """Center and/or scale the columns (samples) of ``matrix``.

    The input is never modified. DataFrames keep their labels.
    """
    values = np.array(matrix, dtype=float, copy=True)

    if center or scale:
        scaler = StandardScaler(with_mean=bool(center), with_std=bool(scale))
        values = scaler.fit_transform(values)
        logger.debug(f"Preprocessed {values.shape} matrix (center={center}, scale={scale})")

    if isinstance(matrix, pd.DataFrame):
        return pd.DataFrame(values, index=matrix.index, columns=matrix.columns)
    return values
