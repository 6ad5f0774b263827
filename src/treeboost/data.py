"""
Building TreeData from pandas objects and encoding new data for prediction.
"""

from typing import List, Sequence, Union
import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from .columns import (
    TreeColumnMetaData, TreeData, TreeNominalColumnMetaData,
    TreeTargetNominalColumnData, TreeTargetNumericColumnData,
)
from .exceptions import ConfigurationError
from .nominal import TreeNominalColumnData
from .numeric import TreeNumericColumnData


def _is_numeric_column(series: pd.Series) -> bool:
    return is_numeric_dtype(series.dtype) and not is_bool_dtype(series.dtype)


def create_tree_data(
    frame: pd.DataFrame,
    target: Union[str, pd.Series],
    configuration,
    nominal_target: bool = False,
) -> TreeData:
    """
    Columnar training data from a DataFrame.

    Numeric dtypes become numeric attributes, every other dtype (object,
    category, bool, string) nominal attributes with values in order of
    first appearance.

    Args:
        frame: Attributes (and, if ``target`` is a name, the target).
        target: Target column name or a Series aligned with ``frame``.
        configuration: Learner settings the columns split with.
        nominal_target: Treat the target as class labels even if numeric.

    Returns:
        TreeData.
    """
    if isinstance(target, str):
        if target not in frame.columns:
            raise ConfigurationError(f"Target column {target!r} not found")
        target_series = frame[target]
        frame = frame.drop(columns=[target])
    else:
        target_series = pd.Series(target)
        if len(target_series) != len(frame):
            raise ConfigurationError(
                f"Target has {len(target_series)} rows, frame has {len(frame)}"
            )
    if frame.shape[1] == 0:
        raise ConfigurationError("No attribute columns to learn from")

    columns = []
    for index, name in enumerate(frame.columns):
        series = frame[name]
        if _is_numeric_column(series):
            meta = TreeColumnMetaData(str(name), index)
            columns.append(TreeNumericColumnData(
                meta, series.to_numpy(dtype=float, na_value=np.nan), configuration))
        else:
            values = series.astype(object).tolist()
            meta = TreeNominalColumnMetaData.from_values(str(name), values, index)
            columns.append(TreeNominalColumnData(meta, meta.encode(values), configuration))

    target_name = str(target_series.name) if target_series.name is not None else "target"
    if target_series.isna().any():
        raise ConfigurationError(f"Target column {target_name!r} contains missing values")
    if nominal_target or not _is_numeric_column(target_series):
        target_column = TreeTargetNominalColumnData.create(
            target_name, target_series.astype(object).tolist())
    else:
        target_column = TreeTargetNumericColumnData.create(
            target_name, target_series.to_numpy(dtype=float))
    return TreeData(columns, target_column)


def encode_frame(frame: pd.DataFrame, column_metas: Sequence[TreeColumnMetaData]) -> List[np.ndarray]:
    """
    Encode attributes of new rows like the training columns.

    Categories not seen in training are encoded as missing.
    """
    encoded = []
    for meta in column_metas:
        if meta.attribute_name not in frame.columns:
            raise ConfigurationError(f"Column {meta.attribute_name!r} missing from input")
        series = frame[meta.attribute_name]
        if isinstance(meta, TreeNominalColumnMetaData):
            encoded.append(meta.encode(series.astype(object).tolist()))
        else:
            encoded.append(series.to_numpy(dtype=float, na_value=np.nan))
    return encoded
