"""
Batch helpers: apply an engine to many records.

These are thin caller-side conveniences around
TransformationEngine.evaluate_all(). Reading input and writing output files
stays with the orchestrator; everything here works on in-memory rows and
pandas DataFrames.
"""

import logging
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import pandas as pd
from tqdm import tqdm

from fieldmap.core.engine import TransformationEngine

logger = logging.getLogger(__name__)


def transform_record(engine: TransformationEngine, record: Mapping[str, Any]) -> Dict[str, str]:
    """Output values of one record, keyed by target field in position order."""
    return engine.evaluate_all(record)


def assemble_fixed_width(values: Mapping[str, str]) -> str:
    """
    Concatenate already-padded values into one positional line.

    Example:
        >>> assemble_fixed_width({"id": "0042", "name": "JANE  "})
        '0042JANE  '
    """
    return "".join(values.values())


def assemble_delimited(values: Mapping[str, str], delimiter: str = "|") -> str:
    """Join values with a delimiter, in position order."""
    return delimiter.join(values.values())


def render_lines(
    engine: TransformationEngine,
    records: Iterable[Mapping[str, Any]],
    delimiter: Optional[str] = None,
) -> Iterator[str]:
    """
    Yield one output line per record.

    Args:
        engine: Prepared engine.
        records: Input records.
        delimiter: None for fixed-width lines, otherwise the field separator.
    """
    for record in records:
        values = engine.evaluate_all(record)
        if delimiter is None:
            yield assemble_fixed_width(values)
        else:
            yield assemble_delimited(values, delimiter)


def transform_frame(
    df: pd.DataFrame,
    engine: TransformationEngine,
    show_progress: Optional[bool] = None,
) -> pd.DataFrame:
    """
    Transform every row of a DataFrame.

    Missing cells (NaN/None/NA) are treated as null fields. The input frame
    is not modified.

    Args:
        df: Input rows, one column per source field.
        engine: Prepared engine.
        show_progress: Show a tqdm progress bar; defaults to engine.config.show_progress.

    Returns:
        DataFrame with one string column per target field, in position
        order, sharing the input index.
    """
    columns = [m.target_field for m in engine.mappings]
    if df is None or df.empty:
        return pd.DataFrame(columns=columns, dtype=str)

    if show_progress is None:
        show_progress = engine.config.show_progress

    rows: List[Dict[str, str]] = []
    records = df.to_dict(orient="records")
    for record in tqdm(records, desc="Transforming records", unit="rec", disable=not show_progress):
        rows.append(engine.evaluate_all(record))

    out = pd.DataFrame(rows, index=df.index, columns=columns)
    logger.info(f"Transformed {len(out)} records into {len(columns)} fields")
    return out
