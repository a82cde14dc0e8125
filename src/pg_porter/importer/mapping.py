"""Map incoming record fields onto target table columns."""

from dataclasses import dataclass

from pg_porter.adapters.base import TargetColumn
from pg_porter.errors import ValidationError


@dataclass(frozen=True)
class ColumnMapping:
    """Target columns in record field order."""

    columns: list[TargetColumn]
    serial_omitted: bool = False

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.columns]


def build_column_mapping(
    table_columns: list[TargetColumn],
    header: list[str] | None,
    sample: list | None,
) -> ColumnMapping | None:
    """Resolve which table column each record field loads into.

    With a header every name must exist in the table.  Without one the
    mapping is positional; a leading serial column is left to its sequence
    when the data has exactly one field fewer than the table.

    Args:
        table_columns: The table's columns in attribute order.
        header: Field names from the upload, if it has a header.
        sample: First data record, used to count fields when there is no header.

    Returns:
        The mapping, or ``None`` when neither a header nor a record is
        available yet.

    Raises:
        ValidationError: If the table is missing, a header name is unknown,
            or the field count does not fit the table.
    """
    if not table_columns:
        raise ValidationError("Table has no columns or does not exist")

    if header is not None:
        by_name = {c.name: c for c in table_columns}
        mapped = []
        for name in header:
            if name not in by_name:
                raise ValidationError(f"Header column not found in table: {name}")
            mapped.append(by_name[name])
        return ColumnMapping(mapped)

    if sample is None:
        return None

    data_cols = len(sample)
    table_cols = len(table_columns)
    if data_cols == table_cols:
        return ColumnMapping(list(table_columns))
    if table_cols == data_cols + 1 and table_columns[0].is_serial:
        return ColumnMapping(list(table_columns[1:]), serial_omitted=True)
    raise ValidationError(f"Column count mismatch: input={data_cols} table={table_cols}")
