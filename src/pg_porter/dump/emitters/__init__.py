"""Per-kind DDL emitters.

Usage:
    from pg_porter.dump.emitters import emitter_for

    emitter_for(ObjectKind.TABLE, ctx).emit(table_info)
"""

from pg_porter.catalog.models import ObjectKind
from pg_porter.dump.context import DumpContext
from pg_porter.dump.emitters.base import Emitter
from pg_porter.dump.emitters.globals import RoleEmitter, TablespaceEmitter
from pg_porter.dump.emitters.operator import OperatorEmitter
from pg_porter.dump.emitters.routine import AggregateEmitter, FunctionEmitter
from pg_porter.dump.emitters.sequence import SequenceEmitter
from pg_porter.dump.emitters.table import (
    PartitionedTableEmitter,
    PartitionEmitter,
    SubPartitionedTableEmitter,
    TableEmitter,
)
from pg_porter.dump.emitters.types import DomainEmitter, TypeEmitter
from pg_porter.dump.emitters.view import MaterializedViewEmitter, ViewEmitter

EMITTERS: dict[ObjectKind, type[Emitter]] = {
    cls.kind: cls
    for cls in (
        TableEmitter,
        PartitionedTableEmitter,
        PartitionEmitter,
        SubPartitionedTableEmitter,
        FunctionEmitter,
        AggregateEmitter,
        ViewEmitter,
        MaterializedViewEmitter,
        DomainEmitter,
        TypeEmitter,
        SequenceEmitter,
        OperatorEmitter,
    )
}


def emitter_for(kind: ObjectKind, ctx: DumpContext) -> Emitter:
    return EMITTERS[kind](ctx)


__all__ = [
    "EMITTERS",
    "emitter_for",
    "Emitter",
    "TableEmitter",
    "PartitionedTableEmitter",
    "PartitionEmitter",
    "SubPartitionedTableEmitter",
    "FunctionEmitter",
    "AggregateEmitter",
    "ViewEmitter",
    "MaterializedViewEmitter",
    "DomainEmitter",
    "TypeEmitter",
    "SequenceEmitter",
    "OperatorEmitter",
    "RoleEmitter",
    "TablespaceEmitter",
]
