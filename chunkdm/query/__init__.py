# Query layer exports
from chunkdm.query.expressions import Predicate as Predicate
from chunkdm.query.expressions import col as col
from chunkdm.query.expressions import lit as lit
from chunkdm.query.optimizer import PhysicalPlan as PhysicalPlan
from chunkdm.query.optimizer import compile_plan as compile_plan
from chunkdm.query.plan import QueryPlan as QueryPlan

__all__ = [
    "PhysicalPlan",
    "Predicate",
    "QueryPlan",
    "col",
    "compile_plan",
    "lit",
]
