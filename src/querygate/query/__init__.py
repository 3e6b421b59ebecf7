"""Query compilation, safety validation and execution.

Architecture:
    1. Filter Compiler - Structured filters -> parameterized single-table SELECT
    2. Safety Gate - Single read-only SELECT over catalog tables, or rejection
    3. Execution Engine - Read-only transaction, statement timeout, row cap
    4. Schema Context Builder - Schema summary for natural-language analysis

Example:
    compiler = FilterCompiler(catalog)
    gate = SafetyGate(catalog)
    engine = ExecutionEngine(connection, gate)
    result = engine.run(compiler.compile("contacts", filters))
"""

from querygate.query.validator import QueryType, SafetyGate, ValidationResult

__all__ = [
    "QueryType",
    "SafetyGate",
    "ValidationResult",
]
