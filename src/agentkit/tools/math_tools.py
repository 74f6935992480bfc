"""Arithmetic tools, handy for exercising the loop end to end."""

import math
from typing import (
    Any,
    Dict,
    List,
)

from agentkit.tools import (
    ToolEntry,
    ToolRegistry,
    ToolSchema,
    object_schema,
)


def _numbers(args: Dict[str, Any]) -> List[float]:
    numbers = args.get("numbers")
    if not isinstance(numbers, list) or len(numbers) < 2:
        raise ValueError("'numbers' must be a list of at least two numbers")
    for value in numbers:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"not a number: {value!r}")
    return numbers


def add_numbers(args: Dict[str, Any]) -> float:
    """Add 2 or more numbers together."""
    return sum(_numbers(args))


def multiply_numbers(args: Dict[str, Any]) -> float:
    """Multiply 2 or more numbers together."""
    return math.prod(_numbers(args))


def _numbers_schema(verb: str) -> Dict[str, Any]:
    return object_schema(
        {
            "numbers": {
                "type": "array",
                "items": {"type": "number"},
                "description": f"The numbers to {verb} together (minimum 2)",
            }
        }
    )


ADD_TOOL = ToolEntry(
    ToolSchema(
        name="add",
        description="Add 2 or more numbers together",
        parameters=_numbers_schema("add"),
    ),
    add_numbers,
)

MULTIPLY_TOOL = ToolEntry(
    ToolSchema(
        name="multiply",
        description="Multiply 2 or more numbers together",
        parameters=_numbers_schema("multiply"),
    ),
    multiply_numbers,
)


def register_math_tools(registry: ToolRegistry) -> ToolRegistry:
    """Add ``add`` and ``multiply`` to *registry* and return it."""
    registry.add(ADD_TOOL)
    registry.add(MULTIPLY_TOOL)
    return registry
