"""Decorator for defining Python table functions (UDTFs).

Decorated handlers carry their declaration as attributes so they can be
discovered in a project and registered with a ``TableFunctionRuntime``.
"""

import inspect
from typing import Any, Callable, Dict, Optional, TypeVar

from udtflow.core.registry import build_definition, eval_takes_instance
from udtflow.core.schema import SchemaLike, format_schema

HandlerType = TypeVar("HandlerType")


def _create_param_info(handler: Any) -> Dict[str, Dict[str, Any]]:
    """Create parameter information for the handler's per-row step.

    Args:
        handler: Handler class or function

    Returns:
        Dictionary containing parameter metadata
    """
    step = handler.eval if inspect.isclass(handler) else handler
    params = list(inspect.signature(step).parameters.values())
    if inspect.isclass(handler) and params and eval_takes_instance(handler):
        params = params[1:]
    return {
        param.name: {
            "kind": str(param.kind),
            "default": (
                None if param.default is inspect.Parameter.empty else param.default
            ),
            "annotation": (
                "Any"
                if param.annotation is inspect.Parameter.empty
                else str(param.annotation)
            ),
        }
        for param in params
    }


def udtf(
    handler: Optional[HandlerType] = None,
    *,
    output_schema: SchemaLike,
    input_types: Optional[SchemaLike] = None,
    name: Optional[str] = None,
) -> Callable:
    """Mark a class or function as a table function.

    A class handler implements ``eval`` for each input (a row of the table
    argument, or the scalar arguments) and may implement ``__init__`` and
    ``terminate`` to keep state across the rows of one partition. A function
    handler implements only the per-row step and keeps no state.

    Args:
        handler: Handler class or function
        output_schema: Output columns, e.g. ``"n INT, square INT"``
        input_types: Parameter declaration; use ``"TABLE"`` for the table
            argument
        name: Optional name (defaults to the handler's name)

    Returns:
        The handler, unchanged apart from the marker attributes

    Example:
        @udtf(output_schema="row_count INT", input_types=["TABLE"])
        class CountRows:
            def __init__(self):
                self.count = 0

            def eval(self, row):
                self.count += 1

            def terminate(self):
                yield (self.count,)

    Raises:
        InvalidDefinitionError: If the declaration does not fit the handler
    """

    def decorator(h: HandlerType) -> HandlerType:
        udtf_name = name or h.__name__
        # Validate eagerly so broken declarations fail at import time
        definition = build_definition(udtf_name, input_types, output_schema, h)

        h._is_udtflow_udtf = True  # type: ignore
        h._udtf_name = udtf_name  # type: ignore
        h._udtf_kind = definition.kind  # type: ignore
        h._output_schema = output_schema  # type: ignore
        h._input_types = input_types  # type: ignore
        h._signature = definition.signature()  # type: ignore
        h._returns = format_schema(definition.output_schema)  # type: ignore
        h._param_info = _create_param_info(h)  # type: ignore

        return h

    # Handle both udtf(Handler, output_schema=...) and @udtf(output_schema=...)
    if handler is None:
        return decorator
    return decorator(handler)
