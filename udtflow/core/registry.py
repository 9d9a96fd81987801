"""Function registry: named table function definitions."""

import inspect
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from udtflow.core.capabilities import Capability, resolve_capabilities
from udtflow.core.schema import (
    ColumnSpec,
    ParamSpec,
    SchemaLike,
    format_schema,
    parse_output_schema,
    parse_params,
)
from udtflow.exceptions import (
    FunctionExistsError,
    InvalidDefinitionError,
    NotFoundError,
    UnsupportedFeatureError,
)
from udtflow.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FunctionDefinition:
    """A registered table function.

    ``handler`` is either a class implementing ``eval`` (plus optional
    ``__init__`` and ``terminate``) or a plain function implementing only
    the per-row step.
    """

    name: str
    params: Tuple[ParamSpec, ...]
    output_schema: Tuple[ColumnSpec, ...]
    handler: Any
    description: str = ""

    @property
    def has_lifecycle(self) -> bool:
        return inspect.isclass(self.handler)

    @property
    def table_parameter(self) -> Optional[ParamSpec]:
        for param in self.params:
            if param.is_table:
                return param
        return None

    @property
    def table_parameter_index(self) -> Optional[int]:
        for index, param in enumerate(self.params):
            if param.is_table:
                return index
        return None

    @property
    def has_table_argument(self) -> bool:
        return self.table_parameter is not None

    @property
    def scalar_params(self) -> Tuple[ParamSpec, ...]:
        return tuple(param for param in self.params if not param.is_table)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.output_schema]

    @property
    def kind(self) -> str:
        return "table" if self.has_table_argument else "scalar"

    def signature(self) -> str:
        return (
            f"{self.name}({format_schema(self.params)}) "
            f"RETURNS TABLE({format_schema(self.output_schema)})"
        )


def _step_function(handler: Any) -> Callable:
    if inspect.isclass(handler):
        step = getattr(handler, "eval", None)
        if step is None or not callable(step):
            raise InvalidDefinitionError(
                f"Handler class {handler.__name__} must define an 'eval' method"
            )
        terminate = getattr(handler, "terminate", None)
        if terminate is not None and not callable(terminate):
            raise InvalidDefinitionError(
                f"Handler class {handler.__name__} has a non-callable 'terminate'"
            )
        return step
    if callable(handler):
        return handler
    raise InvalidDefinitionError(
        f"Handler must be a class or a callable, got {type(handler).__name__}"
    )


def eval_takes_instance(handler: Any) -> bool:
    """Whether a class handler's ``eval`` receives the instance as first argument.

    ``staticmethod`` and ``classmethod`` steps do not.
    """
    try:
        step = inspect.getattr_static(handler, "eval")
    except AttributeError:
        return False
    return not isinstance(step, (staticmethod, classmethod))


def _validate_arity(handler: Any, params: Tuple[ParamSpec, ...]) -> None:
    """Check that ``eval`` (or the function) accepts one argument per param."""
    step = _step_function(handler)
    try:
        sig = inspect.signature(step)
    except (TypeError, ValueError):
        logger.debug(f"Cannot inspect signature of {handler!r}, skipping checks")
        return

    positional = [
        p
        for p in sig.parameters.values()
        if p.kind
        in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    if inspect.isclass(handler) and positional and eval_takes_instance(handler):
        positional = positional[1:]  # self

    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in sig.parameters.values()):
        maximum = None
    else:
        maximum = len(positional)
    required = sum(1 for p in positional if p.default is inspect.Parameter.empty)

    count = len(params)
    if count < required or (maximum is not None and count > maximum):
        raise InvalidDefinitionError(
            f"Handler {getattr(handler, '__name__', handler)!r} accepts "
            f"{required}..{maximum if maximum is not None else 'n'} arguments "
            f"but {count} parameters are declared"
        )

    if inspect.isclass(handler):
        try:
            init_sig = inspect.signature(handler)
        except (TypeError, ValueError):
            return
        missing = [
            p.name
            for p in init_sig.parameters.values()
            if p.default is inspect.Parameter.empty
            and p.kind
            not in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)
        ]
        if missing:
            raise InvalidDefinitionError(
                f"Handler class {handler.__name__} constructor must take no "
                f"arguments, requires {missing}"
            )


def build_definition(
    name: str,
    params: Optional[SchemaLike],
    output_schema: SchemaLike,
    handler: Any,
    description: Optional[str] = None,
) -> FunctionDefinition:
    """Validate the pieces of a definition and assemble it.

    Raises:
        InvalidDefinitionError: If any piece is malformed
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidDefinitionError(f"Invalid table function name: {name!r}")

    param_specs = parse_params(params)
    columns = parse_output_schema(output_schema)
    _validate_arity(handler, param_specs)

    if description is None:
        description = (inspect.getdoc(handler) or "").split("\n", 1)[0]

    return FunctionDefinition(
        name=name.strip().lower(),
        params=param_specs,
        output_schema=columns,
        handler=handler,
        description=description,
    )


class FunctionRegistry:
    """Maps function names to definitions.

    Names are case-insensitive. Redefinition replaces the previous entry;
    invocations already holding the old definition keep using it.
    """

    def __init__(self, capabilities: Optional[FrozenSet[Capability]] = None):
        self.capabilities = (
            capabilities if capabilities is not None else resolve_capabilities()
        )
        self._functions: Dict[str, FunctionDefinition] = {}
        self._lock = threading.Lock()

    def define(
        self,
        name: str,
        params: Optional[SchemaLike],
        output_schema: SchemaLike,
        handler: Any,
        description: Optional[str] = None,
        replace: bool = True,
    ) -> FunctionDefinition:
        """Create or replace a table function definition.

        Args:
            name: Function name
            params: Parameter declaration; a ``TABLE`` typed parameter marks
                a table-argument function
            output_schema: Output column declaration
            handler: Handler class or function
            description: Optional one-line description (defaults to the
                first docstring line of the handler)
            replace: Whether an existing definition may be replaced

        Returns:
            The stored definition

        Raises:
            InvalidDefinitionError: If the definition is malformed
            UnsupportedFeatureError: If a table parameter is declared but the
                runtime lacks table-argument support
            FunctionExistsError: If the name exists and ``replace`` is False
        """
        definition = build_definition(
            name, params, output_schema, handler, description
        )
        self._check_capabilities(definition)

        with self._lock:
            existing = self._functions.get(definition.name)
            if existing is not None and not replace:
                raise FunctionExistsError(
                    f"Table function '{definition.name}' already exists"
                )
            self._functions[definition.name] = definition

        if existing is not None:
            logger.info(f"Replaced table function {definition.signature()}")
        else:
            logger.debug(f"Defined table function {definition.signature()}")
        return definition

    def define_from(
        self, handler: Any, name: Optional[str] = None, replace: bool = True
    ) -> FunctionDefinition:
        """Define a function from a handler decorated with ``@udtf``."""
        if not getattr(handler, "_is_udtflow_udtf", False):
            raise InvalidDefinitionError(
                f"{getattr(handler, '__name__', handler)!r} is not decorated "
                "with @udtf"
            )
        return self.define(
            name or handler._udtf_name,
            handler._input_types,
            handler._output_schema,
            handler,
            replace=replace,
        )

    def _check_capabilities(self, definition: FunctionDefinition) -> None:
        if Capability.SCALAR_TABLE_FUNCTIONS not in self.capabilities:
            raise UnsupportedFeatureError("Table functions are not enabled")
        if (
            definition.has_table_argument
            and Capability.TABLE_ARGUMENT_FUNCTIONS not in self.capabilities
        ):
            raise UnsupportedFeatureError(
                f"Table function '{definition.name}' declares a TABLE parameter "
                "but table-argument functions are not enabled"
            )

    def resolve(self, name: str) -> FunctionDefinition:
        """Look up a definition by name.

        Raises:
            NotFoundError: If the function is not defined
        """
        with self._lock:
            definition = self._functions.get(name.lower())
            if definition is None:
                raise NotFoundError(name, sorted(self._functions))
        return definition

    def drop(self, name: str) -> None:
        with self._lock:
            if self._functions.pop(name.lower(), None) is None:
                raise NotFoundError(name, sorted(self._functions))
        logger.debug(f"Dropped table function {name}")

    def list_functions(self) -> List[FunctionDefinition]:
        with self._lock:
            return [self._functions[name] for name in sorted(self._functions)]

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._functions

    def __len__(self) -> int:
        with self._lock:
            return len(self._functions)
