"""
Function catalog for promptloom.

The catalog maps qualified names (``Namespace.Name``) to a :class:`FunctionSpec` and an async
callable.  Native Python functions and semantic functions are registered explicitly; planners
only ever see a filtered :class:`CatalogView`.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Tuple,
    get_type_hints,
)

from promptloom.core.context import InvocationContext
from promptloom.core.errors import FunctionNotFoundError
from promptloom.core.schema import (
    FunctionSpec,
    ParameterSpec,
    ParameterType,
    UsageSample,
)
from promptloom.core.semantic_function import SemanticFunction

logger = logging.getLogger(__name__)

FunctionInvoker = Callable[[InvocationContext, Mapping[str, Any]], Awaitable[Any]]
"""Uniform calling convention: ``await invoke(context, arguments)``."""

_CONTEXT_PARAMETER = "context"

_PYTHON_TYPES: Dict[Any, ParameterType] = {
    str: "string",
    int: "number",
    float: "number",
    bool: "boolean",
}


@dataclass(frozen=True)
class CatalogEntry:
    """A registered function: its metadata and how to call it."""

    spec: FunctionSpec
    invoke: FunctionInvoker

    @property
    def qualified_name(self) -> str:
        return self.spec.qualified_name


def _native_parameters(
    fn: Callable, descriptions: Mapping[str, str]
) -> Tuple[ParameterSpec, ...]:
    """Extract parameter information from a Python function signature."""
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    params = []
    for param_name, param in sig.parameters.items():
        if param_name == _CONTEXT_PARAMETER:
            continue  # injected, not planner-visible
        has_default = param.default is not inspect.Parameter.empty
        params.append(
            ParameterSpec(
                name=param_name,
                description=descriptions.get(param_name, ""),
                type=_PYTHON_TYPES.get(type_hints.get(param_name), "object"),
                default=param.default if has_default else None,
                required=not has_default,
            )
        )
    return tuple(params)


def _native_invoker(fn: Callable) -> FunctionInvoker:
    wants_context = _CONTEXT_PARAMETER in inspect.signature(fn).parameters

    async def invoke(context: InvocationContext, arguments: Mapping[str, Any]) -> Any:
        if wants_context:
            result = fn(context, **arguments)
        else:
            result = fn(**arguments)
        if inspect.isawaitable(result):
            result = await result
        return result

    return invoke


class CatalogView:
    """Read-only, filtered subset of a catalog."""

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        self._entries: Dict[str, CatalogEntry] = {e.qualified_name: e for e in entries}

    def get(self, qualified_name: str) -> CatalogEntry:
        """Return the entry for *qualified_name*."""
        entry = self._entries.get(qualified_name)
        if entry is None:
            raise FunctionNotFoundError(f"Function '{qualified_name}' is not available.")
        return entry

    def specs(self) -> list[FunctionSpec]:
        """Metadata of every function, in registration order."""
        return [entry.spec for entry in self._entries.values()]

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, qualified_name: object) -> bool:
        return qualified_name in self._entries

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


class FunctionCatalog(CatalogView):
    """
    Registry of every function available to an application.

    Registration is the only mutation; once populated the catalog can be shared freely.
    """

    def __init__(self) -> None:
        super().__init__(())

    def register(self, spec: FunctionSpec, invoke: FunctionInvoker) -> CatalogEntry:
        """
        Register *invoke* under ``spec.qualified_name``.

        Raises
        ------
        ValueError
            If a function with the same qualified name is already registered.
        """
        name = spec.qualified_name
        if name in self._entries:
            raise ValueError(f"Function '{name}' is already registered.")
        logger.debug("Registering function '%s'", name)
        entry = CatalogEntry(spec=spec, invoke=invoke)
        self._entries[name] = entry
        return entry

    def add_native_function(
        self,
        fn: Callable,
        namespace: str = "",
        name: Optional[str] = None,
        description: Optional[str] = None,
        parameter_descriptions: Optional[Mapping[str, str]] = None,
        samples: Iterable[UsageSample] = (),
        invokes_planner: bool = False,
    ) -> CatalogEntry:
        """
        Register a plain (sync or async) Python function.

        Parameters come from the signature and type hints.  A parameter called ``context``
        receives the :class:`InvocationContext` and is hidden from planners.
        """
        spec = FunctionSpec(
            name=name or fn.__name__,
            namespace=namespace,
            description=description if description is not None else inspect.getdoc(fn) or "",
            parameters=_native_parameters(fn, parameter_descriptions or {}),
            samples=tuple(samples),
            invokes_planner=invokes_planner,
        )
        return self.register(spec, _native_invoker(fn))

    def native_function(self, namespace: str = "", **kwargs: Any) -> Callable:
        """
        Decorator form of :meth:`add_native_function`.

            @catalog.native_function("Text", name="Upper")
            def upper(text: str) -> str:
                return text.upper()
        """

        def wrapper(fn: Callable) -> Callable:
            self.add_native_function(fn, namespace=namespace, **kwargs)
            return fn

        return wrapper

    def add_semantic_function(self, function: SemanticFunction) -> CatalogEntry:
        """Register a semantic function; invoking the entry returns its InvocationResult."""
        return self.register(function.describe(), function.invoke)

    def view(
        self,
        included_namespaces: Optional[Iterable[str]] = None,
        excluded_namespaces: Iterable[str] = (),
        included_functions: Optional[Iterable[str]] = None,
        excluded_functions: Iterable[str] = (),
    ) -> CatalogView:
        """
        Return a filtered view for a planner.

        ``None`` for an include list means "everything".  Functions that invoke the planner
        themselves are always left out so a plan can never recurse into planning.
        """
        inc_ns = set(included_namespaces) if included_namespaces is not None else None
        inc_fn = set(included_functions) if included_functions is not None else None
        exc_ns = set(excluded_namespaces)
        exc_fn = set(excluded_functions)

        def keep(entry: CatalogEntry) -> bool:
            spec = entry.spec
            if spec.invokes_planner:
                return False
            if inc_ns is not None and spec.namespace not in inc_ns:
                return False
            if inc_fn is not None and spec.qualified_name not in inc_fn:
                return False
            return spec.namespace not in exc_ns and spec.qualified_name not in exc_fn

        return CatalogView(e for e in self._entries.values() if keep(e))
