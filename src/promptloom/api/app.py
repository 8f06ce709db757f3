"""
REST API for promptloom.

It exposes the following endpoints:
- **GET /health**  - liveness probe for health checks.
- **GET /functions** - list the specs of every registered function.
- **POST /functions/{qualified_name}/invoke** - run one function: {"variables": {...}}
- **POST /goals** - plan and execute a goal with retries: {"goal": "..."}
"""

import logging
from typing import (
    List,
    Optional,
)

from fastapi import (
    Depends,
    FastAPI,
    HTTPException,
)

from promptloom.agent.plan_executor import (
    BindingError,
    bind_arguments,
)
from promptloom.agent.planner_interface import (
    BasePlanner,
    load_planner,
)
from promptloom.agent.retry_controller import RetryController
from promptloom.api.models import (
    GoalRequest,
    InvocationResponse,
    InvokeRequest,
)
from promptloom.catalog import FunctionCatalog
from promptloom.common import (
    AnsiColors,
    colored_print,
)
from promptloom.config import settings
from promptloom.core.context import (
    InvocationContext,
    create_context,
)
from promptloom.core.errors import (
    CompletionError,
    FunctionNotFoundError,
    RenderError,
    RetryExhaustedError,
    StepExecutionError,
    TranscriptParseError,
    UnsupportedServiceError,
)
from promptloom.core.schema import (
    STEP_OUTPUTS_METADATA_KEY,
    FunctionSpec,
    InvocationResult,
)
from promptloom.plugins.math import register_math_plugin

logger = logging.getLogger(__name__)

app = FastAPI(
    title="promptloom API", version="0.1.0", description="Semantic functions and goal planning"
)

_context: Optional[InvocationContext] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_context() -> InvocationContext:
    """Build the shared invocation context on first use."""
    global _context  # pylint: disable=global-statement
    if _context is None:
        catalog = register_math_plugin(FunctionCatalog())
        _context = create_context(catalog)
        logger.info("Created context with %d functions", len(catalog))
    return _context


def get_planner() -> BasePlanner:
    """Return the configured planner."""
    return load_planner()


def _to_response(result: InvocationResult) -> InvocationResponse:
    return InvocationResponse(
        function_name=result.function_name,
        namespace=result.namespace,
        value=result.value,
        step_outputs=result.metadata.get(STEP_OUTPUTS_METADATA_KEY),
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.get("/functions", response_model=List[FunctionSpec], summary="List functions")
async def list_functions(context: InvocationContext = Depends(get_context)) -> List[FunctionSpec]:
    """Return the metadata of every registered function."""
    return context.catalog.specs()


@app.post(
    "/functions/{qualified_name}/invoke",
    response_model=InvocationResponse,
    summary="Invoke a function",
)
async def invoke_function(
    qualified_name: str, req: InvokeRequest, context: InvocationContext = Depends(get_context)
) -> InvocationResponse:
    """Invoke one catalog function with the given variables."""
    try:
        entry = context.catalog.get(qualified_name)
    except FunctionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    try:
        arguments = bind_arguments(entry.spec, req.variables, context.variables, [])
    except BindingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        value = await entry.invoke(context, arguments)
    except (RenderError, UnsupportedServiceError, TranscriptParseError) as exc:
        logger.warning("Invocation of '%s' rejected: %s", qualified_name, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CompletionError as exc:
        logger.error("Completion failure in '%s': %s", qualified_name, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except RetryExhaustedError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except (TypeError, ValueError, ArithmeticError) as exc:
        logger.warning("Function '%s' failed: %s", qualified_name, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if isinstance(value, InvocationResult):
        return _to_response(value)
    return InvocationResponse(
        function_name=entry.spec.name, namespace=entry.spec.namespace, value=value
    )


@app.post("/goals", response_model=InvocationResponse, summary="Plan and execute a goal")
async def solve_goal(
    req: GoalRequest,
    context: InvocationContext = Depends(get_context),
    planner: BasePlanner = Depends(get_planner),
) -> InvocationResponse:
    """Plan and execute *req.goal*, re-planning with feedback on failure."""
    view = context.catalog.view(
        included_namespaces=req.included_namespaces,
        excluded_functions=req.excluded_functions,
    )
    controller = RetryController(planner=planner, max_extra_tries=req.max_extra_tries)
    try:
        result = await controller.run(req.goal, context, view, variables=req.variables)
    except RetryExhaustedError as exc:
        detail = {"error": str(exc), "attempts": exc.attempts}
        if isinstance(exc.last_error, StepExecutionError):
            detail["step_index"] = exc.last_error.step_index
        raise HTTPException(status_code=422, detail=detail) from exc
    except (RenderError, UnsupportedServiceError, TranscriptParseError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CompletionError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return _to_response(result)


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in dev docker-compose).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting promptloom API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    logger.debug("API settings: %s", settings.model_dump())

    colored_print(f"promptloom API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "promptloom.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m promptloom.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
