"""Main entrypoint for the BoardPilot FastAPI application.

This module initializes the FastAPI app and exposes health, interpretation,
validation and request-processing endpoints on top of :class:`RequestPipeline`.
"""

from typing import List, Optional

from dotenv import load_dotenv
from fastapi import Depends
from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import Field

from boardpilot import __version__
from boardpilot.config.monday import MondayConfig
from boardpilot.core.executor import OperationExecutor
from boardpilot.core.interpreter import Interpreter
from boardpilot.core.pipeline import RequestPipeline
from boardpilot.core.validation import OperationValidator
from boardpilot.models.context import ContextRequest
from boardpilot.services.context import ContextService
from boardpilot.services.monday import MondayClient
from boardpilot.services.operations import build_shims
from boardpilot.services.oracle import LanguageOracle
from boardpilot.services.resources import MondayResourceLookup
from boardpilot.utils.logger import generate_request_id
from boardpilot.utils.logger import log_error
from boardpilot.utils.logger import log_info


load_dotenv()

app = FastAPI(title="BoardPilot", version=__version__)

_PIPELINE: Optional[RequestPipeline] = None


class ProcessRequest(BaseModel):
    text: str = Field(min_length=1)
    account_id: str = Field(alias="accountId")
    board_id: Optional[str] = Field(default=None, alias="boardId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    confirmed: bool = False
    targets: Optional[List[str]] = None
    confirmation_token: Optional[str] = Field(default=None, alias="confirmationToken")

    model_config = {"populate_by_name": True}

    def context_request(self) -> ContextRequest:
        return ContextRequest(account_id=self.account_id, board_id=self.board_id, user_id=self.user_id)


def build_pipeline() -> RequestPipeline:
    """Build the production pipeline from environment configuration."""

    client = MondayClient(MondayConfig.from_env())
    executor = OperationExecutor(build_shims(client))
    return RequestPipeline(
        context_service=ContextService(client),
        interpreter=Interpreter(LanguageOracle()),
        validator=OperationValidator(MondayResourceLookup(client)),
        executor=executor,
    )


def get_pipeline() -> RequestPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = build_pipeline()
    return _PIPELINE


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict:
    """Health check endpoint to verify that the service is running."""

    return {"status": "ok", "version": __version__}


@app.post("/api/interpret", status_code=status.HTTP_200_OK)
async def interpret(
    body: ProcessRequest,
    request: Request,
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> dict:
    """Interpret text without mapping or executing anything."""

    request_id = generate_request_id()
    request.state.request_id = request_id
    log_info("Interpret request", user_id=body.user_id, request_id=request_id)

    readings = await pipeline.interpret_only(body.text, body.context_request())
    return {
        "requestId": request_id,
        "operations": [r.to_dict() for r in readings],
        "count": len(readings),
    }


@app.post("/api/validate", status_code=status.HTTP_200_OK)
async def validate(
    body: ProcessRequest,
    request: Request,
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> dict:
    """Dry run: map and validate each operation, execute nothing."""

    request_id = generate_request_id()
    request.state.request_id = request_id
    log_info("Validate request", user_id=body.user_id, request_id=request_id)

    checks = await pipeline.validate_only(body.text, body.context_request())
    return {
        "requestId": request_id,
        "valid": bool(checks) and all(check["valid"] for check in checks),
        "operations": checks,
    }


@app.post("/api/process", status_code=status.HTTP_200_OK)
async def process(
    body: ProcessRequest,
    request: Request,
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> dict:
    """Interpret, validate and execute a user request."""

    # Correlation id so all logs for this request can be tied together.
    request_id = generate_request_id()
    request.state.request_id = request_id

    return await pipeline.process_request(
        body.text,
        body.context_request(),
        confirmed=body.confirmed,
        targets=body.targets,
        confirmation_token=body.confirmation_token,
        request_id=request_id,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all handler for uncaught exceptions.

    Ensures the service returns a 500 JSON error rather than crashing, and
    logs the error together with any request_id associated with the request.
    """

    request_id = getattr(request.state, "request_id", None)
    log_error("Unhandled exception", request_id=request_id, error=str(exc))

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "requestId": request_id},
    )
