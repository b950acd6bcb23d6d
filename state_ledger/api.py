"""
Ledger HTTP Host

Hosts the chaincode behind a small FastAPI application: callers post a
function name and its string arguments to /invoke or /query and receive the
handler's JSON result.
"""

import json
from typing import Any, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request

from .chaincode import Chaincode
from .config import get_config
from .exceptions import (
    LedgerError, NotFoundError, PolicyViolation, StoreError, ValidationError
)
from .logging_config import setup_logging
from .schemas import InvocationRequest


def get_chaincode(request: Request) -> Chaincode:
    return request.app.state.chaincode


def _status_for(error: LedgerError) -> int:
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, PolicyViolation):
        return 409
    if isinstance(error, StoreError):
        return 503
    return 500


def _decode_result(result: bytes) -> Any:
    if not result:
        return None
    return json.loads(result)


def _run(call, request: InvocationRequest, correlation_id: Optional[str]) -> dict:
    try:
        result = call(request.function, request.args, correlation_id=correlation_id)
    except LedgerError as e:
        detail = {"error": type(e).__name__, "message": str(e)}
        if isinstance(e, PolicyViolation):
            detail["failure_code"] = e.failure_code
        raise HTTPException(status_code=_status_for(e), detail=detail)
    return {"function": request.function, "payload": _decode_result(result)}


def create_app(chaincode: Optional[Chaincode] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="State Ledger API",
        description="Account ledger and money transfers over an ordered key-value store",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.chaincode = chaincode or Chaincode()

    @app.post("/invoke")
    async def invoke(
        request: InvocationRequest,
        cc: Chaincode = Depends(get_chaincode),
        x_correlation_id: Optional[str] = Header(None)
    ):
        """Call a handler that may modify ledger state"""
        return _run(cc.invoke, request, x_correlation_id)

    @app.post("/query")
    async def query(
        request: InvocationRequest,
        cc: Chaincode = Depends(get_chaincode),
        x_correlation_id: Optional[str] = Header(None)
    ):
        """Call a read-only handler"""
        return _run(cc.query, request, x_correlation_id)

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "state_ledger",
            "version": "1.0.0"
        }

    @app.get("/")
    async def get_api_info(cc: Chaincode = Depends(get_chaincode)):
        """Get API information"""
        return {
            "name": "State Ledger API",
            "version": "1.0.0",
            "functions": cc.handlers.functions(),
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "invoke": "/invoke",
                "query": "/query"
            }
        }

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, config.log_format)
    uvicorn.run(
        "state_ledger.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
