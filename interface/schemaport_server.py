#!/usr/bin/env python3
"""
SchemaPort REST API Server

HTTP interface over the conversion pipeline.

Features:
- Parse, convert and diff endpoints (JSON in, JSON out)
- Health checks and Prometheus metrics
- CORS and GZip middleware
- Request size limit on submitted scripts

Usage:
    schemaport-server --port 8000
"""

import sys
import time
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from pydantic import BaseModel, Field

# Monitoring and metrics
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core import __version__
from core.errors import SchemaPortError, UnsupportedDialectError, ParseError, ValidationError, DiffError
from core.schema_ir import IRSchema
from core.dialects import supported_dialects
from core.emitters import supported_targets
from core.converter import parse_to_ir, convert
from core.differ import diff_schemas, generate_migration_sql
from core.report_generator import generate_report
from config.settings import get_config, configure_logging

logger = logging.getLogger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter('schemaport_requests_total', 'Total HTTP requests', ['method', 'endpoint', 'status'])
REQUEST_DURATION = Histogram('schemaport_request_duration_seconds', 'HTTP request duration')
OPERATION_COUNT = Counter('schemaport_operations_total', 'Pipeline operations', ['operation', 'status'])
OPERATION_DURATION = Histogram('schemaport_operation_duration_seconds', 'Pipeline operation time', ['operation'])

ERROR_STATUS = {
    UnsupportedDialectError: 400,
    ValidationError: 400,
    ParseError: 422,
    DiffError: 409,
}


class ScriptTooLargeError(SchemaPortError):
    """Raised when a submitted script exceeds the configured size limit"""
    def __init__(self, size: int, limit: int):
        super().__init__(f"Script is {size} bytes; the limit is {limit} bytes",
                         details={'size': size, 'limit': limit})


# Pydantic models
class ParseRequest(BaseModel):
    """Parse a script into IR"""
    script: str
    dialect: str
    options: Optional[Dict[str, Any]] = None


class ParseResponse(BaseModel):
    success: bool
    ir: Dict[str, Any]
    warnings: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)


class ConvertRequest(BaseModel):
    """Convert a script from a source dialect to a target format"""
    script: str
    source: str
    target: str
    options: Optional[Dict[str, Any]] = None


class ConvertResponse(BaseModel):
    success: bool
    output: str
    target: str


class DiffRequest(BaseModel):
    """Migration between two IR documents (as produced by /api/v1/parse)"""
    old: Dict[str, Any]
    new: Dict[str, Any]
    options: Optional[Dict[str, Any]] = None


class DiffResponse(BaseModel):
    success: bool
    sql: str
    summary: List[str]
    warnings: List[Dict[str, Any]] = Field(default_factory=list)
    report: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    components: Dict[str, Any]
    uptime: float


def _status_for(error: SchemaPortError) -> int:
    if isinstance(error, ScriptTooLargeError):
        return 413
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    config = get_config()
    app = FastAPI(
        title="SchemaPort API",
        description="Schema conversion and migration",
        version=__version__,
    )
    app.state.config = config
    app.state.started = time.time()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Compression middleware
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    @app.middleware("http")
    async def track_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        REQUEST_DURATION.observe(time.time() - start_time)
        return response

    @app.exception_handler(SchemaPortError)
    async def schemaport_error_handler(request: Request, exc: SchemaPortError):
        status = _status_for(exc)
        logger.info(f"{request.url.path} -> {status}: {exc.message}")
        return JSONResponse(status_code=status, content={
            'success': False,
            'error': exc.message,
            'code': exc.code.value,
        })

    def check_size(script: str):
        size = len(script.encode('utf-8'))
        if size > config.max_script_bytes:
            raise ScriptTooLargeError(size, config.max_script_bytes)

    def options_for(overrides: Optional[Dict[str, Any]]):
        return config.default_options().merged(overrides)

    # Health check endpoints
    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=__version__,
            components={
                "dialects": len(supported_dialects()),
                "targets": len(supported_targets()),
                "profile": config.profile,
            },
            uptime=time.time() - app.state.started,
        )

    @app.get("/health/live")
    async def liveness_check():
        """Kubernetes liveness probe"""
        return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint"""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/api/v1/dialects")
    async def list_dialects():
        return {"dialects": supported_dialects(), "targets": supported_targets()}

    @app.post("/api/v1/parse", response_model=ParseResponse)
    def parse_endpoint(body: ParseRequest):
        check_size(body.script)
        with _timed('parse'):
            result = parse_to_ir(body.script, body.dialect, options_for(body.options))
        return ParseResponse(
            success=True,
            ir=result.ir.to_dict(),
            warnings=[w.render() for w in result.warnings],
            skipped=[e.message for e in result.skipped],
        )

    @app.post("/api/v1/convert", response_model=ConvertResponse)
    def convert_endpoint(body: ConvertRequest):
        check_size(body.script)
        with _timed('convert'):
            output = convert(body.script, body.source, body.target, options_for(body.options))
        return ConvertResponse(success=True, output=output, target=body.target)

    @app.post("/api/v1/diff", response_model=DiffResponse)
    def diff_endpoint(body: DiffRequest):
        with _timed('diff'):
            diff = diff_schemas(IRSchema.from_dict(body.old), IRSchema.from_dict(body.new))
            result = generate_migration_sql(diff, options_for(body.options))
        return DiffResponse(
            success=result.success,
            sql=result.sql,
            summary=diff.summary(),
            warnings=[w.to_dict() for w in result.warnings],
            report=generate_report(diff, result).to_dict(),
            error=result.error,
        )

    return app


class _timed:
    """Records duration and outcome of one pipeline operation"""

    def __init__(self, operation: str):
        self.operation = operation

    def __enter__(self):
        self.start = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        OPERATION_DURATION.labels(operation=self.operation).observe(time.time() - self.start)
        OPERATION_COUNT.labels(operation=self.operation, status='error' if exc_type else 'ok').inc()
        return False


def main():
    """Main entry point"""
    import argparse

    config = get_config()
    parser = argparse.ArgumentParser(description="SchemaPort API Server")
    parser.add_argument("--host", default=config.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.port, help="Port to bind to")
    parser.add_argument("--log-level", default=config.log_level.lower(),
                        choices=["debug", "info", "warning", "error"])
    args = parser.parse_args()

    configure_logging(args.log_level)
    logger.info(f"Starting SchemaPort server on {args.host}:{args.port}")
    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
