from typing import Any, Dict, Optional
import base64
import binascii
import json
import logging
import os
import time
import uuid
from collections import defaultdict, deque

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors import MalformedDocument, MissingAttachments, ReportError
from report_pipeline import MISSING_ATTACHMENTS_MESSAGE, find_input_file, process_attachments


app = FastAPI()

# --- Config ---
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))  # 20MB default

RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "30"))          # requests
RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "60"))    # seconds

PROCESS_PATH = "/api/process"
SERVICE_MESSAGE = "SF Automation Processor Test"

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

logger = logging.getLogger("url_counter")

# ip -> timestamps
_req_times = defaultdict(deque)


def _client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _failure(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


# -----------------------------
# Middleware
# -----------------------------
@app.middleware("http")
async def limit_upload_size(request: Request, call_next):
    if request.url.path == PROCESS_PATH and request.method.upper() == "POST":
        cl = request.headers.get("content-length")
        if cl is not None:
            try:
                too_large = int(cl) > MAX_UPLOAD_BYTES
            except ValueError:
                return _failure(400, "Content-Length invalido")
            if too_large:
                return _failure(413, "La peticion supera el tamano maximo permitido")
    return await call_next(request)


@app.middleware("http")
async def basic_rate_limit(request: Request, call_next):
    if request.url.path == PROCESS_PATH and request.method.upper() == "POST":
        ip = _client_ip(request)
        now = time.time()
        q = _req_times[ip]

        cutoff = now - RATE_LIMIT_WINDOW
        while q and q[0] < cutoff:
            q.popleft()

        if len(q) >= RATE_LIMIT_MAX:
            return _failure(429, "Demasiadas peticiones, intentalo mas tarde")

        q.append(now)

    return await call_next(request)


@app.middleware("http")
async def request_logging(request: Request, call_next):
    start = time.time()
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid

    status = 500
    try:
        response = await call_next(request)
        status = response.status_code
        response.headers["X-Request-Id"] = rid
        return response

    except Exception as exc:
        logger.exception(json.dumps({
            "event": "request_exception",
            "request_id": rid,
            "method": request.method,
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error": str(exc),
        }))
        response = JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal Server Error"},
        )
        response.headers["X-Request-Id"] = rid
        return response

    finally:
        duration_ms = int((time.time() - start) * 1000)
        logger.info(json.dumps({
            "event": "request",
            "request_id": rid,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": duration_ms,
        }))


# -----------------------------
# Base64 framing
# -----------------------------
def decode_attachments(file_contents: Any) -> Dict[str, bytes]:
    """
    Pick the internal_all upload out of {name: base64 text} and decode it.

    Only the matched entry is decoded, the rest of the uploads are never read.
    Returns {name: raw bytes} holding that single file.
    """
    if not file_contents or not isinstance(file_contents, dict):
        raise MissingAttachments(MISSING_ATTACHMENTS_MESSAGE)

    name = find_input_file(file_contents.keys())
    encoded = file_contents[name]
    if not isinstance(encoded, str):
        raise MalformedDocument(f"El contenido de {name} no es texto base64")
    try:
        return {name: base64.b64decode(encoded)}
    except (binascii.Error, ValueError) as e:
        raise MalformedDocument(f"El contenido de {name} no es base64 valido: {e}") from e


def encode_generated_files(generated: Dict[str, bytes]) -> Dict[str, str]:
    return {name: base64.b64encode(payload).decode("ascii") for name, payload in generated.items()}


# -----------------------------
# Endpoints
# -----------------------------
class ProcessRequest(BaseModel):
    baseName: Optional[str] = None
    files: Optional[Any] = None
    fileContents: Optional[Any] = None


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    )
    return _failure(400, f"Peticion invalida: {problems}")


@app.get(PROCESS_PATH)
def process_status() -> Dict[str, str]:
    return {"status": "ok", "message": SERVICE_MESSAGE}


@app.post(PROCESS_PATH)
def process(req: ProcessRequest, request: Request):
    rid = getattr(request.state, "request_id", None)
    logger.info(json.dumps({
        "event": "process_start",
        "request_id": rid,
        "base_name": req.baseName,
        "files": sorted(req.fileContents.keys()) if isinstance(req.fileContents, dict) else None,
    }))

    try:
        attachments = decode_attachments(req.fileContents)
        result = process_attachments(attachments, req.baseName, request_id=rid)

    except ReportError as e:
        if e.status_code >= 500:
            logger.exception(json.dumps({
                "event": "process_error",
                "request_id": rid,
                "error_type": type(e).__name__,
                "error": str(e),
            }))
            return _failure(e.status_code, f"Error interno: {e}")

        logger.info(json.dumps({
            "event": "process_rejected",
            "request_id": rid,
            "error_type": type(e).__name__,
            "error": str(e),
        }))
        return _failure(e.status_code, str(e))

    except Exception as e:
        logger.exception(json.dumps({
            "event": "process_error",
            "request_id": rid,
            "error_type": type(e).__name__,
            "error": str(e),
        }))
        return _failure(500, f"Error interno: {e}")

    logger.info(json.dumps({
        "event": "process_end",
        "request_id": rid,
        "url_count": result.url_count,
        "generated_files": list(result.generated_files),
    }))

    return {
        "success": True,
        "message": result.message,
        "urlCount": result.url_count,
        "metrics": result.metrics.as_dict(),
        "generatedFiles": encode_generated_files(result.generated_files),
    }


@app.api_route(PROCESS_PATH, methods=["PUT", "PATCH", "DELETE"])
def process_method_not_allowed() -> JSONResponse:
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}
