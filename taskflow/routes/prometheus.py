from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Request, Response
import time
from taskflow.metrics import REQUEST_COUNT, REQUEST_LATENCY, EXCEPTION_COUNT

router = APIRouter()

UNMATCHED_ENDPOINT = "unmatched"

@router.get("/")
def metrics():
    data = generate_latest()
    return Response(data, media_type=CONTENT_TYPE_LATEST)

def endpoint_label(request: Request) -> str:
    """Route template such as /tasks/{task_id}, so ids never become label values."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or UNMATCHED_ENDPOINT

async def metrics_middleware(request: Request, call_next):
    start_time = time.time()

    try:
        response = await call_next(request)
    except Exception:
        EXCEPTION_COUNT.labels(endpoint=endpoint_label(request)).inc()
        raise

    process_time = time.time() - start_time
    endpoint = endpoint_label(request)

    REQUEST_LATENCY.labels(endpoint=endpoint).observe(process_time)
    REQUEST_COUNT.labels(
        method=request.method,
        endpoint=endpoint,
        http_status=response.status_code
    ).inc()

    return response
