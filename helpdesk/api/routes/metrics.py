from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

from helpdesk.metrics import PrometheusExporter, metrics_registry

router = APIRouter(tags=["observability"])


@router.get("/metrics", response_class=PlainTextResponse, summary="Prometheus metrics")
async def metrics(request: Request) -> PlainTextResponse:
    registry = getattr(request.app.state, "metrics_registry", None) or metrics_registry
    exporter = PrometheusExporter(registry)
    return PlainTextResponse(exporter.export(), media_type=exporter.content_type)
