"""
Grafana OTLP Metrics Exporter
==============================

Pushes gauges to Grafana Cloud's OTLP HTTP gateway.

Metrics exported:
- llm_tokens_total / llm_prompt_tokens / llm_completion_tokens and
  llm_latency_ms, one set per classifier call
- workflow_runs, one point per run status, after each scheduler tick
"""

import base64
import time
from typing import Optional, Dict, Any, List, Mapping

import httpx

from ticketmate.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

OTLP_METRICS_PATH = "/otlp/v1/metrics"


def _attributes(values: Mapping[str, Any]) -> List[Dict[str, Any]]:
    return [{"key": key, "value": {"stringValue": str(value)}} for key, value in values.items()]


class GrafanaOTLPExporter:
    """
    Export metrics to Grafana Cloud via the OTLP HTTP endpoint.

    An exporter built without credentials is disabled and every export is
    a no-op returning False. Exports never raise.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        service_name: str = "ticketmate",
        service_version: str = "1.0.0",
        environment: str = "development",
        timeout: float = 10.0,
    ):
        self._instance_id = instance_id
        self._resource = {
            "service.name": service_name,
            "service.version": service_version,
            "deployment.environment": environment,
        }
        self._service_name = service_name
        self._timeout = timeout
        self._enabled = bool(host and api_key and instance_id)

        if self._enabled:
            self._auth_encoded = base64.b64encode(f"{instance_id}:{api_key}".encode()).decode()
            self._url = host if OTLP_METRICS_PATH in host else f"{host.rstrip('/')}{OTLP_METRICS_PATH}"
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": host, "instance_id": instance_id}
            )

    def is_enabled(self) -> bool:
        return self._enabled

    # ========== Payloads ==========

    def _document(self, metrics: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "resourceMetrics": [
                {
                    "resource": {"attributes": _attributes(self._resource)},
                    "scopeMetrics": [{"metrics": metrics}],
                }
            ]
        }

    @staticmethod
    def _gauge(
        name: str,
        unit: str,
        description: str,
        points: List[tuple[int, List[Dict[str, Any]]]],
    ) -> Dict[str, Any]:
        timestamp_ns = int(time.time() * 1_000_000_000)
        return {
            "name": name,
            "unit": unit,
            "description": description,
            "gauge": {
                "dataPoints": [
                    {"asInt": value, "timeUnixNano": timestamp_ns, "attributes": attributes}
                    for value, attributes in points
                ]
            },
        }

    def build_llm_payload(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str,
        attributes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """OTLP document for one LLM call."""
        labels = _attributes({
            "model": model,
            "operation": operation,
            "service": self._service_name,
            **(attributes or {}),
        })
        return self._document([
            self._gauge("llm_tokens_total", "1", "Total tokens used in LLM requests",
                        [(prompt_tokens + completion_tokens, labels)]),
            self._gauge("llm_latency_ms", "ms", "LLM request latency in milliseconds",
                        [(latency_ms, labels)]),
            self._gauge("llm_prompt_tokens", "1", "Number of prompt tokens in LLM requests",
                        [(prompt_tokens, labels)]),
            self._gauge("llm_completion_tokens", "1", "Number of completion tokens generated",
                        [(completion_tokens, labels)]),
        ])

    def build_workflow_payload(self, run_counts: Mapping[str, int]) -> Dict[str, Any]:
        """OTLP document with one workflow_runs point per status."""
        points = [
            (count, _attributes({"status": status, "service": self._service_name}))
            for status, count in run_counts.items()
        ]
        return self._document([
            self._gauge("workflow_runs", "1", "Workflow runs by status", points),
        ])

    # ========== Export ==========

    async def _push(self, payload: Dict[str, Any]) -> bool:
        if not self._enabled:
            return False

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={"status_code": response.status_code, "response": response.text[:500], "url": self._url}
        )
        return False

    async def export_llm_metrics(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str = "chat_completion",
        attributes: Optional[Dict[str, str]] = None
    ) -> bool:
        exported = await self._push(self.build_llm_payload(
            model, prompt_tokens, completion_tokens, latency_ms, operation, attributes
        ))
        if exported:
            logger.debug(
                "LLM metrics exported to Grafana",
                extra={"model": model, "operation": operation, "latency_ms": latency_ms}
            )
        return exported

    async def export_workflow_stats(self, run_counts: Mapping[str, int]) -> bool:
        return await self._push(self.build_workflow_payload(run_counts))
