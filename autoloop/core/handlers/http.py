"""
apiRequest node handler.

URL, headers and body are interpolated; headers must be a JSON object, the
body is sent as JSON when it parses and as raw text otherwise. The raw
response text lands in variables.apiResponse. Failures are non-fatal.
"""

import json
from typing import Any, Dict

import httpx

from ..resolver import interpolate
from ..run import NodeOutcome, WorkflowRun

# httpx rejects malformed interpolated URLs (InvalidURL) and non-ASCII header
# values (UnicodeEncodeError) before sending
REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL, ValueError)


def _interpolate_structure(value: Any, ctx) -> Any:
    if isinstance(value, str):
        return interpolate(value, ctx)
    if isinstance(value, dict):
        return {k: _interpolate_structure(v, ctx) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_structure(v, ctx) for v in value]
    return value


def _build_headers(raw: Any, run: WorkflowRun) -> Dict[str, str]:
    if not raw:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in _interpolate_structure(raw, run.context).items()}
    try:
        parsed = json.loads(interpolate(raw, run.context))
    except ValueError:
        run.warn("Request headers are not valid JSON, sending without custom headers")
        return {}
    if not isinstance(parsed, dict):
        run.warn("Request headers must be a JSON object, sending without custom headers")
        return {}
    return {str(k): str(v) for k, v in parsed.items()}


def _build_body(raw: Any, run: WorkflowRun) -> Dict[str, Any]:
    """httpx keyword arguments for the body"""
    if raw is None or raw == "":
        return {}
    if isinstance(raw, (dict, list)):
        return {"json": _interpolate_structure(raw, run.context)}
    text = interpolate(raw, run.context)
    try:
        return {"json": json.loads(text)}
    except ValueError:
        return {"content": text}


async def handle_api_request(node, run: WorkflowRun) -> NodeOutcome:
    config = node.config
    url = interpolate(config.url, run.context).strip()
    if not url:
        run.soft_error("API request skipped: no URL configured")
        return NodeOutcome.proceed()

    headers = _build_headers(config.headers, run)
    body = _build_body(config.body, run) if config.method != "GET" else {}

    run.log(f"Sending {config.method} request to {url}")
    try:
        async with run.integrations.http_client_factory() as client:
            response = await client.request(config.method, url, headers=headers, **body)
    except REQUEST_ERRORS as e:
        run.soft_error(f"API request failed: {type(e).__name__}: {e}")
        return NodeOutcome.proceed()

    run.context.set_variable("apiResponse", response.text)
    if response.status_code >= 400:
        run.soft_error(f"API request returned HTTP {response.status_code}")
    else:
        run.log(f"✅ API request completed with status {response.status_code}")
    return NodeOutcome.proceed()
