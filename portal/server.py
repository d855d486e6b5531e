"""Flask front door: one workflow run per request."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from workflow import WorkflowConfigError, WorkflowRunner
from workflow.actions import ActionExecutor
from workflow.dsl import actions as action_registry, probes as probe_registry
from workflow.runner import SessionFactory
from workflow.structured_logging import StructuredLogger

from .artifacts import ScreenshotSink, create_run_dir
from .browser import PlaywrightSessionFactory
from .config import RunConfig, load_config
from .stages import login_workflow, page_probe_workflow, provider_selection_workflow, upload_navigation_workflow

log = logging.getLogger(__name__)


class RequestError(Exception):
    pass


def _required(data: Dict[str, Any], *names: str) -> Tuple[str, ...]:
    values = tuple(data.get(name) for name in names)
    if not all(isinstance(value, str) and value.strip() for value in values):
        verb = "is" if len(names) == 1 else "are"
        raise RequestError(f"{' and '.join(names)} {verb} required")
    return values


def _provider(data: Dict[str, Any]) -> str:
    value = data.get("provider")
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None or not str(value).strip():
        raise RequestError("provider is required")
    return str(value).strip()


def create_app(config: Optional[RunConfig] = None, session_factory: Optional[SessionFactory] = None) -> Flask:
    config = config or load_config()
    factory = session_factory or PlaywrightSessionFactory(config)
    executor = ActionExecutor(
        action_timeout_ms=config.action_timeout_ms,
        navigation_timeout_ms=config.navigation_timeout_ms,
        settle_timeout_ms=config.settle_timeout_ms,
    )

    def _runner(stages: Sequence[Any]) -> WorkflowRunner:
        return WorkflowRunner(stages, session_factory=factory, executor=executor)

    login_runner = _runner(login_workflow(config))
    upload_runner = _runner(upload_navigation_workflow(config))
    provider_runner = _runner(provider_selection_workflow(config))

    def _execute(runner: WorkflowRunner, inputs: Dict[str, Any]) -> Dict[str, Any]:
        paths = create_run_dir(Path(config.log_root))
        log.info("Run %s started (%d stages)", paths.run_id, len(runner.stages))
        with StructuredLogger(paths.run_id, paths.events) as events:
            result = asyncio.run(
                runner.run(inputs, artifact_sink=ScreenshotSink(paths.shots), event_log=events)
            )
        log.info("Run %s finished: succeeded=%s halted=%s", paths.run_id, result.succeeded, result.halted_at_stage)
        return {"runDir": str(paths.base), **result.as_dict()}

    app = Flask(__name__)
    app.config["RUN_CONFIG"] = config

    @app.errorhandler(RequestError)
    def handle_bad_request(error: RequestError):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(WorkflowConfigError)
    def handle_config_error(error: WorkflowConfigError):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(Exception)
    def handle_exception(error: Exception):
        if isinstance(error, HTTPException):
            return error
        correlation_id = str(uuid.uuid4())[:8]
        log.exception("[%s] Uncaught exception: %s", correlation_id, error)
        return jsonify({"error": str(error) or "Internal Server Error", "correlation_id": correlation_id}), 500

    @app.get("/api/health")
    def health():
        return jsonify({"ok": True, "env": config.env, "time": datetime.now(timezone.utc).isoformat()})

    @app.get("/api/schema")
    def schema():
        return jsonify({"probes": probe_registry.schema(), "actions": action_registry.schema()})

    @app.post("/api/probe")
    def probe():
        data = request.get_json(silent=True) or {}
        (url,) = _required(data, "url")
        wait_for = data.get("waitFor") or None
        if wait_for is not None and not isinstance(wait_for, str):
            raise RequestError("waitFor must be a selector string")
        return jsonify(_execute(_runner(page_probe_workflow(config, url, wait_for)), {}))

    @app.post("/api/login-probe")
    def login_probe():
        data = request.get_json(silent=True) or {}
        username, password = _required(data, "username", "password")
        return jsonify(_execute(login_runner, {"username": username, "password": password}))

    @app.post("/api/nav/upload")
    def nav_upload():
        data = request.get_json(silent=True) or {}
        username, password = _required(data, "username", "password")
        return jsonify(_execute(upload_runner, {"username": username, "password": password}))

    @app.post("/api/upload/select-provider")
    def select_provider():
        data = request.get_json(silent=True) or {}
        username, password = _required(data, "username", "password")
        inputs = {"username": username, "password": password, "provider": _provider(data)}
        return jsonify(_execute(provider_runner, inputs))

    return app


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    config = load_config()
    app = create_app(config)
    log.info("API listening on http://%s:%s", config.host, config.port)
    app.run(host=config.host, port=config.port, threaded=True)


if __name__ == "__main__":  # pragma: no cover
    main()
