from __future__ import annotations

from flask import Flask, Response, jsonify, request

from app.billing import config
from app.billing.config_validation import validate_runtime_config
from app.billing.engine import BillingEngine
from app.billing.errors import ControlError, PersistenceError
from app.billing.healthcheck import run_health_checks
from app.billing.logging_utils import _engine_event
from app.billing.utils import ensure_dirs, log_line

app = Flask(__name__)

# Initialise storage paths on import so WSGI entrypoints also have the
# expected layout ready.
ensure_dirs()
engine = BillingEngine()


def _requested_workers() -> int | None:
    payload = request.get_json(silent=True) or {}
    raw = payload.get("workers") if isinstance(payload, dict) else None
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


@app.post("/start")
def start_processing() -> Response:
    """Start a run with up to ``MAX_WORKERS`` workers."""

    try:
        validate_runtime_config("api")
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        workers = engine.start(_requested_workers())
    except ControlError as exc:
        return jsonify({"error": str(exc)}), 400
    except PersistenceError as exc:
        log_line(f"[API][WARN] Unable to start processing: {exc}")
        _engine_event("error", phase="api", context="start", error=exc.kind.value)
        return jsonify({"error": str(exc)}), 500

    return jsonify(
        {
            "message": f"Processing started with {workers} workers",
            "workers": workers,
        }
    )


@app.post("/pause")
def pause_processing() -> Response:
    try:
        engine.pause()
    except ControlError as exc:
        return jsonify({"message": str(exc)}), 400
    return jsonify({"message": "Pause requested"})


@app.post("/resume")
def resume_processing() -> Response:
    try:
        engine.resume()
    except ControlError as exc:
        return jsonify({"message": str(exc)}), 400
    return jsonify({"message": "Resuming processing..."})


@app.post("/stop")
def stop_processing() -> Response:
    """Stop the active run; answers once every worker has drained."""

    try:
        engine.stop()
    except ControlError as exc:
        return jsonify({"message": str(exc)}), 400
    return jsonify({"message": "Processing stopped"})


@app.get("/status")
def processing_status() -> Response:
    return jsonify(engine.status())


@app.get("/api/health")
def api_health() -> Response:
    """Return a JSON health summary for configuration, filesystem and input."""

    result = run_health_checks(entrypoint="api")
    status = 200 if result.ok else 503
    return jsonify({"ok": result.ok, "checks": result.checks}), status


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=config.PORT)
