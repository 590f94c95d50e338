"""
Flask API server for transcription and summarization jobs.

This server provides endpoints for:
- Submitting audio for transcription and text for summarization
- Checking job progress and cancelling jobs
- Retrieving results
- Querying, inspecting and deleting the job history

Jobs run on the JobRunner's thread pool; completed results are saved to the
history automatically.
"""

import atexit
import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.utils import secure_filename

from ..config import ConfigManager
from ..engines import ModelCache, dispose_engine, load_engine
from ..exceptions import InputUnavailable, StoreError
from ..history import HistoryQueryEngine, JsonHistoryStore, JsonPreferenceStore
from ..jobs import JobRunner
from ..language import detect_language
from ..models import HistoryFilter, SummarizationOptions, SummaryLength, TranscriptionOptions

logger = logging.getLogger(__name__)

# 16-bit PCM, either bare or in a WAV container
ALLOWED_EXTENSIONS = {"wav", "pcm", "raw"}

TRUE_VALUES = {"true", "1", "yes", "on"}
FALSE_VALUES = {"false", "0", "no", "off", ""}

CONFIG_KEYS = [
    "LLM_API_BASE_URL",
    "LLM_MODEL",
    "OPENAI_API_KEY",
    "WHISPER_MODEL",
    "HISTORY_DIR",
    "PREFERENCES_FILE",
    "MAX_WORKERS",
]


def allowed_file(filename: str) -> bool:
    """Check if the uploaded file has an allowed extension."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def build_runner() -> JobRunner:
    """Create the default job runner from configuration."""
    history = HistoryQueryEngine(
        JsonHistoryStore(ConfigManager.get("HISTORY_DIR")),
        page_size=ConfigManager.get_int("HISTORY_PAGE_SIZE"),
        preferences=JsonPreferenceStore(ConfigManager.get("PREFERENCES_FILE")),
    )
    return JobRunner(
        ModelCache(load_engine, disposer=dispose_engine),
        history,
        max_workers=ConfigManager.get_int("MAX_WORKERS"),
        chunk_size=ConfigManager.get_int("SUMMARY_CHUNK_SIZE"),
    )


def _parse_bool(value: Any, default: bool) -> bool:
    """Read a boolean option sent as JSON bool, number or string."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in TRUE_VALUES:
            return True
        if normalized in FALSE_VALUES:
            return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def _transcription_options(data: Dict[str, Any]) -> TranscriptionOptions:
    return TranscriptionOptions(
        model_variant=ConfigManager.get("WHISPER_MODEL", data.get("model_variant")),
        language=data.get("language") or "auto",
        return_timestamps=_parse_bool(data.get("return_timestamps"), True),
    )


def _summarization_options(data: Dict[str, Any]) -> SummarizationOptions:
    max_length = data.get("max_length")
    min_length = data.get("min_length")
    return SummarizationOptions(
        model_variant=ConfigManager.get("LLM_MODEL", data.get("model_variant")),
        target_length=SummaryLength(data.get("target_length") or SummaryLength.MEDIUM.value),
        max_length=int(max_length) if max_length is not None else None,
        min_length=int(min_length) if min_length is not None else None,
        language=data.get("language") or "auto",
        strict_recombination=_parse_bool(data.get("strict_recombination"), False),
    )


def create_app(runner: Optional[JobRunner] = None) -> Flask:
    """
    Create the Flask application.

    Args:
        runner: Job runner to serve; built from configuration when omitted
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 500 * 1024 * 1024  # 500MB max file size
    CORS(app)

    if runner is None:
        runner = build_runner()
        # Ensure cleanup on shutdown
        atexit.register(runner.stop)

    app.config["JOB_RUNNER"] = runner
    history = runner.history

    @app.errorhandler(InputUnavailable)
    def handle_input_unavailable(error: InputUnavailable):
        return jsonify({"error": error.message}), 400

    @app.errorhandler(ValueError)
    def handle_bad_request(error: ValueError):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(StoreError)
    def handle_store_error(error: StoreError):
        logger.error(f"History store error: {error}")
        return jsonify({"error": error.message}), 500

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint."""
        queue_status = runner.get_queue_status()
        return jsonify(
            {
                "status": "healthy",
                "timestamp": datetime.now().isoformat(),
                "runner_running": queue_status["is_running"],
                "running_jobs": len(queue_status["running_jobs"]),
            }
        )

    @app.route("/transcribe", methods=["POST"])
    def transcribe_audio():
        """
        Upload audio for transcription.

        Expected form data:
        - file: Audio file (16-bit PCM)
        - options: Optional JSON string with transcription options

        Returns:
        - job_id: Unique identifier for tracking the job
        """
        if "file" not in request.files:
            return jsonify({"error": "No file provided"}), 400

        file = request.files["file"]
        if file.filename == "":
            return jsonify({"error": "No file selected"}), 400

        if not allowed_file(file.filename):
            allowed_types = ", ".join(sorted(ALLOWED_EXTENSIONS))
            return jsonify({"error": f"File type not allowed. Allowed types: {allowed_types}"}), 400

        if not secure_filename(file.filename):
            return jsonify({"error": "Invalid filename"}), 400

        options = {}
        if "options" in request.form:
            try:
                options = json.loads(request.form["options"])
            except json.JSONDecodeError:
                return jsonify({"error": "Options must be valid JSON"}), 400

        job_id = runner.submit_transcription(file.read(), _transcription_options(options))
        return jsonify({"job_id": job_id, "status": "pending", "message": "Audio queued for transcription"}), 201

    @app.route("/summarize", methods=["POST"])
    def summarize_text():
        """
        Submit text for summarization.

        Expected JSON body:
        - text: Text to summarize (optional when transcription_id is given)
        - transcription_id: History record whose text is summarized and which receives the summary
        - options: Optional summarization options
        """
        data = request.get_json(silent=True) or {}
        transcription_id = data.get("transcription_id")
        text = data.get("text")

        if transcription_id and text is None:
            record = history.get(transcription_id)
            if record is None:
                return jsonify({"error": "Transcription not found"}), 404
            text = record.text

        if not text or not str(text).strip():
            return jsonify({"error": "No text provided"}), 400

        options = _summarization_options(data.get("options") or {})
        job_id = runner.submit_summarization(text, options, transcription_id=transcription_id)
        return jsonify({"job_id": job_id, "status": "pending", "message": "Text queued for summarization"}), 201

    @app.route("/status/<job_id>", methods=["GET"])
    def get_job_status(job_id: str):
        """Get the state and latest progress of a job."""
        status = runner.get_status(job_id)
        if status is None:
            return jsonify({"error": "Job not found"}), 404
        return jsonify(status)

    @app.route("/cancel/<job_id>", methods=["POST"])
    def cancel_job(job_id: str):
        """Cancel a running job."""
        if runner.get_status(job_id) is None:
            return jsonify({"error": "Job not found"}), 404

        if runner.cancel_job(job_id):
            return jsonify({"message": "Job cancelled"})
        return jsonify({"error": "Job already finished"}), 409

    @app.route("/result/<job_id>", methods=["GET"])
    def get_job_result(job_id: str):
        """Get the result of a completed job."""
        status = runner.get_status(job_id)
        if status is None:
            return jsonify({"error": "Job not found"}), 404

        result = runner.get_result(job_id)
        if result is None:
            return jsonify({"error": "Job not completed yet", "state": status["state"]}), 400

        return jsonify(result.to_dict())

    @app.route("/history", methods=["GET"])
    def list_history():
        """
        Query the job history.

        Query parameters:
        - language, model: exact match filters
        - date_from, date_to: ISO dates bounding the creation time
        - search: case-insensitive text search over transcripts and summaries
        - limit, offset: pagination window

        Returns records sorted by creation time (newest first).
        """
        history_filter = HistoryFilter(
            language=request.args.get("language"),
            model_used=request.args.get("model"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            search_text=request.args.get("search"),
            limit=int(request.args.get("limit", history.page_size)),
            offset=int(request.args.get("offset", 0)),
        )
        page = history.query(history_filter)
        response = page.to_dict()
        response.update({"limit": history_filter.limit, "offset": history_filter.offset})
        return jsonify(response)

    @app.route("/history/stats", methods=["GET"])
    def get_history_stats():
        """Get aggregate statistics over the whole history."""
        return jsonify(history.stats().to_dict())

    @app.route("/history/<record_id>", methods=["GET"])
    def get_history_record(record_id: str):
        record = history.get(record_id)
        if record is None:
            return jsonify({"error": "Record not found"}), 404
        return jsonify(record.to_dict())

    @app.route("/history", methods=["DELETE"])
    def clear_history():
        """Delete every record, summary and user preference."""
        history.clear_all()
        return jsonify({"message": "All data cleared"})

    @app.route("/history/<record_id>/summary", methods=["GET"])
    def get_history_summary(record_id: str):
        """Get the summary attached to a history record."""
        summary = history.get_summary(record_id)
        if summary is None:
            return jsonify({"error": "Summary not found"}), 404
        return jsonify(summary.to_dict())

    @app.route("/history/<record_id>", methods=["DELETE"])
    def delete_history_record(record_id: str):
        """Delete a history record and its summary."""
        if history.delete(record_id):
            return jsonify({"message": "Record deleted successfully"})
        return jsonify({"error": "Record not found"}), 404

    @app.route("/preferences", methods=["GET"])
    def list_preferences():
        return jsonify(history.preferences.get_all())

    @app.route("/preferences/<key>", methods=["GET"])
    def get_preference(key: str):
        value = history.preferences.get(key)
        if value is None:
            return jsonify({"error": "Preference not found"}), 404
        return jsonify({"key": key, "value": value})

    @app.route("/preferences/<key>", methods=["PUT"])
    def set_preference(key: str):
        """
        Set a user preference.

        Expected JSON body:
        - value: Preference value, stored as a string
        """
        data = request.get_json(silent=True) or {}
        if "value" not in data or data["value"] is None:
            return jsonify({"error": "No value provided"}), 400
        history.preferences.set(key, str(data["value"]))
        return jsonify({"key": key, "value": history.preferences.get(key)})

    @app.route("/preferences/<key>", methods=["DELETE"])
    def delete_preference(key: str):
        if history.preferences.delete(key):
            return jsonify({"message": "Preference deleted"})
        return jsonify({"error": "Preference not found"}), 404

    @app.route("/language/detect", methods=["POST"])
    def detect_text_language():
        """
        Detect the language of a text.

        Expected JSON body:
        - text: Text to analyze

        Returns the detection plus the language recommended under the user's preferences.
        """
        data = request.get_json(silent=True) or {}
        text = data.get("text")
        if not isinstance(text, str):
            return jsonify({"error": "No text provided"}), 400
        response = detect_language(text).to_dict()
        response["recommended"] = history.recommended_language(text)
        return jsonify(response)

    @app.route("/config", methods=["GET"])
    def get_config():
        """Show effective configuration values and where they come from."""
        config = {}
        for key in CONFIG_KEYS:
            value, source = ConfigManager.get_display_value(key)
            config[key] = {"value": value, "source": source}
        return jsonify(config)

    return app


def main() -> None:
    logging.basicConfig(level=getattr(logging, str(ConfigManager.get("LOG_LEVEL")).upper(), logging.INFO))
    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.setLevel(logging.WARNING)

    app = create_app()
    port = int(os.getenv("PORT", "5001"))
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
