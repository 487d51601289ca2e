"""
MockPaper AI — IB Mathematics mock exam generator.
Flask backend: config form, generation endpoint, PDF export.
"""

import logging
from io import BytesIO
from typing import Optional

from flask import Flask, current_app, jsonify, render_template, request, send_file
from werkzeug.exceptions import BadRequest

import config
from errors import ExamGenerationError, MalformedRequest, RateLimitExceeded
from exam_config import DIFFICULTIES, LEVELS, PAPER_TYPES, TOPICS, parse_config
from generation import ExamGenerator, make_client
from pdf_export import DOCUMENTS, create_pdf, pdf_filename
from rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def client_id_from_request() -> str:
    """First X-Forwarded-For hop; not authenticated, only used to key rate limits."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first = forwarded.split(",")[0].strip()
    return first or UNKNOWN_CLIENT


def create_app(
    generator: Optional[ExamGenerator] = None,
    rate_limiter: Optional[FixedWindowRateLimiter] = None,
) -> Flask:
    app = Flask(__name__, template_folder="templates")

    if generator is None:
        generator = ExamGenerator(
            make_client(config.OPENAI_API_KEY, timeout=config.GENERATION_TIMEOUT),
            model=config.OPENAI_MODEL,
            max_output_tokens=config.MAX_OUTPUT_TOKENS,
        )
    if rate_limiter is None:
        rate_limiter = FixedWindowRateLimiter(
            limit=config.RATE_LIMIT,
            window=config.RATE_LIMIT_WINDOW,
            max_keys=config.RATE_LIMIT_MAX_KEYS,
        )
    app.extensions["exam_generator"] = generator
    app.extensions["rate_limiter"] = rate_limiter

    # ══════════════════════════════════════════════════
    # Error handlers
    # ══════════════════════════════════════════════════

    @app.errorhandler(ExamGenerationError)
    def _generation_failed(e):
        return jsonify({"success": False, "error": e.message}), e.status_code

    # ══════════════════════════════════════════════════
    # Routes
    # ══════════════════════════════════════════════════

    @app.route("/")
    def index():
        return render_template("index.html")

    @app.route("/api/generate", methods=["POST"])
    def generate():
        ip = client_id_from_request()
        if not current_app.extensions["rate_limiter"].check_and_consume(ip):
            logger.warning("Rate limit hit for %s", ip)
            raise RateLimitExceeded("Too many requests. Please wait before generating another paper.")

        try:
            body = request.get_json(force=True)
        except BadRequest as e:
            raise MalformedRequest("Invalid request body.") from e

        try:
            exam_config = parse_config(body)
        except ExamGenerationError as e:
            logger.info("Rejected config from %s: %s", ip, e.message)
            raise

        data = current_app.extensions["exam_generator"].generate(exam_config)
        return jsonify({"success": True, "data": data})

    @app.route("/download-pdf", methods=["POST"])
    def download_pdf():
        payload  = request.get_json(force=True, silent=True) or {}
        data     = payload.get("data") if isinstance(payload, dict) else None
        document = (payload.get("document") if isinstance(payload, dict) else None) or "exam"

        if document not in DOCUMENTS:
            return jsonify({"success": False, "error": f"Unknown document: {document}"}), 400
        if not isinstance(data, dict) or not isinstance(data.get(document), dict):
            return jsonify({"success": False, "error": "No generated exam provided"}), 400

        try:
            pdf_bytes = create_pdf(data, document)
        except Exception as e:
            logger.exception("PDF export failed")
            return jsonify({"success": False, "error": f"PDF export failed: {e}"}), 500

        return send_file(
            BytesIO(pdf_bytes),
            as_attachment=True,
            download_name=pdf_filename(data.get("exam"), document),
            mimetype="application/pdf",
        )

    @app.route("/topics")
    def topics():
        return jsonify({
            "success":      True,
            "topics":       TOPICS,
            "levels":       list(LEVELS),
            "paperTypes":   list(PAPER_TYPES),
            "difficulties": list(DIFFICULTIES),
        })

    @app.route("/health")
    def health():
        gen = current_app.extensions["exam_generator"]
        return jsonify({
            "status": "ok",
            "openai": "configured" if gen.configured else "not configured",
            "model":  gen.model,
        })

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=config.PORT, debug=config.DEBUG, threaded=True)
