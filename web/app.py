"""
Flask web server for the question bank.

Routes
──────
GET    /health                                       Liveness check
GET    /api/topics?q=...                             List or search topics
POST   /api/topics                                   Create a topic
GET    /api/topics/<id>                              Fetch a topic
PATCH  /api/topics/<id>                              Rename a topic
DELETE /api/topics/<id>                              Delete a topic and its questions
GET    /api/topics/<id>/questions?q=&difficulty=     List (cached) or filter (cached)
GET    /api/topics/<id>/questions/search             Paginated search (uncached)
POST   /api/topics/<id>/questions                    Add a question
PATCH  /api/topics/<id>/questions/<qid>              Partially update a question
DELETE /api/topics/<id>/questions/<qid>              Delete a question
"""

from __future__ import annotations

import logging
import os
import sys

import pydantic
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from qbank import store
from qbank.cache import ReadCache
from qbank.errors import (
    DatastoreError,
    DuplicateError,
    NotFoundError,
    QuestionBankError,
    ValidationError,
)
from qbank.models import ALL_DIFFICULTIES, QuestionForm, QuestionPatch, SearchParams
from qbank.questions import QuestionService
from qbank.topics import TopicService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[QuestionBankError], int]] = [
    (NotFoundError, 404),
    (ValidationError, 400),
    (DuplicateError, 409),
    (DatastoreError, 503),
]


def _dump(items) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


def create_app(settings: Settings | None = None, cache: ReadCache | None = None) -> Flask:
    """Build the Flask app with its own cache and services.

    Args:
        settings: Configuration; read from the environment when omitted.
        cache: Read cache shared by the services; a fresh one when omitted.
    """
    settings = settings or Settings()
    settings.validate()
    cache = cache or ReadCache()

    app = Flask(__name__)
    topics = TopicService(cache, settings)
    questions = QuestionService(cache, settings)
    app.extensions["qbank"] = {"cache": cache, "topics": topics, "questions": questions}

    # Initialise the topic store on startup
    store.init_db()

    # ── Error handling ─────────────────────────────────────────────────────

    @app.errorhandler(QuestionBankError)
    def handle_domain_error(exc: QuestionBankError):
        for error_type, status in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                return jsonify({"error": str(exc)}), status
        return jsonify({"error": str(exc)}), 500

    @app.errorhandler(pydantic.ValidationError)
    def handle_bad_payload(exc: pydantic.ValidationError):
        details = exc.errors(include_url=False, include_context=False)
        return jsonify({"error": "Invalid request body", "details": details}), 400

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    def _body() -> dict:
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object")
        return payload

    # ── Health ─────────────────────────────────────────────────────────────

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    # ── Topics API ─────────────────────────────────────────────────────────

    @app.route("/api/topics")
    def list_topics():
        """List every topic, or those whose name contains ?q= (case-insensitive)."""
        q = request.args.get("q", "")
        found = topics.search_topics(q) if q.strip() else topics.list_topics()
        return jsonify(_dump(found))

    @app.route("/api/topics", methods=["POST"])
    def create_topic():
        topic = topics.create_topic(_body().get("name"))
        return jsonify(topic.model_dump(mode="json")), 201

    @app.route("/api/topics/<topic_id>")
    def get_topic(topic_id: str):
        return jsonify(topics.get_topic(topic_id).model_dump(mode="json"))

    @app.route("/api/topics/<topic_id>", methods=["PATCH"])
    def rename_topic(topic_id: str):
        topic = topics.rename_topic(topic_id, _body().get("name"))
        return jsonify(topic.model_dump(mode="json"))

    @app.route("/api/topics/<topic_id>", methods=["DELETE"])
    def delete_topic(topic_id: str):
        topics.delete_topic(topic_id)
        return jsonify({"deleted": topic_id})

    # ── Questions API ──────────────────────────────────────────────────────

    @app.route("/api/topics/<topic_id>/questions")
    def list_questions(topic_id: str):
        """Return a topic's questions, filtered when ?q= or ?difficulty= is set.

        Served from the read cache, including the 404 for an unknown topic.
        """
        q = request.args.get("q", "")
        difficulty = request.args.get("difficulty", ALL_DIFFICULTIES)
        if q.strip() or difficulty != ALL_DIFFICULTIES:
            limit = request.args.get("limit", default=100, type=int)
            found = questions.find_questions(topic_id, q, difficulty, limit)
        else:
            found = questions.list_questions(topic_id)
        return jsonify({"questions": _dump(found)})

    @app.route("/api/topics/<topic_id>/questions/search")
    def search_questions(topic_id: str):
        """Paginated search.

        Query params:
          q           text contained in question, answer or a keyword
          difficulty  easy | moderate | hard | all (default)
          limit       page size (default 20)
          offset      items to skip (default 0)
        """
        topics.get_topic(topic_id)
        params = SearchParams(
            query=request.args.get("q", ""),
            difficulty=request.args.get("difficulty", ALL_DIFFICULTIES),
            limit=request.args.get("limit", default=20, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
        result = questions.search_questions_paginated(topic_id, params)
        return jsonify(result.model_dump(mode="json"))

    @app.route("/api/topics/<topic_id>/questions", methods=["POST"])
    def add_question(topic_id: str):
        form = QuestionForm.model_validate(_body())
        topic = questions.add_question_to_topic(topic_id, form)
        return jsonify(topic.model_dump(mode="json")), 201

    @app.route("/api/topics/<topic_id>/questions/<question_id>", methods=["PATCH"])
    def update_question(topic_id: str, question_id: str):
        patch = QuestionPatch.model_validate(_body())
        question = questions.update_question(topic_id, question_id, patch)
        return jsonify(question.model_dump(mode="json"))

    @app.route("/api/topics/<topic_id>/questions/<question_id>", methods=["DELETE"])
    def delete_question(topic_id: str, question_id: str):
        state = questions.delete_question(topic_id, question_id)
        if state.success:
            return jsonify(state.model_dump())
        status = 404 if state.error in ("Topic not found", "Question not found") else 500
        return jsonify(state.model_dump()), status

    return app


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    create_app(settings).run(debug=settings.debug, host="0.0.0.0", port=settings.port)
