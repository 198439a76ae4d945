"""
cardkeep local API
------------------
JSON API over a CardBoard, for a local UI or scripts.

API:
    GET    /api/cards                 → { cards, count }   (filter/sort via query args)
    POST   /api/cards                 → { card }           201
    GET    /api/cards/<id>            → { card }
    PUT    /api/cards/<id>            → { card }           (partial update)
    DELETE /api/cards/<id>            → { deleted }
    POST   /api/cards/bulk-delete     → { deleted }        body: { ids: [...] }
    GET    /api/categories            → { categories }
    POST   /api/categories            → { category }       201
    PUT    /api/categories/<id>       → { category }
    DELETE /api/categories/<id>       → { deleted }
    GET    /api/tags                  → { tags }
    GET    /api/stats                 → board statistics
    GET    /api/export                → backup document (attachment)
    POST   /api/import                → import result      body: raw backup JSON
    POST   /api/clear                 → { cleared }

Query args for GET /api/cards:
    search, category*, tag*, priority*, show_completed, due_from, due_to,
    sort (title|priority|dueDate|createdAt|updatedAt), order (asc|desc)
    (* = repeatable)

Mutating routes require an X-API-Key header when api_secret is configured.
"""
import hmac
import json
import logging
from functools import wraps
from typing import Optional

from flask import Flask, Response, jsonify, request

from .board import CardBoard
from .config import Config
from .errors import PersistenceFailed, ValidationError
from .schema import FilterSpec, Priority, SortKey, SortOrder, SortSpec, parse_datetime, utc_now
from .transfer import backup_filename

logger = logging.getLogger(__name__)


def _truthy(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


def _filters_from_args(args) -> FilterSpec:
    """Build a FilterSpec from request query args. Raises ValidationError."""
    try:
        due_from = parse_datetime(args.get("due_from"))
        due_to = parse_datetime(args.get("due_to"))
    except ValueError:
        raise ValidationError("due_date", "Invalid due date range") from None
    return FilterSpec(
        search=args.get("search", ""),
        categories=args.getlist("category"),
        tags=args.getlist("tag"),
        priorities=[Priority.parse(p) for p in args.getlist("priority")],
        show_completed=_truthy(args.get("show_completed"), True),
        due_from=due_from,
        due_to=due_to,
    )


def _sort_from_args(args, fallback: SortSpec) -> SortSpec:
    key = args.get("sort")
    order = args.get("order")
    return SortSpec(
        key=SortKey.from_str(key) if key else fallback.key,
        order=SortOrder.from_str(order) if order else fallback.order,
    )


def create_app(board: CardBoard, config: Optional[Config] = None) -> Flask:
    """Build the Flask app around an existing board."""
    config = config or Config()
    app = Flask(__name__)
    app.config["CARDKEEP_BOARD"] = board

    # ── Auth ─────────────────────────────────────────────────────────────────

    def require_api_key(f):
        """Decorator: reject requests without a valid X-API-Key header."""
        @wraps(f)
        def decorated(*args, **kwargs):
            if not config.api_secret:
                return f(*args, **kwargs)
            provided = request.headers.get("X-API-Key", "").strip()
            if not hmac.compare_digest(provided, config.api_secret):
                code = 401 if not provided else 403
                return jsonify({"error": "Unauthorized"}), code
            return f(*args, **kwargs)
        return decorated

    # ── Error mapping ────────────────────────────────────────────────────────

    @app.errorhandler(ValidationError)
    def handle_validation(e: ValidationError):
        return jsonify({"error": e.message, "field": e.field}), 400

    @app.errorhandler(PersistenceFailed)
    def handle_persistence(e: PersistenceFailed):
        logger.error("Persistence failure: %s", e)
        return jsonify({"error": str(e)}), 507

    def _body() -> dict:
        data = request.get_json(force=True, silent=True)
        if not isinstance(data, dict):
            raise ValidationError("body", "Request body must be a JSON object")
        return data

    # ── Cards ────────────────────────────────────────────────────────────────

    @app.route("/api/cards", methods=["GET"])
    def api_cards():
        filters = _filters_from_args(request.args)
        sort = _sort_from_args(request.args, board.sort)
        cards = [c.to_dict() for c in board.query(filters, sort)]
        return jsonify({"cards": cards, "count": len(cards)})

    @app.route("/api/cards", methods=["POST"])
    @require_api_key
    def api_create_card():
        card = board.create_card(_body())
        return jsonify({"card": card.to_dict()}), 201

    @app.route("/api/cards/<card_id>", methods=["GET"])
    def api_get_card(card_id):
        card = board.get_card(card_id)
        if not card:
            return jsonify({"error": "Card not found"}), 404
        return jsonify({"card": card.to_dict()})

    @app.route("/api/cards/<card_id>", methods=["PUT"])
    @require_api_key
    def api_update_card(card_id):
        card = board.update_card(card_id, _body())
        if not card:
            return jsonify({"error": "Card not found"}), 404
        return jsonify({"card": card.to_dict()})

    @app.route("/api/cards/<card_id>", methods=["DELETE"])
    @require_api_key
    def api_delete_card(card_id):
        if not board.delete_card(card_id):
            return jsonify({"error": "Card not found"}), 404
        return jsonify({"deleted": 1})

    @app.route("/api/cards/bulk-delete", methods=["POST"])
    @require_api_key
    def api_bulk_delete():
        ids = _body().get("ids")
        if not isinstance(ids, list):
            raise ValidationError("ids", "ids must be a list")
        return jsonify({"deleted": board.delete_cards(str(i) for i in ids)})

    # ── Categories ───────────────────────────────────────────────────────────

    @app.route("/api/categories", methods=["GET"])
    def api_categories():
        return jsonify({"categories": [c.to_dict() for c in board.categories]})

    @app.route("/api/categories", methods=["POST"])
    @require_api_key
    def api_create_category():
        category = board.create_category(_body())
        return jsonify({"category": category.to_dict()}), 201

    @app.route("/api/categories/<category_id>", methods=["PUT"])
    @require_api_key
    def api_update_category(category_id):
        category = board.update_category(category_id, _body())
        if not category:
            return jsonify({"error": "Category not found"}), 404
        return jsonify({"category": category.to_dict()})

    @app.route("/api/categories/<category_id>", methods=["DELETE"])
    @require_api_key
    def api_delete_category(category_id):
        if not board.delete_category(category_id):
            return jsonify({"error": "Category not found"}), 404
        return jsonify({"deleted": 1})

    # ── Aggregates ───────────────────────────────────────────────────────────

    @app.route("/api/tags")
    def api_tags():
        return jsonify({"tags": board.unique_tags})

    @app.route("/api/stats")
    def api_stats():
        return jsonify(board.stats())

    # ── Import / export ──────────────────────────────────────────────────────

    @app.route("/api/export")
    def api_export():
        now = utc_now()
        body = json.dumps(board.export_document(), indent=2)
        return Response(
            body,
            mimetype="application/json",
            headers={"Content-Disposition": f"attachment; filename={backup_filename(now)}"},
        )

    @app.route("/api/import", methods=["POST"])
    @require_api_key
    def api_import():
        result = board.import_document(request.get_data(as_text=True))
        return jsonify(result.to_dict()), (200 if result.success else 400)

    @app.route("/api/clear", methods=["POST"])
    @require_api_key
    def api_clear():
        board.clear_all_data()
        return jsonify({"cleared": True})

    return app
