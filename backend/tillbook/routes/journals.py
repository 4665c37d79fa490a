# Overview: Flask API routes for journal posting, reversal and the posting queue.

# backend/tillbook/routes/journals.py

from flask import Blueprint, g, jsonify, request

from ..decorators import error_response, require_actor
from ..models import JournalLockedError, JournalSource
from ..services import journal_service
from ..services.account_service import AccountNotFoundError
from ..services.journal_service import SourceNotFoundError
from ..services.posting_rules import PostingError
from tillbook.time_utils import parse_iso_date
from tillbook.validation import ValidationError

journals_bp = Blueprint("journals", __name__, url_prefix="/api/journals")

_NOT_FOUND = (SourceNotFoundError,)
_CONFLICT = (PostingError, AccountNotFoundError, JournalLockedError)


@journals_bp.get("")
@require_actor
def list_journals_route():
    """Query: source (SALE|EXPENSE|SHIFT|ADJUST|RECON), limit, lines=1."""
    try:
        journals = journal_service.list_journals(
            source=request.args.get("source"),
            limit=request.args.get("limit", 100, type=int),
        )
        include_lines = request.args.get("lines") in ("1", "true")
        return jsonify({"journals": [j.to_dict(include_lines=include_lines) for j in journals]}), 200
    except Exception as e:
        return error_response(e, action="list journals")


@journals_bp.get("/trial-balance")
@require_actor
def trial_balance_route():
    """Query: as_of (YYYY-MM-DD, optional; journals dated on or before it)."""
    try:
        try:
            as_of = parse_iso_date(request.args.get("as_of"))
        except ValueError:
            raise ValidationError("as_of must be YYYY-MM-DD")
        return jsonify(journal_service.trial_balance(as_of)), 200
    except Exception as e:
        return error_response(e, action="build trial balance")


@journals_bp.get("/<int:journal_id>")
@require_actor
def get_journal_route(journal_id: int):
    try:
        journal = journal_service.get_journal(journal_id)
        if journal is None:
            return jsonify({"error": f"Journal {journal_id} not found"}), 404
        return jsonify({"journal": journal.to_dict(include_lines=True)}), 200
    except Exception as e:
        return error_response(e, action="load journal")


@journals_bp.post("/sales/<int:sale_id>")
@require_actor
def post_sale_route(sale_id: int):
    """Post one sale. 201 when a journal was written, 200 when already posted."""
    try:
        outcome = journal_service.post_sale(sale_id, actor_id=g.actor_id)
        return jsonify(outcome.to_dict()), 201 if outcome.created else 200
    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, conflict=_CONFLICT, action="post sale")


@journals_bp.post("/post-all")
@require_actor
def post_all_route():
    """
    Post every unposted record of a source.

    Request body (optional):
    {
        "source": "SALE" | "EXPENSE"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        source = data.get("source", "SALE")
        try:
            source = JournalSource(source)
        except ValueError:
            raise ValidationError(f"Invalid journal source: {source}")

        summary = journal_service.post_all(source, actor_id=g.actor_id)
        return jsonify(summary), 200
    except Exception as e:
        return error_response(e, action="post all journals")


@journals_bp.post("/<int:journal_id>/reverse")
@require_actor
def reverse_journal_route(journal_id: int):
    """
    Offset a posted journal with an ADJUST entry.

    Request body:
    {
        "reason": "Sale keyed twice"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        outcome = journal_service.reverse_journal(journal_id, data.get("reason") or "", actor_id=g.actor_id)
        return jsonify(outcome.to_dict()), 201 if outcome.created else 200
    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, conflict=_CONFLICT, action="reverse journal")


@journals_bp.get("/posting-requests")
@require_actor
def list_posting_requests_route():
    """Query: status (pending|posted|failed)."""
    try:
        rows = journal_service.list_posting_requests(request.args.get("status"))
        return jsonify({"posting_requests": [r.to_dict() for r in rows]}), 200
    except Exception as e:
        return error_response(e, action="list posting requests")


@journals_bp.post("/retry")
@require_actor
def retry_pending_route():
    try:
        return jsonify(journal_service.retry_pending()), 200
    except Exception as e:
        return error_response(e, action="retry postings")
