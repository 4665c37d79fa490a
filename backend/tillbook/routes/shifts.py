# Overview: Flask API routes for shift, cash ledger and reconciliation operations.

# backend/tillbook/routes/shifts.py
"""
Shift & Till API Routes

WHY: A cashier opens a shift with a float, moves cash in and out of the
till, counts the drawer, and closes the shift. Every response that changes
the till carries the new balance snapshot (with its sequence) so the
screen can update without a second request.

Endpoints:
- POST /api/shifts                         start shift
- GET  /api/shifts                         list shifts
- GET  /api/shifts/active                  acting cashier's active shift
- GET  /api/shifts/<id>                    summary
- POST /api/shifts/<id>/end                end shift (optional closing count)
- GET  /api/shifts/<id>/balance            balance snapshot (polling fallback)
- GET  /api/shifts/<id>/events             balance snapshots as Server-Sent Events
- GET  /api/shifts/<id>/transactions       cash ledger
- POST /api/shifts/<id>/cash-in            pay-in
- POST /api/shifts/<id>/cash-out           pay-out
- POST /api/shifts/<id>/reconcile          cash count
- GET  /api/shifts/<id>/reconciliations    count history
"""

import json
import queue

from flask import Blueprint, Response, current_app, g, jsonify, request

from ..decorators import error_response, require_actor
from ..services import cash_ledger_service, reconciliation_service, shift_feed, shift_service
from ..services.shift_service import (
    NoActiveShiftError, ShiftAlreadyActiveError, ShiftNotFoundError,
)
from tillbook.validation import ValidationError, parse_cents

shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")

_NOT_FOUND = (ShiftNotFoundError,)
_CONFLICT = (ShiftAlreadyActiveError, NoActiveShiftError)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


# =============================================================================
# LIFECYCLE
# =============================================================================

@shifts_bp.post("")
@require_actor
def start_shift_route():
    """
    Start a shift for the acting cashier.

    Request body:
    {
        "float_cents": 100000
    }
    """
    try:
        data = _json_body()
        float_cents = parse_cents("float_cents", data.get("float_cents", 0), allow_zero=True)

        shift = shift_service.start_shift(g.actor_id, float_cents)
        snapshot = shift_feed.snapshot_for(shift.id)

        return jsonify({"shift": shift.to_dict(), "balance": snapshot.to_dict()}), 201

    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, conflict=_CONFLICT, action="start shift")


@shifts_bp.get("")
@require_actor
def list_shifts_route():
    """List shifts. Query: cashier_id, status (active|ended), limit."""
    try:
        shifts = shift_service.list_shifts(
            cashier_id=request.args.get("cashier_id"),
            status=request.args.get("status"),
            limit=request.args.get("limit", 50, type=int),
        )
        return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200
    except Exception as e:
        return error_response(e, action="list shifts")


@shifts_bp.get("/active")
@require_actor
def active_shift_route():
    """The acting cashier's active shift with its balance, or null."""
    try:
        shift = shift_service.get_active_shift(g.actor_id)
        if shift is None:
            return jsonify({"shift": None, "balance": None}), 200
        snapshot = shift_feed.snapshot_for(shift.id)
        return jsonify({"shift": shift.to_dict(), "balance": snapshot.to_dict()}), 200
    except Exception as e:
        return error_response(e, action="load active shift")


@shifts_bp.get("/<int:shift_id>")
@require_actor
def shift_summary_route(shift_id: int):
    try:
        return jsonify(shift_service.get_shift_summary(shift_id)), 200
    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, action="load shift")


@shifts_bp.post("/<int:shift_id>/end")
@require_actor
def end_shift_route(shift_id: int):
    """
    End a shift.

    Request body (optional):
    {
        "counted_cash_cents": 125000   (closing count; variance is posted)
    }
    """
    try:
        data = _json_body()
        counted = data.get("counted_cash_cents")
        if counted is not None:
            counted = parse_cents("counted_cash_cents", counted, allow_zero=True)

        shift = shift_service.end_shift(shift_id, actor_id=g.actor_id, counted_cash_cents=counted)
        closing = shift_service.get_closing_reconciliation(shift_id)

        return jsonify({
            "shift": shift.to_dict(),
            "closing_reconciliation": closing.to_dict() if closing else None,
            "balance": shift_feed.snapshot_for(shift_id).to_dict(),
        }), 200

    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, conflict=_CONFLICT, action="end shift")


# =============================================================================
# BALANCE
# =============================================================================

@shifts_bp.get("/<int:shift_id>/balance")
@require_actor
def shift_balance_route(shift_id: int):
    try:
        shift_service.get_shift(shift_id)
        return jsonify(shift_feed.snapshot_for(shift_id).to_dict()), 200
    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, action="compute balance")


def _sse_event(snapshot: shift_feed.BalanceSnapshot) -> str:
    return f"id: {snapshot.sequence}\nevent: balance\ndata: {json.dumps(snapshot.to_dict())}\n\n"


@shifts_bp.get("/<int:shift_id>/events")
@require_actor
def shift_events_route(shift_id: int):
    """
    Stream balance snapshots as Server-Sent Events.

    The current snapshot is sent first, then one event per committed ledger
    change. Comment lines keep idle connections open. Query max_events
    closes the stream after that many events.
    """
    try:
        shift_service.get_shift(shift_id)
        initial = shift_feed.snapshot_for(shift_id)
    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, action="open balance stream")

    keepalive = current_app.config.get("SHIFT_FEED_KEEPALIVE_SECONDS", 15)
    max_events = request.args.get("max_events", type=int)
    subscription = shift_feed.feed.subscribe(shift_id)

    def stream():
        sent = 0
        try:
            yield _sse_event(initial)
            sent += 1
            while max_events is None or sent < max_events:
                try:
                    snapshot = subscription.get(timeout=keepalive)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield _sse_event(snapshot)
                sent += 1
        finally:
            shift_feed.feed.unsubscribe(shift_id, subscription)

    return Response(
        stream(),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# =============================================================================
# CASH LEDGER
# =============================================================================

@shifts_bp.get("/<int:shift_id>/transactions")
@require_actor
def shift_transactions_route(shift_id: int):
    """Cash ledger of a shift. Query: type."""
    try:
        shift_service.get_shift(shift_id)
        entries = cash_ledger_service.list_entries(shift_id, request.args.get("type"))
        return jsonify({"transactions": [e.to_dict() for e in entries]}), 200
    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, action="list cash transactions")


def _record_movement(shift_id: int, recorder, action: str):
    try:
        data = _json_body()
        amount_cents = parse_cents("amount_cents", data.get("amount_cents"))
        description = (data.get("description") or "").strip()

        entry = recorder(shift_id, amount_cents, description, actor_id=g.actor_id)
        snapshot = shift_feed.snapshot_for(shift_id)

        return jsonify({"transaction": entry.to_dict(), "balance": snapshot.to_dict()}), 201

    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, conflict=_CONFLICT, action=action)


@shifts_bp.post("/<int:shift_id>/cash-in")
@require_actor
def cash_in_route(shift_id: int):
    """
    Request body:
    {
        "amount_cents": 50000,
        "description": "Change from safe"
    }
    """
    return _record_movement(shift_id, cash_ledger_service.record_cash_in, "record cash in")


@shifts_bp.post("/<int:shift_id>/cash-out")
@require_actor
def cash_out_route(shift_id: int):
    """
    Request body:
    {
        "amount_cents": 20000,
        "description": "Cash drop"
    }
    """
    return _record_movement(shift_id, cash_ledger_service.record_cash_out, "record cash out")


# =============================================================================
# RECONCILIATION
# =============================================================================

@shifts_bp.post("/<int:shift_id>/reconcile")
@require_actor
def reconcile_route(shift_id: int):
    """
    Reconcile a physical count.

    Request body:
    {
        "declared_cents": 125000
    }
    """
    try:
        data = _json_body()
        declared = parse_cents("declared_cents", data.get("declared_cents"), allow_zero=True)

        result = reconciliation_service.reconcile(shift_id, declared, actor_id=g.actor_id)
        return jsonify(result.to_dict()), 201

    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, conflict=_CONFLICT, action="reconcile cash")


@shifts_bp.get("/<int:shift_id>/reconciliations")
@require_actor
def list_reconciliations_route(shift_id: int):
    try:
        shift_service.get_shift(shift_id)
        rows = reconciliation_service.list_reconciliations(shift_id=shift_id)
        return jsonify({"reconciliations": [r.to_dict() for r in rows]}), 200
    except Exception as e:
        return error_response(e, not_found=_NOT_FOUND, action="list reconciliations")
