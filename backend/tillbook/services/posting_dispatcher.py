# Overview: Queue and dispatch journal postings without blocking the caller.

"""
Posting Dispatcher

WHY: A cashier must never wait on (or see a failure from) journal posting.
Checkout and reconciliation write a PostingRequest row in the same
transaction as the business record, then hand it to the dispatcher after
commit. Nothing is lost if the process dies: `flask journals retry` drains
whatever is still pending.

MODES (JOURNAL_POSTING_MODE):
- async: post on a background worker thread with its own app context/session
- sync: post in the calling request, after its commit
- deferred: queue only
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from flask import current_app

from ..extensions import db
from ..models import JournalSource, PostingRequest, PostingStatus
from . import journal_service

logger = logging.getLogger(__name__)

MODE_ASYNC = "async"
MODE_SYNC = "sync"
MODE_DEFERRED = "deferred"
VALID_MODES = (MODE_ASYNC, MODE_SYNC, MODE_DEFERRED)

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def enqueue(source: JournalSource, source_id: int) -> PostingRequest:
    """Record a pending posting inside the caller's transaction (no commit)."""
    request = db.session.query(PostingRequest).filter_by(source=source, source_id=source_id).first()
    if request is None:
        request = PostingRequest(source=source, source_id=source_id, status=PostingStatus.PENDING, attempts=0)
        db.session.add(request)
        db.session.flush()
    return request


def _get_executor(workers: int) -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="journal-posting")
        return _executor


def _run_in_app_context(app, source: JournalSource, source_id: int) -> None:
    with app.app_context():
        try:
            journal_service.process_request(source, source_id)
        except Exception:
            logger.exception("background posting of %s %s crashed", source.value, source_id)
        finally:
            db.session.remove()


def dispatch(source: JournalSource, source_id: int) -> Optional[Future]:
    """
    Hand a queued posting to the configured mode. Call after commit.

    Never raises for posting failures; those land on the PostingRequest row.
    """
    mode = current_app.config.get("JOURNAL_POSTING_MODE", MODE_ASYNC)
    if mode not in VALID_MODES:
        raise ValueError(f"Unknown JOURNAL_POSTING_MODE: {mode}")

    if mode == MODE_DEFERRED:
        logger.debug("posting %s %s deferred", source.value, source_id)
        return None

    if mode == MODE_SYNC:
        journal_service.process_request(source, source_id)
        return None

    app = current_app._get_current_object()
    executor = _get_executor(current_app.config.get("POSTING_WORKERS", 2))
    return executor.submit(_run_in_app_context, app, source, source_id)


def shutdown(wait: bool = True) -> None:
    """Stop the worker pool (tests, CLI teardown)."""
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None
