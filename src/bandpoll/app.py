from __future__ import annotations

import html
import logging
from typing import Any, Dict, Optional, Sequence

import uvicorn
from fastapi import BackgroundTasks, FastAPI, Query, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, Response as RawResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .db import PollStore
from .errors import PollError, ValidationError
from .notifier import ResponseNotifier, build_notifier
from .polls.composition import cell_candidates, check_planning, compose, display_order, set_cell
from .polls.engine import apply_submission, check_token, create_poll, merge_roster
from .polls.export import export_filename, export_tsv
from .polls.results import ANSWER_SYMBOLS, availability_summary, summary_label
from .polls.schema import CellEdit, CreatePollRequest, PlanningUpdate, Poll, RosterUpdate, Submission, TokenBody
from .polls.schema import Response as PollResponse


logger = logging.getLogger(__name__)


def _supplied_token(request: Request, body: Optional[TokenBody] = None) -> Optional[str]:
    if body is not None and body.deletion_token:
        return body.deletion_token
    return request.headers.get("X-Poll-Token") or request.query_params.get("token")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[PollStore] = None,
    notifier: Optional[ResponseNotifier] = None,
) -> FastAPI:
    settings = settings or Settings()
    store = store or PollStore(settings.database_url)
    notifier = notifier or build_notifier(settings)
    priority = settings.priority_instrument_list

    app = FastAPI(title="Band Poll", version="0.1.0")
    app.state.settings = settings
    app.state.store = store
    app.state.notifier = notifier

    @app.on_event("startup")
    def _startup() -> None:
        store.open()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        store.close()

    @app.exception_handler(PollError)
    async def _poll_error(request: Request, exc: PollError) -> JSONResponse:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(SQLAlchemyError)
    async def _store_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.exception("Persistence failure on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/health")
    def health() -> JSONResponse:
        ok = store.health_check()
        return JSONResponse(
            {"status": "ok" if ok else "degraded"},
            status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    # -------------------- Polls --------------------

    @app.post("/api/polls", status_code=status.HTTP_201_CREATED)
    def create(req: CreatePollRequest) -> Dict[str, Any]:
        poll = create_poll(req)
        store.insert_poll(poll)
        return {"id": poll.id, "url": f"/poll/{poll.id}", "deletionToken": poll.deletion_token}

    @app.get("/api/polls/{poll_id}")
    def get_poll(poll_id: str) -> Dict[str, Any]:
        return store.load_poll(poll_id).public()

    @app.delete("/api/polls/{poll_id}")
    def delete_poll(poll_id: str, request: Request, body: Optional[TokenBody] = None) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        check_token(poll, _supplied_token(request, body))
        store.delete_poll(poll_id)
        return {"success": True, "message": "Poll deleted successfully"}

    @app.patch("/api/polls/{poll_id}")
    def update_roster(poll_id: str, body: RosterUpdate, request: Request) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        check_token(poll, _supplied_token(request, body))
        merged = merge_roster(poll.participants, poll.instruments, body.new_participants, body.new_instruments)
        store.replace_roster(poll_id, merged.participants, merged.instruments)
        logger.info(
            "Roster of poll %s: +%d participants, +%d instruments",
            poll_id,
            len(merged.added_participants),
            len(merged.added_instruments),
        )
        return {
            "success": True,
            "addedParticipants": merged.added_participants,
            "addedInstruments": merged.added_instruments,
            "participants": merged.participants,
            "instruments": merged.instruments,
        }

    @app.post("/api/polls/{poll_id}/respond")
    def respond(poll_id: str, body: Submission, background_tasks: BackgroundTasks) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        result = apply_submission(poll, body, require_upfront_instrument=settings.require_upfront_instrument)
        store.replace_responses(poll_id, result.responses)
        poll.responses = result.responses
        # Runs after the response is sent; failures never reach the participant
        background_tasks.add_task(notifier.notify_response, poll, result.response, result.is_update)
        return {"success": True, "poll": poll.public()}

    # -------------------- Planning --------------------

    @app.post("/api/polls/{poll_id}/planning/compose")
    def compose_planning(poll_id: str, request: Request, body: Optional[TokenBody] = None) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        check_token(poll, _supplied_token(request, body))
        planning = compose(poll, priority)
        return {"planning": {d: {i: a.to_wire() for i, a in row.items()} for d, row in planning.items()}}

    @app.put("/api/polls/{poll_id}/planning")
    def save_planning(poll_id: str, body: PlanningUpdate, request: Request) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        check_token(poll, _supplied_token(request, body))
        store.replace_planning(poll_id, check_planning(poll, body.planning))
        return {"success": True}

    @app.patch("/api/polls/{poll_id}/planning/cell")
    def edit_cell(poll_id: str, body: CellEdit, request: Request) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        check_token(poll, _supplied_token(request, body))
        planning = set_cell(poll, poll.planning, body.date, body.instrument, body.assignment)
        store.replace_planning(poll_id, planning)
        cell = planning.get(body.date, {}).get(body.instrument)
        return {"success": True, "assignment": cell.to_wire() if cell else None}

    @app.get("/api/polls/{poll_id}/planning/candidates")
    def candidates(poll_id: str, date: str = Query(...), instrument: str = Query(...)) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        if date not in poll.dates:
            raise ValidationError(f"Unknown date: {date}")
        if instrument not in poll.instruments:
            raise ValidationError(f"Unknown instrument: {instrument}")
        return {"candidates": [c.model_dump() for c in cell_candidates(poll, date, instrument)]}

    @app.get("/api/polls/{poll_id}/export.tsv")
    def export(poll_id: str) -> RawResponse:
        poll = store.load_poll(poll_id)
        return RawResponse(
            content=export_tsv(poll),
            media_type="text/tab-separated-values; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{export_filename(poll)}"'},
        )

    @app.get("/api/polls/{poll_id}/summary")
    def summary(poll_id: str) -> Dict[str, Any]:
        poll = store.load_poll(poll_id)
        return {"responseCount": len(poll.responses), "summary": availability_summary(poll)}

    @app.get("/poll/{poll_id}/results", response_class=HTMLResponse)
    def results_page(poll_id: str) -> str:
        return render_results_page(store.load_poll(poll_id))

    @app.get("/poll/{poll_id}/planning", response_class=HTMLResponse)
    def planning_page(poll_id: str) -> str:
        return render_planning_page(store.load_poll(poll_id), priority)

    return app


def _render_cell(poll: Poll, date: str, instrument: str) -> str:
    assignment = (poll.planning or {}).get(date, {}).get(instrument)
    if not assignment or not assignment.name:
        return "<span class='empty'>—</span>"
    name = html.escape(assignment.name)
    if assignment.is_guest:
        return f"<span class='guest'>{name}</span>"
    if not assignment.certain:
        return f"<span class='uncertain'>[{name}]</span>"
    return f"<span class='confirmed'>{name}</span>"


def render_planning_page(poll: Poll, priority: Sequence[str]) -> str:
    instruments = display_order(poll.instruments, priority)
    head = "".join(f"<th>{html.escape(i)}</th>" for i in instruments)
    rows = []
    for d in poll.dates:
        cells = "".join(f"<td>{_render_cell(poll, d, i)}</td>" for i in instruments)
        rows.append(f"<tr><td class='date'>{d}</td>{cells}</tr>")
    body = "".join(rows)
    title = html.escape(poll.title)
    note = "" if poll.planning else "<p class='muted'>No planning saved yet.</p>"
    return f"""
    <html>
      <head>
        <meta charset='utf-8' />
        <title>Planning — {title}</title>
        <style>
          body {{ font-family: system-ui, sans-serif; padding: 20px; }}
          table {{ border-collapse: collapse; width: 100%; }}
          th, td {{ border: 1px solid #ddd; padding: 8px; }}
          th {{ background: #f6f6f6; text-align: left; }}
          .muted, .empty {{ color: #888; }}
          .guest {{ color: #7c3aed; }}
          .uncertain {{ color: #b45309; }}
          .confirmed {{ font-weight: 600; }}
        </style>
      </head>
      <body>
        <h1>Planning — {title}</h1>
        {note}
        <table>
          <thead><tr><th>Date</th>{head}</tr></thead>
          <tbody>{body}</tbody>
        </table>
      </body>
    </html>
    """


def _render_answer(response: PollResponse, date: str) -> str:
    answer = response.answers.get(date, "no")
    symbol = ANSWER_SYMBOLS.get(answer, ANSWER_SYMBOLS["no"])
    chosen = response.instruments_on(date)
    if not chosen:
        return f"<td class='answer-{answer}'>{symbol}</td>"
    names = html.escape(", ".join(chosen))
    return f"<td class='answer-{answer}'>{symbol}<br><span class='muted'>{names}</span></td>"


def render_results_page(poll: Poll) -> str:
    title = html.escape(poll.title)
    head = "".join(f"<th>{d}</th>" for d in poll.dates)
    rows = []
    for r in poll.responses:
        cells = "".join(_render_answer(r, d) for d in poll.dates)
        rows.append(f"<tr><td>{html.escape(r.name)}</td>{cells}</tr>")
    body = "".join(rows)
    counts = availability_summary(poll)
    totals = "".join(f"<td><strong>{summary_label(counts[d])}</strong></td>" for d in poll.dates)
    if not poll.responses:
        table = "<p class='muted'>No responses yet.</p>"
    else:
        table = f"""
        <table>
          <thead><tr><th>Name</th>{head}</tr></thead>
          <tbody>{body}</tbody>
          <tfoot><tr><td><strong>Available</strong></td>{totals}</tr></tfoot>
        </table>
        """
    return f"""
    <html>
      <head>
        <meta charset='utf-8' />
        <title>Results — {title}</title>
        <style>
          body {{ font-family: system-ui, sans-serif; padding: 20px; }}
          table {{ border-collapse: collapse; width: 100%; }}
          th, td {{ border: 1px solid #ddd; padding: 8px; text-align: center; }}
          th {{ background: #f6f6f6; }}
          .muted {{ color: #888; font-size: 0.8em; }}
          .answer-yes {{ color: #15803d; }}
          .answer-ifneeded {{ color: #b45309; }}
          .answer-no {{ color: #b91c1c; }}
        </style>
      </head>
      <body>
        <h1>Results — {title}</h1>
        <p>{len(poll.responses)} response(s)</p>
        {table}
      </body>
    </html>
    """


async def run_server(settings: Optional[Settings] = None) -> None:
    settings = settings or Settings()
    app = create_app(settings)
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()
