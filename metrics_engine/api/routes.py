from datetime import date, timedelta
from typing import Any
from fastapi import APIRouter, BackgroundTasks, Body, HTTPException, Response
from .schemas import EventAck, MetricRun, OpenDayResponse, ReportResponse, SourceEvent, StatusResponse
from ..pipeline.errors import RuleConfigError
from ..pipeline.orchestrator import trigger_run, get_status, get_snapshots, open_today
from ..pipeline.report import build_report, report_frame, report_rows_json
from ..pipeline.repository import (
    delete_rule_set,
    get_rule_set,
    last_run,
    load_display_items,
    load_rule_sets,
    save_display_items,
    save_rule_set,
)
from ..pipeline.rules import dump_display_items, dump_rule_set, parse_display_items, parse_rule_set
from ..pipeline.values import dump_columns
from ..config import settings
from ..db import get_conn, migrate
from ..utils import day_range, local_today

router = APIRouter()

def _conn():
    conn = get_conn(settings.db_path)
    migrate(conn)
    return conn

def _parse_day(value: str, name: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(400, f'{name} must be YYYY-MM-DD')

def _report_window(start: str | None, end: str | None) -> list[date]:
    end_day = _parse_day(end, 'end') if end else local_today(settings.local_tz)
    if start:
        start_day = _parse_day(start, 'start')
    else:
        start_day = end_day - timedelta(days=max(settings.report_default_days, 1) - 1)
    if start_day > end_day:
        raise HTTPException(400, 'start must be <= end')
    if (end_day - start_day).days + 1 > settings.report_max_days:
        raise HTTPException(400, f'report window is limited to {settings.report_max_days} days')
    return day_range(start_day, end_day)

@router.get(
    '/health',
    summary="Health check",
    description="Returns service and DB connectivity plus last run metadata.",
    tags=["Health"],
)
def health():
    try:
        conn = _conn()
        return {'ok': True, 'db': 'ok', 'last_run': last_run(conn)}
    except Exception as e:
        raise HTTPException(503, f'db_error: {e}')

@router.post(
    '/metrics/refresh',
    response_model=MetricRun,
    status_code=202,
    summary="Refresh metrics",
    description="Recomputes every tracked column for the day (default: today) in the background.",
    tags=["Metrics"],
)
def refresh(background: BackgroundTasks, day: str | None = None):
    target = _parse_day(day, 'day') if day else None
    run_id = trigger_run(background, trigger="refresh", day=target)
    return MetricRun(run_id=run_id)

@router.post(
    '/metrics/events',
    response_model=EventAck,
    status_code=202,
    summary="Source row changed",
    description="Inbound change event from a source table; triggers a run when a rule-set reads that table.",
    tags=["Metrics"],
)
def source_event(event: SourceEvent, background: BackgroundTasks):
    tables = {rs.source_table for rs in load_rule_sets(_conn())}
    if event.table not in tables:
        return EventAck(ignored=True)
    run_id = trigger_run(background, trigger=f"event:{event.table}")
    return EventAck(run_id=run_id)

@router.post(
    '/metrics/open-day',
    response_model=OpenDayResponse,
    summary="Open today's snapshot",
    description="Creates today's empty snapshot row if it does not exist yet.",
    tags=["Metrics"],
)
def open_day_route():
    today = local_today(settings.local_tz)
    created = open_today(_conn(), today)
    return OpenDayResponse(as_of_date_local=today.isoformat(), created=created)

@router.get(
    '/status/{run_id}',
    response_model=StatusResponse,
    summary="Get run status",
    description="Return run ledger entry for a given run_id.",
    tags=["Metrics"],
)
def status(run_id: str):
    st = get_status(run_id)
    if not st:
        raise HTTPException(404, 'run not found')
    return st

@router.get(
    '/snapshots/{day}',
    summary="Get daily snapshot",
    description="Returns the stored column values for one local day.",
    tags=["Snapshots"],
)
def snapshot(day: str):
    target = _parse_day(day, 'day')
    snap = get_snapshots(target, target).get(target)
    if not snap:
        raise HTTPException(404, 'snapshot not found')
    return {
        'as_of_date_local': target.isoformat(),
        'updated_at_utc': snap.updated_at_utc,
        'columns': dump_columns(snap.columns),
    }

@router.get(
    '/report',
    response_model=ReportResponse,
    summary="Metrics report",
    description="Rolls stored snapshots up through the display items. Days default to the last REPORT_DEFAULT_DAYS.",
    tags=["Report"],
)
def report(start: str | None = None, end: str | None = None):
    days = _report_window(start, end)
    items = load_display_items(_conn())
    rows = build_report(items, get_snapshots(days[0], days[-1]), days)
    return {'days': [d.isoformat() for d in days], 'rows': report_rows_json(rows)}

@router.get(
    '/report.csv',
    summary="Metrics report (CSV)",
    description="Same as /report, transposed into a CSV table with one column per day.",
    tags=["Report"],
)
def report_csv(start: str | None = None, end: str | None = None):
    days = _report_window(start, end)
    items = load_display_items(_conn())
    rows = build_report(items, get_snapshots(days[0], days[-1]), days)
    csv = report_frame(rows, days).to_csv(index=False)
    return Response(content=csv, media_type="text/csv")

@router.get(
    '/rules',
    summary="List rule-sets",
    tags=["Rules"],
)
def list_rules():
    return [dump_rule_set(rs) for rs in load_rule_sets(_conn())]

@router.get(
    '/rules/{column}',
    summary="Get rule-set",
    tags=["Rules"],
)
def read_rules(column: str):
    try:
        rule_set = get_rule_set(_conn(), column)
    except RuleConfigError as e:
        raise HTTPException(500, f'stored rule-set invalid: {e}')
    if not rule_set:
        raise HTTPException(404, 'rule-set not found')
    return dump_rule_set(rule_set)

@router.put(
    '/rules/{column}',
    summary="Save rule-set",
    description="Validates and stores the rule-set for a metric column.",
    tags=["Rules"],
)
def write_rules(column: str, payload: dict[str, Any] = Body(...)):
    if payload.get('column') not in (None, column):
        raise HTTPException(400, 'column in body does not match path')
    try:
        rule_set = parse_rule_set(payload, column=column)
    except RuleConfigError as e:
        raise HTTPException(422, str(e))
    save_rule_set(_conn(), rule_set)
    return dump_rule_set(rule_set)

@router.delete(
    '/rules/{column}',
    summary="Delete rule-set",
    tags=["Rules"],
)
def remove_rules(column: str):
    if not delete_rule_set(_conn(), column):
        raise HTTPException(404, 'rule-set not found')
    return {'ok': True}

@router.get(
    '/display',
    summary="Get display items",
    tags=["Report"],
)
def read_display():
    return dump_display_items(load_display_items(_conn()))

@router.put(
    '/display',
    summary="Save display items",
    tags=["Report"],
)
def write_display(payload: list[dict[str, Any]] = Body(...)):
    try:
        items = parse_display_items(payload)
    except RuleConfigError as e:
        raise HTTPException(422, str(e))
    save_display_items(_conn(), items)
    return dump_display_items(items)
