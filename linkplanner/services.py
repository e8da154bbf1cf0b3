"""Service functions behind the link planner views.

Launching a run snapshots the project settings, builds the page graph and
hands both to the planning engine; the candidates it returns are stored in
one transaction. The review functions then move candidates between
pending, approved and rejected until the run is published.
"""

from __future__ import annotations

import csv
import io
import logging
import secrets
from datetime import date, timedelta
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from .engine.config import (
    EngineConfig,
    build_run_config,
    build_settings,
    load_config,
    settings_to_dict,
    task_config_to_dict,
)
from .engine.corpus import build_graph
from .engine.errors import (
    ConcurrentRunError,
    CorpusEmptyError,
    EmptyScopeError,
    InvalidTransitionError,
    ReviewClosedError,
    ReviewIncompleteError,
    RunCancelledError,
    RunTimeoutError,
    StaleCandidateError,
    ValidationError,
)
from .engine.generators import Similarity
from .engine.pipeline import plan_links
from .engine.progress import PAGE_RESOLVED, ProgressEvent, ProgressSnapshot, ProgressStream
from .engine.runs import RunControl, RunStatus
from .engine.types import CandidateStatus, RejectionReason
from .models import LinkCandidate, ProjectSettings, Run
from .repositories import (
    CandidateFilter,
    CandidateRepository,
    PageRepository,
    RunRepository,
    SettingsRepository,
)

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ('source_url', 'target_url', 'anchor', 'type', 'status', 'rejection_reason')
EXPORT_HEADERS = ('Source URL', 'Target URL', 'Anchor text', 'Type', 'Status', 'Rejection reason')

# Progress rows are written on strategy events and every N resolved pages.
PROGRESS_PAGE_INTERVAL = 25

pages = PageRepository()
settings_store = SettingsRepository()
runs = RunRepository()
candidates = CandidateRepository()


@lru_cache(maxsize=1)
def get_engine_config() -> EngineConfig:
    return load_config(getattr(settings, 'LINKPLANNER_ENGINE_CONFIG', None))


def _run_timeout() -> float:
    return float(getattr(settings, 'LINKPLANNER_RUN_TIMEOUT', 300))


def _workers() -> int:
    return int(getattr(settings, 'LINKPLANNER_WORKERS', 4))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def get_settings(project_id: int) -> Dict[str, Any]:
    snapshot = settings_store.get_settings(project_id)
    return settings_to_dict(build_settings(snapshot, config=get_engine_config()))


def update_settings(project_id: int, data: Mapping[str, Any]) -> ProjectSettings:
    """Validate ``data`` over the current settings and save the result.

    Raises
    ------
    ValidationError
        With every invalid field when the merged settings do not validate.
    """

    unknown = sorted(set(data) - set(ProjectSettings.SNAPSHOT_FIELDS))
    if unknown:
        raise ValidationError({name: 'unknown setting' for name in unknown})

    merged = settings_store.get_settings(project_id)
    merged.update(data)
    validated = build_settings(merged, config=get_engine_config())

    values = settings_to_dict(validated)
    values['newer_than'] = validated.newer_than
    row = settings_store.save_settings(project_id, values)
    logger.info('updated planner settings for project %s', project_id)
    return row


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


def launch_run(
    project_id: int,
    enabled_strategies: Mapping[str, Any] | Iterable[str],
    settings_override: Mapping[str, Any] | None = None,
    *,
    seed: int | None = None,
    on_progress: Callable[[ProgressEvent], None] | None = None,
    today: date | None = None,
    similarity: Similarity | None = None,
) -> Run:
    """Plan links for a project and store them as a new run.

    Settings and strategies are validated before anything is written. Once
    the run exists, scope problems, timeouts, cancellation and storage
    errors leave it ``failed`` with the error recorded and the failed run
    is returned.

    Raises
    ------
    ValidationError
        Invalid settings or strategy options; no run is created.
    ConcurrentRunError
        Another run of the project is still running.
    CorpusEmptyError
        The project has fewer than two pages; the run is marked failed.
    """

    engine_config = get_engine_config()
    snapshot = settings_store.get_settings(project_id)
    snapshot.update(settings_override or {})
    global_settings, tasks = build_run_config(snapshot, enabled_strategies, config=engine_config)
    if seed is None:
        seed = secrets.randbelow(2**31)

    run_config = {
        'strategies': {name: task_config_to_dict(task) for name, task in tasks.items()},
        'settings': settings_to_dict(global_settings),
        'seed': seed,
    }
    run = _start_run(project_id, run_config, seed)
    logger.info('run %s started for project %s with %s', run.pk, project_id, ', '.join(sorted(tasks)))

    try:
        graph = build_graph(pages.list_pages(project_id))
    except CorpusEmptyError as exc:
        _fail_run(run, exc)
        raise

    stream = ProgressStream()
    snapshot_listener = ProgressSnapshot()
    stream.subscribe(snapshot_listener)
    stream.subscribe(_progress_writer(run.pk, snapshot_listener))
    if on_progress is not None:
        stream.subscribe(on_progress)
    control = RunControl(timeout=_run_timeout(), is_cancelled=lambda: runs.is_cancel_requested(run.pk))

    try:
        pages.record_graph(project_id, graph)
        result = plan_links(
            graph,
            tasks,
            global_settings,
            seed=seed,
            today=today or timezone.localdate(),
            prior_links=candidates.approved_for_project(project_id),
            similarity=similarity,
            stream=stream,
            control=control,
            workers=_workers(),
            config=engine_config,
        )
        with transaction.atomic():
            candidates.bulk_insert(run, result.candidates)
            runs.update_run_status(
                run,
                RunStatus.COMPLETED.value,
                stats=result.stats,
                progress=snapshot_listener.as_dict(),
                completed_at=timezone.now(),
            )
    except (EmptyScopeError, RunTimeoutError, RunCancelledError) as exc:
        return _fail_run(run, exc)
    except DatabaseError as exc:
        logger.exception('storing results for run %s failed', run.pk)
        return _fail_run(run, exc)
    except Exception as exc:
        _fail_run(run, exc)
        raise

    logger.info(
        'run %s completed: %s added, %s rejected',
        run.pk,
        result.stats.get('added'),
        result.stats.get('rejected'),
    )
    return run


def _start_run(project_id: int, run_config: Dict[str, Any], seed: int) -> Run:
    with transaction.atomic():
        project = runs.lock_project(project_id)
        _expire_stale_runs(project.pk)
        if runs.running_runs(project.pk).exists():
            raise ConcurrentRunError(f"project {project.pk} already has a running run")
        try:
            with transaction.atomic():
                run = runs.create_run(project, run_config, seed)
                return runs.update_run_status(run, RunStatus.RUNNING.value, started_at=timezone.now())
        except IntegrityError as exc:
            raise ConcurrentRunError(f"project {project.pk} already has a running run") from exc


def _expire_stale_runs(project_id: int) -> None:
    cutoff = timezone.now() - timedelta(seconds=_run_timeout())
    for stale in runs.running_runs(project_id).filter(started_at__lt=cutoff):
        logger.warning('run %s exceeded the run timeout while running; marking failed', stale.pk)
        runs.update_run_status(
            stale,
            RunStatus.FAILED.value,
            error='run did not finish before the timeout',
            completed_at=timezone.now(),
        )


def _fail_run(run: Run, exc: BaseException) -> Run:
    code = getattr(exc, 'code', type(exc).__name__)
    message = str(exc) or type(exc).__name__
    logger.warning('run %s failed (%s): %s', run.pk, code, message)
    run.refresh_from_db()
    return runs.update_run_status(
        run,
        RunStatus.FAILED.value,
        error=f"{code}: {message}",
        completed_at=timezone.now(),
    )


def _progress_writer(run_id: int, snapshot: ProgressSnapshot) -> Callable[[ProgressEvent], None]:
    def write(event: ProgressEvent) -> None:
        if event.kind == PAGE_RESOLVED and event.pages_done % PROGRESS_PAGE_INTERVAL:
            return
        runs.save_progress(run_id, snapshot.as_dict())

    return write


def cancel_run(run_id: int) -> Run:
    """Ask a running run to stop at its next checkpoint."""

    run = runs.get_run(run_id)
    if run.status != Run.Status.RUNNING:
        raise InvalidTransitionError(run.status, RunStatus.FAILED.value)
    Run.objects.filter(pk=run.pk).update(cancel_requested=True)
    run.cancel_requested = True
    logger.info('cancellation requested for run %s', run.pk)
    return run


def run_summary(run: Run) -> Dict[str, Any]:
    return {
        'id': run.pk,
        'project': run.project_id,
        'status': run.status,
        'seed': run.seed,
        'stats': run.stats,
        'progress': run.progress,
        'error': run.error,
        'cancel_requested': run.cancel_requested,
        'created_at': run.created_at.isoformat() if run.created_at else None,
        'started_at': run.started_at.isoformat() if run.started_at else None,
        'completed_at': run.completed_at.isoformat() if run.completed_at else None,
        'published_at': run.published_at.isoformat() if run.published_at else None,
    }


def get_run_status(run_id: int) -> Dict[str, Any]:
    run = runs.get_run(run_id)
    summary = run_summary(run)
    summary['config'] = run.config
    summary['candidates'] = candidates.count_by_status(run.pk)
    return summary


def list_runs(project_id: int) -> List[Dict[str, Any]]:
    return [run_summary(run) for run in runs.list_runs(project_id)]


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


def list_candidates(
    run_id: int,
    type: str | None = None,
    status: str | None = None,
    search: str | None = None,
) -> List[LinkCandidate]:
    runs.get_run(run_id)
    return list(candidates.list_by_run(run_id, CandidateFilter(type=type, status=status, search=search)))


def decide_candidate(candidate_id: int, decision: str, expected_version: int | None = None) -> LinkCandidate:
    """Approve or reject a candidate during review.

    Raises
    ------
    ReviewClosedError
        The candidate's run is not awaiting review.
    StaleCandidateError
        The candidate changed since ``expected_version`` was read.
    ValidationError
        Unknown decision, or approval of a candidate the resolver rejected.
    """

    if decision not in (CandidateStatus.APPROVED.value, CandidateStatus.REJECTED.value):
        raise ValidationError({'decision': 'must be approved or rejected'})

    candidate = candidates.get(candidate_id)
    if candidate.run.status != Run.Status.COMPLETED:
        raise ReviewClosedError(f"run {candidate.run_id} is {candidate.run.status}")
    if expected_version is not None and expected_version != candidate.version:
        raise StaleCandidateError(f"candidate {candidate.pk} is at version {candidate.version}")
    if decision == CandidateStatus.APPROVED.value and not candidate.admitted:
        raise ValidationError({'decision': f"rejected by the planner: {candidate.rejection_reason}"})
    if candidate.status == decision:
        return candidate

    reason = RejectionReason.MANUAL.value if decision == CandidateStatus.REJECTED.value else None
    updated = candidates.update_status(candidate, decision, rejection_reason=reason, expected_version=expected_version)
    logger.info('candidate %s %s', candidate.pk, decision)
    return updated


def approve_all_visible(
    run_id: int,
    type: str | None = None,
    status: str | None = None,
    search: str | None = None,
) -> int:
    """Approve the pending candidates matching the current review filter."""

    run = runs.get_run(run_id)
    if run.status != Run.Status.COMPLETED:
        raise ReviewClosedError(f"run {run.pk} is {run.status}")
    count = candidates.approve_pending(run.pk, CandidateFilter(type=type, status=status, search=search))
    logger.info('approved %s visible candidates on run %s', count, run.pk)
    return count


def publish_run(run_id: int) -> Run:
    """Publish a fully reviewed run; publishing twice is a no-op."""

    with transaction.atomic():
        run = runs.get_run(run_id, for_update=True)
        if run.status == Run.Status.PUBLISHED:
            return run
        counts = candidates.count_by_status(run.pk)
        pending = counts[CandidateStatus.PENDING.value]
        if run.status == Run.Status.COMPLETED and pending:
            raise ReviewIncompleteError(pending)
        stats = dict(run.stats or {})
        stats['approved'] = counts[CandidateStatus.APPROVED.value]
        runs.update_run_status(run, RunStatus.PUBLISHED.value, stats=stats, published_at=timezone.now())
    logger.info('run %s published with %s approved links', run.pk, stats['approved'])
    return run


def export_rows(run_id: int) -> List[Dict[str, Optional[str]]]:
    runs.get_run(run_id)
    return list(candidates.list_by_run(run_id).values(*EXPORT_COLUMNS))


def export_candidates(run_id: int) -> str:
    """CSV of every candidate in the run, whatever its status."""

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    for row in export_rows(run_id):
        writer.writerow([row[column] or '' for column in EXPORT_COLUMNS])
    return buffer.getvalue()
