"""Django ORM storage for pages, settings, runs and candidates.

The services talk to the database only through these classes, which keeps
the engine free of Django imports and gives tests one seam to reason about.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from .engine.config import DEFAULTS
from .engine.corpus import PageGraph, normalize_url
from .engine.errors import StaleCandidateError
from .engine.runs import transition
from .engine.types import CandidateStatus, Decision, LinkAction, PriorLink, RejectionReason
from .models import LinkCandidate, Page, Project, ProjectSettings, Run


@dataclass(frozen=True)
class CandidateFilter:
    """Review-screen filter: strategy type, status and a free-text search."""

    type: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None

    def apply(self, queryset: models.QuerySet) -> models.QuerySet:
        if self.type:
            queryset = queryset.filter(type=self.type)
        if self.status:
            queryset = queryset.filter(status=self.status)
        if self.search:
            term = self.search.strip()
            queryset = queryset.filter(
                Q(source_url__icontains=term) | Q(target_url__icontains=term) | Q(anchor__icontains=term)
            )
        return queryset


class PageRepository:
    def list_pages(self, project_id: int) -> List[Dict[str, Any]]:
        return [page.as_record() for page in Page.objects.filter(project_id=project_id).order_by('url')]

    def record_graph(self, project_id: int, graph: PageGraph) -> int:
        """Store the click depth and orphan flag computed for each page."""

        changed = []
        for page in Page.objects.filter(project_id=project_id):
            node = graph.pages.get(normalize_url(page.url))
            if node is None:
                continue
            if page.depth != node.depth or page.is_orphan != node.is_orphan:
                page.depth = node.depth
                page.is_orphan = node.is_orphan
                changed.append(page)
        if changed:
            Page.objects.bulk_update(changed, ['depth', 'is_orphan'])
        return len(changed)


class SettingsRepository:
    def get_settings(self, project_id: int) -> Dict[str, Any]:
        """The project's settings snapshot, or the defaults when none are saved."""

        row = ProjectSettings.objects.filter(project_id=project_id).first()
        if row is None:
            return dict(DEFAULTS['settings'])
        return row.to_snapshot()

    def save_settings(self, project_id: int, values: Dict[str, Any]) -> ProjectSettings:
        row, _ = ProjectSettings.objects.get_or_create(project_id=project_id)
        for name in ProjectSettings.SNAPSHOT_FIELDS:
            if name in values:
                setattr(row, name, values[name])
        row.save()
        return row


class RunRepository:
    def lock_project(self, project_id: int) -> Project:
        return Project.objects.select_for_update().get(pk=project_id)

    def create_run(self, project: Project, config: Dict[str, Any], seed: int) -> Run:
        return Run.objects.create(project=project, status=Run.Status.DRAFT, config=config, seed=seed)

    def update_run_status(self, run: Run, status: str, **fields: Any) -> Run:
        """Move ``run`` through the lifecycle and save the extra fields with it."""

        target = transition(run.status, status)
        if target is None:
            return run
        run.status = target.value
        for name, value in fields.items():
            setattr(run, name, value)
        run.save(update_fields=['status', *fields])
        return run

    def running_runs(self, project_id: int) -> models.QuerySet:
        return Run.objects.filter(project_id=project_id, status=Run.Status.RUNNING)

    def list_runs(self, project_id: int) -> List[Run]:
        return list(Run.objects.filter(project_id=project_id).order_by('-created_at', '-id'))

    def get_run(self, run_id: int, *, for_update: bool = False) -> Run:
        queryset = Run.objects.select_related('project')
        if for_update:
            queryset = queryset.select_for_update()
        return queryset.get(pk=run_id)

    def is_cancel_requested(self, run_id: int) -> bool:
        return Run.objects.filter(pk=run_id, cancel_requested=True).exists()

    def save_progress(self, run_id: int, progress: Dict[str, Any]) -> None:
        Run.objects.filter(pk=run_id).update(progress=progress)


class CandidateRepository:
    def bulk_insert(self, run: Run, decisions: Sequence[Decision]) -> int:
        rows = [
            LinkCandidate(
                run=run,
                source_url=decision.source_url,
                target_url=decision.target_url,
                anchor=decision.anchor[:500],
                type=decision.strategy,
                status=decision.status,
                rejection_reason=decision.rejection_reason,
                action=decision.action,
                previous_url=decision.previous_url,
                position=decision.position,
                anchor_class=decision.anchor_class or '',
                before_text=decision.before_text,
                after_text=decision.after_text,
            )
            for decision in decisions
        ]
        LinkCandidate.objects.bulk_create(rows, batch_size=500)
        return len(rows)

    def get(self, candidate_id: int) -> LinkCandidate:
        return LinkCandidate.objects.select_related('run').get(pk=candidate_id)

    def update_status(
        self,
        candidate: LinkCandidate,
        status: str,
        *,
        rejection_reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> LinkCandidate:
        """Conditional update on the row version.

        Raises
        ------
        StaleCandidateError
            When another writer changed the row after it was read.
        """

        version = candidate.version if expected_version is None else expected_version
        now = timezone.now()
        updated = LinkCandidate.objects.filter(pk=candidate.pk, version=version).update(
            status=status,
            rejection_reason=rejection_reason,
            version=F('version') + 1,
            decided_at=now,
        )
        if not updated:
            raise StaleCandidateError(f"candidate {candidate.pk} changed since version {version}")
        candidate.refresh_from_db()
        return candidate

    def list_by_run(self, run_id: int, candidate_filter: CandidateFilter | None = None) -> models.QuerySet:
        queryset = LinkCandidate.objects.filter(run_id=run_id)
        if candidate_filter is not None:
            queryset = candidate_filter.apply(queryset)
        return queryset.order_by('source_url', 'id')

    def approve_pending(self, run_id: int, candidate_filter: CandidateFilter) -> int:
        queryset = candidate_filter.apply(LinkCandidate.objects.filter(run_id=run_id))
        return queryset.filter(status=CandidateStatus.PENDING.value, rejection_reason__isnull=True).update(
            status=CandidateStatus.APPROVED.value,
            version=F('version') + 1,
            decided_at=timezone.now(),
        )

    def count_by_status(self, run_id: int) -> Dict[str, int]:
        counts = {status.value: 0 for status in CandidateStatus}
        rows = LinkCandidate.objects.filter(run_id=run_id).values('status').annotate(total=models.Count('id'))
        for row in rows:
            counts[row['status']] = row['total']
        return counts

    def approved_for_project(self, project_id: int) -> List[PriorLink]:
        """Pairs whose latest published decision is an approval.

        Each pair is judged by the newest published run that decided it, so a
        later run that rejected a replayed link drops it. Rows rejected as
        ``duplicate`` only mean the link was already committed and are skipped.
        """

        rows: Iterable[LinkCandidate] = (
            LinkCandidate.objects.filter(
                run__project_id=project_id,
                run__status=Run.Status.PUBLISHED,
                action__in=[LinkAction.ADD.value, LinkAction.REPLACE.value],
            )
            .exclude(rejection_reason=RejectionReason.DUPLICATE.value)
            .order_by('-run__published_at', '-run_id', 'id')
        )
        seen: set[tuple[str, str]] = set()
        prior: List[PriorLink] = []
        for row in rows:
            pair = (row.source_url, row.target_url)
            if pair in seen:
                continue
            seen.add(pair)
            if row.status != CandidateStatus.APPROVED.value:
                continue
            prior.append(
                PriorLink(
                    source_url=row.source_url,
                    target_url=row.target_url,
                    anchor_text=row.anchor,
                    position=row.position,
                )
            )
        return prior
