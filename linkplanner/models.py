"""Database models for the link planner app.

A project owns a corpus of pages and a row of planning settings. Every
planning pass is stored as a run, and the links it proposes are stored as
candidates that move through review before the run is published.
"""

from __future__ import annotations

from django.conf import settings
from django.core.validators import MaxValueValidator
from django.db import models
from django.db.models import Q

from .engine.config import DEFAULTS
from .engine.types import AnchorClass, CandidateStatus, LinkAction, RejectionReason, Strategy

_SETTING_DEFAULTS = DEFAULTS['settings']


def _choices(enum) -> list[tuple[str, str]]:
    return [(member.value, member.value.replace('_', ' ')) for member in enum]


def _default_priorities() -> list[str]:
    return list(_SETTING_DEFAULTS['priorities'])


def _default_stop_anchors() -> list[str]:
    return list(_SETTING_DEFAULTS['stop_anchors'])


class Project(models.Model):
    """A website whose pages are planned together."""

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='linkplanner_projects',
    )
    name = models.CharField(max_length=200)
    domain = models.URLField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name', 'id']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.name


class Page(models.Model):
    """A page of the project's corpus, imported once and read by every run."""

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='pages')
    url = models.CharField(max_length=2000)
    title = models.CharField(max_length=500, blank=True)
    content = models.TextField(blank=True)
    meta_title = models.CharField(max_length=500, blank=True)
    keywords = models.JSONField(default=list, blank=True)
    publish_date = models.DateField(null=True, blank=True)
    language = models.CharField(max_length=16, default='en')
    depth = models.PositiveIntegerField(null=True, blank=True)
    is_orphan = models.BooleanField(default=False)
    is_root = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ('project', 'url')
        ordering = ['url']

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return self.url

    def as_record(self) -> dict:
        return {
            'url': self.url,
            'title': self.title,
            'content': self.content,
            'meta_title': self.meta_title,
            'keywords': list(self.keywords or []),
            'publish_date': self.publish_date,
            'language': self.language,
            'is_root': self.is_root,
            'created_at': self.created_at,
        }


class ProjectSettings(models.Model):
    """Per-project planning parameters; a run takes a snapshot at launch."""

    OLD_LINKS_CHOICES = [('enrich', 'enrich'), ('regenerate', 'regenerate'), ('audit', 'audit')]
    BROKEN_LINKS_CHOICES = [('delete', 'delete'), ('replace', 'replace'), ('ignore', 'ignore')]
    LINK_MODE_CHOICES = [('append', 'append'), ('replace', 'replace')]

    project = models.OneToOneField(Project, on_delete=models.CASCADE, related_name='planner_settings')
    max_links_per_page = models.PositiveSmallIntegerField(default=_SETTING_DEFAULTS['max_links_per_page'])
    priorities = models.JSONField(default=_default_priorities)
    min_gap = models.PositiveIntegerField(default=_SETTING_DEFAULTS['min_gap'])
    exact_anchor_percent = models.PositiveSmallIntegerField(
        default=_SETTING_DEFAULTS['exact_anchor_percent'],
        validators=[MaxValueValidator(100)],
    )
    old_links_action = models.CharField(
        max_length=16, choices=OLD_LINKS_CHOICES, default=_SETTING_DEFAULTS['old_links_action']
    )
    broken_links_action = models.CharField(
        max_length=16, choices=BROKEN_LINKS_CHOICES, default=_SETTING_DEFAULTS['broken_links_action']
    )
    html_class = models.CharField(max_length=100, blank=True, default=_SETTING_DEFAULTS['html_class'])
    link_mode = models.CharField(max_length=16, choices=LINK_MODE_CHOICES, default=_SETTING_DEFAULTS['link_mode'])
    stop_anchors = models.JSONField(default=_default_stop_anchors, blank=True)
    rel_attributes = models.JSONField(default=list, blank=True)
    target_blank = models.BooleanField(default=False)
    url_pattern = models.CharField(max_length=500, blank=True)
    newer_than = models.DateField(null=True, blank=True)
    random_sample = models.PositiveSmallIntegerField(default=100, validators=[MaxValueValidator(100)])
    updated_at = models.DateTimeField(auto_now=True)

    SNAPSHOT_FIELDS = (
        'max_links_per_page',
        'priorities',
        'min_gap',
        'exact_anchor_percent',
        'old_links_action',
        'broken_links_action',
        'html_class',
        'link_mode',
        'stop_anchors',
        'rel_attributes',
        'target_blank',
        'url_pattern',
        'newer_than',
        'random_sample',
    )

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f"Settings for {self.project}"

    def to_snapshot(self) -> dict:
        return {name: getattr(self, name) for name in self.SNAPSHOT_FIELDS}


class Run(models.Model):
    """One planning pass over a project's corpus."""

    class Status(models.TextChoices):
        DRAFT = 'draft', 'Draft'
        RUNNING = 'running', 'Running'
        COMPLETED = 'completed', 'Completed'
        FAILED = 'failed', 'Failed'
        PUBLISHED = 'published', 'Published'

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='runs')
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.DRAFT, db_index=True)
    config = models.JSONField(default=dict, blank=True)
    stats = models.JSONField(default=dict, blank=True)
    progress = models.JSONField(default=dict, blank=True)
    error = models.TextField(blank=True)
    seed = models.BigIntegerField(default=0)
    cancel_requested = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    published_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['project'],
                condition=Q(status='running'),
                name='linkplanner_one_running_run_per_project',
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f"Run {self.pk} · {self.project} · {self.status}"


class LinkCandidate(models.Model):
    """A proposed link and its resolver and review outcome."""

    run = models.ForeignKey(Run, on_delete=models.CASCADE, related_name='candidates')
    source_url = models.CharField(max_length=2000)
    target_url = models.CharField(max_length=2000)
    anchor = models.CharField(max_length=500)
    type = models.CharField(max_length=16, choices=_choices(Strategy))
    status = models.CharField(
        max_length=16,
        choices=_choices(CandidateStatus),
        default=CandidateStatus.PENDING.value,
        db_index=True,
    )
    rejection_reason = models.CharField(max_length=32, choices=_choices(RejectionReason), null=True, blank=True)
    action = models.CharField(max_length=16, choices=_choices(LinkAction), default=LinkAction.ADD.value)
    previous_url = models.CharField(max_length=2000, null=True, blank=True)
    position = models.PositiveIntegerField(null=True, blank=True)
    anchor_class = models.CharField(max_length=16, choices=_choices(AnchorClass), blank=True)
    before_text = models.TextField(blank=True)
    after_text = models.TextField(blank=True)
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    decided_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['source_url', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['run', 'source_url', 'target_url'],
                name='linkplanner_unique_candidate_pair',
            ),
        ]
        indexes = [models.Index(fields=['run', 'status'], name='linkplanner_run_status_idx')]

    def __str__(self) -> str:  # pragma: no cover - convenience display
        return f"{self.source_url} → {self.target_url} ({self.status})"

    @property
    def admitted(self) -> bool:
        """Whether the resolver accepted this candidate."""

        return self.rejection_reason in (None, '', RejectionReason.MANUAL.value)

    def as_dict(self) -> dict:
        return {
            'id': self.pk,
            'run': self.run_id,
            'source_url': self.source_url,
            'target_url': self.target_url,
            'anchor': self.anchor,
            'type': self.type,
            'status': self.status,
            'rejection_reason': self.rejection_reason,
            'action': self.action,
            'previous_url': self.previous_url,
            'position': self.position,
            'anchor_class': self.anchor_class,
            'before_text': self.before_text,
            'after_text': self.after_text,
            'version': self.version,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'decided_at': self.decided_at.isoformat() if self.decided_at else None,
        }
