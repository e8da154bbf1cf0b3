import django.core.validators
import django.db.models.deletion
import linkplanner.models
from django.conf import settings
from django.db import migrations, models


STRATEGY_CHOICES = [
    ('hubs', 'hubs'),
    ('commerce', 'commerce'),
    ('similar', 'similar'),
    ('deep', 'deep'),
    ('fresh', 'fresh'),
    ('orphans', 'orphans'),
    ('broken', 'broken'),
    ('regenerate', 'regenerate'),
]
STATUS_CHOICES = [('pending', 'pending'), ('approved', 'approved'), ('rejected', 'rejected')]
REASON_CHOICES = [
    ('duplicate', 'duplicate'),
    ('stop_anchor', 'stop anchor'),
    ('anchor_not_found', 'anchor not found'),
    ('min_gap', 'min gap'),
    ('exact_exceed', 'exact exceed'),
    ('limit_reached', 'limit reached'),
    ('manual', 'manual'),
]
ACTION_CHOICES = [('add', 'add'), ('delete', 'delete'), ('replace', 'replace')]
ANCHOR_CLASS_CHOICES = [('exact', 'exact'), ('partial', 'partial'), ('generic', 'generic')]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Project',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=200)),
                ('domain', models.URLField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'owner',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='linkplanner_projects',
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={'ordering': ['name', 'id']},
        ),
        migrations.CreateModel(
            name='Page',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('url', models.CharField(max_length=2000)),
                ('title', models.CharField(blank=True, max_length=500)),
                ('content', models.TextField(blank=True)),
                ('meta_title', models.CharField(blank=True, max_length=500)),
                ('keywords', models.JSONField(blank=True, default=list)),
                ('publish_date', models.DateField(blank=True, null=True)),
                ('language', models.CharField(default='en', max_length=16)),
                ('depth', models.PositiveIntegerField(blank=True, null=True)),
                ('is_orphan', models.BooleanField(default=False)),
                ('is_root', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                (
                    'project',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='pages',
                        to='linkplanner.project',
                    ),
                ),
            ],
            options={'ordering': ['url'], 'unique_together': {('project', 'url')}},
        ),
        migrations.CreateModel(
            name='ProjectSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('max_links_per_page', models.PositiveSmallIntegerField(default=3)),
                ('priorities', models.JSONField(default=linkplanner.models._default_priorities)),
                ('min_gap', models.PositiveIntegerField(default=200)),
                (
                    'exact_anchor_percent',
                    models.PositiveSmallIntegerField(
                        default=20, validators=[django.core.validators.MaxValueValidator(100)]
                    ),
                ),
                (
                    'old_links_action',
                    models.CharField(
                        choices=[('enrich', 'enrich'), ('regenerate', 'regenerate'), ('audit', 'audit')],
                        default='enrich',
                        max_length=16,
                    ),
                ),
                (
                    'broken_links_action',
                    models.CharField(
                        choices=[('delete', 'delete'), ('replace', 'replace'), ('ignore', 'ignore')],
                        default='delete',
                        max_length=16,
                    ),
                ),
                ('html_class', models.CharField(blank=True, default='internal-link', max_length=100)),
                (
                    'link_mode',
                    models.CharField(
                        choices=[('append', 'append'), ('replace', 'replace')], default='append', max_length=16
                    ),
                ),
                ('stop_anchors', models.JSONField(blank=True, default=linkplanner.models._default_stop_anchors)),
                ('rel_attributes', models.JSONField(blank=True, default=list)),
                ('target_blank', models.BooleanField(default=False)),
                ('url_pattern', models.CharField(blank=True, max_length=500)),
                ('newer_than', models.DateField(blank=True, null=True)),
                (
                    'random_sample',
                    models.PositiveSmallIntegerField(
                        default=100, validators=[django.core.validators.MaxValueValidator(100)]
                    ),
                ),
                ('updated_at', models.DateTimeField(auto_now=True)),
                (
                    'project',
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='planner_settings',
                        to='linkplanner.project',
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name='Run',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                (
                    'status',
                    models.CharField(
                        choices=[
                            ('draft', 'Draft'),
                            ('running', 'Running'),
                            ('completed', 'Completed'),
                            ('failed', 'Failed'),
                            ('published', 'Published'),
                        ],
                        db_index=True,
                        default='draft',
                        max_length=16,
                    ),
                ),
                ('config', models.JSONField(blank=True, default=dict)),
                ('stats', models.JSONField(blank=True, default=dict)),
                ('progress', models.JSONField(blank=True, default=dict)),
                ('error', models.TextField(blank=True)),
                ('seed', models.BigIntegerField(default=0)),
                ('cancel_requested', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                (
                    'project',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='runs',
                        to='linkplanner.project',
                    ),
                ),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(('status', 'running')),
                        fields=('project',),
                        name='linkplanner_one_running_run_per_project',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='LinkCandidate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_url', models.CharField(max_length=2000)),
                ('target_url', models.CharField(max_length=2000)),
                ('anchor', models.CharField(max_length=500)),
                ('type', models.CharField(choices=STRATEGY_CHOICES, max_length=16)),
                (
                    'status',
                    models.CharField(choices=STATUS_CHOICES, db_index=True, default='pending', max_length=16),
                ),
                (
                    'rejection_reason',
                    models.CharField(blank=True, choices=REASON_CHOICES, max_length=32, null=True),
                ),
                ('action', models.CharField(choices=ACTION_CHOICES, default='add', max_length=16)),
                ('previous_url', models.CharField(blank=True, max_length=2000, null=True)),
                ('position', models.PositiveIntegerField(blank=True, null=True)),
                ('anchor_class', models.CharField(blank=True, choices=ANCHOR_CLASS_CHOICES, max_length=16)),
                ('before_text', models.TextField(blank=True)),
                ('after_text', models.TextField(blank=True)),
                ('version', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('decided_at', models.DateTimeField(blank=True, null=True)),
                (
                    'run',
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name='candidates',
                        to='linkplanner.run',
                    ),
                ),
            ],
            options={
                'ordering': ['source_url', 'id'],
                'indexes': [models.Index(fields=['run', 'status'], name='linkplanner_run_status_idx')],
                'constraints': [
                    models.UniqueConstraint(
                        fields=('run', 'source_url', 'target_url'),
                        name='linkplanner_unique_candidate_pair',
                    ),
                ],
            },
        ),
    ]
