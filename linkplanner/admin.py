from django.contrib import admin

from .models import LinkCandidate, Page, Project, ProjectSettings, Run


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ('name', 'domain', 'owner', 'created_at')
    search_fields = ('name', 'domain')


@admin.register(Page)
class PageAdmin(admin.ModelAdmin):
    list_display = ('url', 'project', 'title', 'depth', 'is_orphan', 'publish_date')
    list_filter = ('project', 'is_orphan', 'language')
    search_fields = ('url', 'title')


@admin.register(ProjectSettings)
class ProjectSettingsAdmin(admin.ModelAdmin):
    list_display = ('project', 'max_links_per_page', 'min_gap', 'exact_anchor_percent', 'updated_at')


@admin.register(Run)
class RunAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'status', 'created_at', 'completed_at', 'published_at')
    list_filter = ('status', 'project')
    readonly_fields = ('config', 'stats', 'progress', 'seed')


@admin.register(LinkCandidate)
class LinkCandidateAdmin(admin.ModelAdmin):
    list_display = ('source_url', 'target_url', 'anchor', 'type', 'status', 'rejection_reason', 'run')
    list_filter = ('status', 'type', 'rejection_reason')
    search_fields = ('source_url', 'target_url', 'anchor')
