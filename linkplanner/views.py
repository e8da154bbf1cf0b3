"""JSON views for the link planner app.

Every endpoint requires a signed-in user and only exposes projects that user
owns. Request bodies may be JSON or form-encoded; engine errors are turned
into JSON error responses with a matching HTTP status.
"""

from __future__ import annotations

import json
import logging
from functools import wraps
from typing import Any, Callable, Dict

from django.contrib.auth.decorators import login_required
from django.contrib.auth.views import LoginView as DjangoLoginView
from django.http import HttpRequest, HttpResponse, JsonResponse
from django.shortcuts import get_object_or_404
from django.urls import reverse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from . import services
from .engine.errors import (
    ConcurrentRunError,
    CorpusEmptyError,
    EngineError,
    InvalidTransitionError,
    ReviewClosedError,
    ReviewIncompleteError,
    StaleCandidateError,
    ValidationError,
)
from .forms import CandidateDecisionForm, LaunchRunForm, LoginForm, ProjectSettingsForm
from .models import LinkCandidate, Project, Run

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    CorpusEmptyError: 422,
    ConcurrentRunError: 409,
    ReviewIncompleteError: 409,
    ReviewClosedError: 409,
    StaleCandidateError: 409,
    InvalidTransitionError: 409,
}


class BadRequest(Exception):
    """The request body could not be read."""


def json_api(view: Callable[..., HttpResponse]) -> Callable[..., HttpResponse]:
    """Render engine errors as JSON responses."""

    @wraps(view)
    def wrapper(request: HttpRequest, *args, **kwargs) -> HttpResponse:
        try:
            return view(request, *args, **kwargs)
        except BadRequest as exc:
            return JsonResponse({'detail': str(exc), 'code': 'bad_request'}, status=400)
        except EngineError as exc:
            payload: Dict[str, Any] = {'detail': str(exc), 'code': exc.code}
            if isinstance(exc, ValidationError):
                payload['errors'] = exc.errors
            return JsonResponse(payload, status=ERROR_STATUS.get(type(exc), 400))

    return wrapper


def _wants_json(request: HttpRequest) -> bool:
    return request.content_type == 'application/json'


def _json_body(request: HttpRequest) -> Dict[str, Any]:
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise BadRequest(f'Invalid JSON body: {exc}') from exc
    if not isinstance(data, dict):
        raise BadRequest('The JSON body must be an object.')
    return data


def _form_errors(form) -> JsonResponse:
    errors = {field: ' '.join(messages) for field, messages in form.errors.items()}
    return JsonResponse({'detail': 'Invalid input.', 'code': 'validation', 'errors': errors}, status=400)


def _owned_project(request: HttpRequest, project_id: int) -> Project:
    return get_object_or_404(Project, pk=project_id, owner=request.user)


def _owned_run(request: HttpRequest, run_id: int) -> Run:
    return get_object_or_404(Run, pk=run_id, project__owner=request.user)


def _candidate_filter(params) -> Dict[str, Any]:
    return {
        'type': params.get('type') or None,
        'status': params.get('status') or None,
        'search': params.get('q') or None,
    }


class PlannerLoginView(DjangoLoginView):
    """Login view using the app form; axes records failed attempts."""

    form_class = LoginForm
    template_name = 'registration/login.html'

    def get_success_url(self) -> str:
        return self.get_redirect_url() or reverse('linkplanner:project_list')


@login_required
@require_GET
def project_list(request: HttpRequest) -> HttpResponse:
    projects = Project.objects.filter(owner=request.user).order_by('name', 'id')
    return JsonResponse({
        'projects': [
            {'id': project.pk, 'name': project.name, 'domain': project.domain, 'pages': project.pages.count()}
            for project in projects
        ]
    })


@login_required
@require_http_methods(['GET', 'POST'])
@json_api
def project_settings(request: HttpRequest, project_id: int) -> HttpResponse:
    project = _owned_project(request, project_id)
    if request.method == 'POST':
        if _wants_json(request):
            data = _json_body(request)
        else:
            form = ProjectSettingsForm(request.POST)
            if not form.is_valid():
                return _form_errors(form)
            data = form.changed_values()
        services.update_settings(project.pk, data)
    return JsonResponse({'project': project.pk, 'settings': services.get_settings(project.pk)})


@login_required
@require_http_methods(['GET', 'POST'])
@json_api
def project_runs(request: HttpRequest, project_id: int) -> HttpResponse:
    """List a project's runs, or launch a new one."""

    project = _owned_project(request, project_id)
    if request.method == 'GET':
        return JsonResponse({'project': project.pk, 'runs': services.list_runs(project.pk)})

    if _wants_json(request):
        data = _json_body(request)
        strategies = data.get('strategies') or []
        overrides = data.get('settings') or None
        seed = data.get('seed')
        if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
            raise ValidationError({'seed': 'must be an integer'})
    else:
        form = LaunchRunForm(request.POST)
        if not form.is_valid():
            return _form_errors(form)
        strategies = form.cleaned_data['strategies']
        overrides = None
        seed = form.cleaned_data.get('seed')

    run = services.launch_run(project.pk, strategies, overrides, seed=seed)
    return JsonResponse(services.get_run_status(run.pk), status=201)


@login_required
@require_GET
@json_api
def run_detail(request: HttpRequest, run_id: int) -> HttpResponse:
    run = _owned_run(request, run_id)
    return JsonResponse(services.get_run_status(run.pk))


@login_required
@require_POST
@json_api
def run_cancel(request: HttpRequest, run_id: int) -> HttpResponse:
    run = _owned_run(request, run_id)
    services.cancel_run(run.pk)
    return JsonResponse(services.get_run_status(run.pk), status=202)


@login_required
@require_GET
@json_api
def run_candidates(request: HttpRequest, run_id: int) -> HttpResponse:
    run = _owned_run(request, run_id)
    rows = services.list_candidates(run.pk, **_candidate_filter(request.GET))
    return JsonResponse({'run': run.pk, 'count': len(rows), 'candidates': [row.as_dict() for row in rows]})


@login_required
@require_POST
@json_api
def candidate_decision(request: HttpRequest, candidate_id: int) -> HttpResponse:
    candidate = get_object_or_404(LinkCandidate, pk=candidate_id, run__project__owner=request.user)
    if _wants_json(request):
        data = _json_body(request)
        decision = data.get('decision')
        version = data.get('version')
    else:
        form = CandidateDecisionForm(request.POST)
        if not form.is_valid():
            return _form_errors(form)
        decision = form.cleaned_data['decision']
        version = form.cleaned_data.get('version')
    updated = services.decide_candidate(candidate.pk, decision, expected_version=version)
    return JsonResponse(updated.as_dict())


@login_required
@require_POST
@json_api
def run_approve_visible(request: HttpRequest, run_id: int) -> HttpResponse:
    run = _owned_run(request, run_id)
    params = _json_body(request) if _wants_json(request) else request.POST
    if not any(params.get(key) for key in ('type', 'status', 'q')):
        params = request.GET
    approved = services.approve_all_visible(run.pk, **_candidate_filter(params))
    return JsonResponse({'run': run.pk, 'approved': approved})


@login_required
@require_POST
@json_api
def run_publish(request: HttpRequest, run_id: int) -> HttpResponse:
    run = _owned_run(request, run_id)
    services.publish_run(run.pk)
    return JsonResponse(services.get_run_status(run.pk))


@login_required
@require_GET
def run_export(request: HttpRequest, run_id: int) -> HttpResponse:
    run = _owned_run(request, run_id)
    response = HttpResponse(services.export_candidates(run.pk), content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="run-{run.pk}-candidates.csv"'
    return response
