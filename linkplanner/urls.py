"""URL configuration for the link planner JSON API.

The ``app_name`` namespaces these routes so ``THROTTLED_ROUTES`` can refer
to them as ``linkplanner:<name>``.
"""

from django.urls import path

from . import views

app_name = 'linkplanner'

urlpatterns = [
    path('projects/', views.project_list, name='project_list'),
    path('projects/<int:project_id>/settings/', views.project_settings, name='project_settings'),
    path('projects/<int:project_id>/runs/', views.project_runs, name='project_runs'),
    path('runs/<int:run_id>/', views.run_detail, name='run_detail'),
    path('runs/<int:run_id>/cancel/', views.run_cancel, name='run_cancel'),
    path('runs/<int:run_id>/candidates/', views.run_candidates, name='run_candidates'),
    path('runs/<int:run_id>/approve-visible/', views.run_approve_visible, name='run_approve_visible'),
    path('runs/<int:run_id>/publish/', views.run_publish, name='run_publish'),
    path('runs/<int:run_id>/export.csv', views.run_export, name='run_export'),
    path('candidates/<int:candidate_id>/decision/', views.candidate_decision, name='candidate_decision'),
]
