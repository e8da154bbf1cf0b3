"""Root URL configuration for linkplanner_tool."""

from django.contrib import admin
from django.contrib.auth.views import LogoutView
from django.urls import include, path

from linkplanner.views import PlannerLoginView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('accounts/login/', PlannerLoginView.as_view(), name='login'),
    path('accounts/logout/', LogoutView.as_view(), name='logout'),
    path('', include('linkplanner.urls')),
]
