from django.urls import path, include
from databyter.metrics import PrometheusMetrics
from . import views

# API URL patterns
api_patterns = [
    path('', views.api_root, name='api-root'),
    path('', include('projects.urls')),
    path('', include('users.urls')),
]

urlpatterns = [
    path('api/', include(api_patterns)),
    path('metrics', PrometheusMetrics.metrics_view, name='prometheus-metrics'),
    path('health', views.health_check, name='health-check'),
]

handler404 = 'databyter.views.not_found'
