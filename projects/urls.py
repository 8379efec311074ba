from django.urls import path
from . import views

urlpatterns = [
    # Projects
    path('projects', views.project_list, name='project-list'),
    path('project', views.project_detail, name='project-detail'),
    path('saveProject', views.save_project, name='save-project'),

    # Entries
    path('entries', views.entry_list, name='entry-list'),
    path('entry', views.entry_detail, name='entry-detail'),
    path('addEntry', views.add_entry, name='add-entry'),
    path('entryHistory', views.entry_history, name='entry-history'),

    # Analytics
    path('piechartData', views.piechart_data, name='piechart-data'),
    path('statusPiechart', views.status_piechart, name='status-piechart'),
    path('dataset', views.dataset, name='dataset'),
]
