from django.urls import path

from . import views

urlpatterns = [
    path('crm/clients/', views.client_list_create, name='client-list-create'),
    path('crm/clients/<int:pk>/', views.client_detail, name='client-detail'),
    path('crm/lead-sources/', views.lead_source_list_create, name='lead-source-list-create'),
    path('crm/lead-sources/<int:pk>/', views.lead_source_detail, name='lead-source-detail'),
    path('crm/leads/', views.lead_list_create, name='lead-list-create'),
    path('crm/leads/<int:pk>/', views.lead_detail, name='lead-detail'),
    path('crm/leads/<int:pk>/convert/', views.lead_convert, name='lead-convert'),
    path('crm/activities/', views.activity_list_create, name='activity-list-create'),
    path('crm/activities/<int:pk>/', views.activity_detail, name='activity-detail'),
]
