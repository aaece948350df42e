from django.urls import path

from .views import agency_detail, agency_list_create, check_domain, current_agency

urlpatterns = [
    path('agencies/', agency_list_create, name='agency-list-create'),
    path('agencies/check-domain/', check_domain, name='agency-check-domain'),
    path('agencies/current/', current_agency, name='agency-current'),
    path('agencies/<uuid:pk>/', agency_detail, name='agency-detail'),
]
