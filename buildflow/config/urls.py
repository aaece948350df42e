"""
URL configuration for the BuildFlow API.

Every app mounts its own prefixed routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "BuildFlow Administration"
admin.site.site_title = "BuildFlow Admin Portal"
admin.site.index_title = "BuildFlow platform administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('buildflow.core.urls')),
    path('api/v1/', include('buildflow.agencies.urls')),
    path('api/v1/', include('buildflow.records.urls')),
    path('api/v1/', include('buildflow.inventory.urls')),
    path('api/v1/', include('buildflow.procurement.urls')),
    path('api/v1/', include('buildflow.crm.urls')),
    path('api/v1/', include('buildflow.reports.urls')),
]
