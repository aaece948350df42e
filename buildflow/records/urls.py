from django.urls import path

from .views import record_count, record_detail, record_list_create, record_query, record_upsert

urlpatterns = [
    path('records/<str:table>/', record_list_create, name='record-list-create'),
    path('records/<str:table>/query/', record_query, name='record-query'),
    path('records/<str:table>/count/', record_count, name='record-count'),
    path('records/<str:table>/upsert/', record_upsert, name='record-upsert'),
    path('records/<str:table>/<str:record_id>/', record_detail, name='record-detail'),
]
