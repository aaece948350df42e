from django.urls import path

from . import views

urlpatterns = [
    path('reports/inventory-summary/', views.inventory_summary, name='inventory-summary'),
    path('reports/stock-value/', views.stock_value, name='stock-value'),
    path('reports/procurement-summary/', views.procurement_summary, name='procurement-summary'),
    path('reports/crm-pipeline/', views.crm_pipeline, name='crm-pipeline'),
]
