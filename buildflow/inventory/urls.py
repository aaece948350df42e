from django.urls import path

from . import views

urlpatterns = [
    path('inventory/warehouses/', views.warehouse_list_create, name='warehouse-list-create'),
    path('inventory/warehouses/<int:pk>/', views.warehouse_detail, name='warehouse-detail'),
    path('inventory/categories/', views.category_list_create, name='category-list-create'),
    path('inventory/categories/<int:pk>/', views.category_detail, name='category-detail'),
    path('inventory/products/', views.product_list_create, name='product-list-create'),
    path('inventory/products/<int:pk>/', views.product_detail, name='product-detail'),
    path('inventory/products/<int:pk>/levels/', views.product_levels, name='product-levels'),
    path('inventory/products/<int:pk>/generate-code/', views.product_generate_code, name='product-generate-code'),
    path('inventory/levels/', views.level_list, name='inventory-level-list'),
    path('inventory/transactions/', views.transaction_list_create, name='inventory-transaction-list-create'),
    path('inventory/alerts/low-stock/', views.low_stock_alerts, name='low-stock-alerts'),
]
