from django.urls import path

from . import views

urlpatterns = [
    path('procurement/suppliers/', views.supplier_list_create, name='supplier-list-create'),
    path('procurement/suppliers/<int:pk>/', views.supplier_detail, name='supplier-detail'),
    path('procurement/requisitions/', views.requisition_list_create, name='requisition-list-create'),
    path('procurement/requisitions/<int:pk>/', views.requisition_detail, name='requisition-detail'),
    path('procurement/purchase-orders/', views.purchase_order_list_create, name='purchase-order-list-create'),
    path('procurement/purchase-orders/<int:pk>/', views.purchase_order_detail, name='purchase-order-detail'),
    path('procurement/goods-receipts/', views.goods_receipt_list_create, name='goods-receipt-list-create'),
    path('procurement/goods-receipts/<int:pk>/', views.goods_receipt_detail, name='goods-receipt-detail'),
]
