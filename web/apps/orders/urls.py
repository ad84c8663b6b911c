from django.urls import path
from .views import OrdersPingView
from .views import OrdersCollectionView, OrderDetailView, OrderStatusView, OrderCancelView
app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST create
    path("<uuid:oid>/", OrderDetailView.as_view(), name="orders-detail"),  # GET read / PATCH edit
    path("<uuid:oid>/status/", OrderStatusView.as_view(), name="orders-status"),
    path("<uuid:oid>/cancel/", OrderCancelView.as_view(), name="orders-cancel"),
]
