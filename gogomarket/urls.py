"""
URL configuration for gogomarket project.
"""
from django.contrib import admin
from django.urls import path

from escrow.api import rest
from escrow.api.views import graphql_view

urlpatterns = [
    path('admin/', admin.site.urls),
    path('graphql/', graphql_view, name='graphql'),
    path('api/orders/', rest.order_list, name='order-list'),
    path('api/orders/<uuid:order_id>/', rest.order_detail, name='order-detail'),
    path('api/orders/<uuid:order_id>/status/', rest.order_status, name='order-status'),
    path('api/disputes/<uuid:dispute_id>/resolve/', rest.dispute_resolve, name='dispute-resolve'),
    path('api/reports/financial/', rest.financial_report, name='financial-report'),
    path('api/payees/<uuid:payee_id>/balance/', rest.payee_balance, name='payee-balance'),
    path('api/withdrawals/', rest.withdrawal_list, name='withdrawal-list'),
    path('api/withdrawals/<uuid:withdrawal_id>/', rest.withdrawal_detail, name='withdrawal-detail'),
    path('api/withdrawals/<uuid:withdrawal_id>/process/', rest.withdrawal_process, name='withdrawal-process'),
]
