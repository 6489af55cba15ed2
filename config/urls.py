"""FormaFlow URL Configuration"""
from django.contrib import admin
from django.urls import path


urlpatterns = [
    # Management interface, including the duration recalculation actions
    path('admin/', admin.site.urls),
]
