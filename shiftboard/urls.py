from django.urls import path

from shifts.api import api

urlpatterns = [
    path("api/", api.urls),
]
