"""Root URL configuration for ScoreForge."""

from django.urls import include, path, re_path
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

from scoreforge.interfaces.rest.views import route_not_found

urlpatterns = [
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema")),
    path("api/", include("scoreforge.interfaces.rest.urls")),
    re_path(r"^.*$", route_not_found, name="route-not-found"),
]
