"""API URL routes for the ScoreForge REST interface."""

from __future__ import annotations

from django.urls import path

from scoreforge.interfaces.rest.views import (
    GenerateView,
    HealthView,
    LifecycleStreamView,
    ScoreView,
    SessionStatusView,
)

urlpatterns = [
    path("generate", GenerateView.as_view(), name="generate"),
    path(
        "terraform/<str:operation>", LifecycleStreamView.as_view(), name="terraform-operation"
    ),
    path("status/<str:session_id>", SessionStatusView.as_view(), name="session-status"),
    path("score/<str:session_id>", ScoreView.as_view(), name="session-score"),
    path("health", HealthView.as_view(), name="health"),
]
