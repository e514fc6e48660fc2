"""Serializers bridging HTTP payloads and lifecycle controller calls."""

from __future__ import annotations

from rest_framework import serializers


class LifecycleQuerySerializer(serializers.Serializer):
    sessionId = serializers.CharField(required=False, allow_blank=True, max_length=128)
    region = serializers.CharField(required=False, allow_blank=True, max_length=32)


class SessionStatusSerializer(serializers.Serializer):
    sessionId = serializers.CharField()
    status = serializers.CharField()
    logs = serializers.ListField(child=serializers.CharField(allow_blank=True))
    lastError = serializers.CharField(allow_null=True)
    operation = serializers.CharField(allow_null=True)
    region = serializers.CharField(allow_null=True)
    updatedAt = serializers.CharField()
