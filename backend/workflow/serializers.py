from rest_framework import serializers

from .models import (
    ActionType, ConditionOperator, Event, TriggerType, WebhookSubscription, Workflow, WorkflowRun,
)


class WorkflowSerializer(serializers.ModelSerializer):
    trigger = serializers.JSONField()

    class Meta:
        model = Workflow
        fields = ("id", "name", "description", "enabled", "trigger", "conditions", "actions",
                  "created_by", "created_at", "updated_at")
        read_only_fields = ("created_by", "created_at", "updated_at")

    def validate_trigger(self, value):
        if not isinstance(value, dict) or value.get("type") not in TriggerType.values:
            raise serializers.ValidationError(f"trigger.type must be one of {', '.join(TriggerType.values)}.")
        params = value.get("params") or {}
        if not isinstance(params, dict):
            raise serializers.ValidationError("trigger.params must be an object.")
        return {"type": value["type"], "params": params}

    def validate_conditions(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Expected a list of conditions.")
        cleaned = []
        for i, item in enumerate(value):
            if not isinstance(item, dict) or not item.get("field"):
                raise serializers.ValidationError(f"Condition {i}: 'field' is required.")
            op = item.get("op", item.get("operator"))
            if op not in ConditionOperator.values:
                raise serializers.ValidationError(f"Condition {i}: unsupported operator {op!r}.")
            cleaned.append({"field": str(item["field"]), "op": op, "value": item.get("value")})
        return cleaned

    def validate_actions(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Expected a list of actions.")
        cleaned = []
        for i, item in enumerate(value):
            if not isinstance(item, dict) or item.get("type") not in ActionType.values:
                raise serializers.ValidationError(f"Action {i}: type must be one of {', '.join(ActionType.values)}.")
            payload = item.get("payload") or {}
            if not isinstance(payload, dict):
                raise serializers.ValidationError(f"Action {i}: payload must be an object.")
            cleaned.append({"type": item["type"], "payload": payload})
        return cleaned

    def _unpack_trigger(self, validated_data):
        trigger = validated_data.pop("trigger", None)
        if trigger is not None:
            validated_data["trigger_type"] = trigger["type"]
            validated_data["trigger_params"] = trigger["params"]
        return validated_data

    def create(self, validated_data):
        request = self.context.get("request")
        if request is not None and getattr(request.user, "id", None):
            validated_data["created_by"] = request.user.id
        return super().create(self._unpack_trigger(validated_data))

    def update(self, instance, validated_data):
        return super().update(instance, self._unpack_trigger(validated_data))


class WorkflowRunSerializer(serializers.ModelSerializer):
    workflow_name = serializers.SerializerMethodField()

    class Meta:
        model = WorkflowRun
        fields = ("id", "workflow", "workflow_name", "event", "status", "trigger_event",
                  "result", "error", "executed_at", "created_at")
        read_only_fields = fields

    def get_workflow_name(self, obj):
        return obj.workflow.name if obj.workflow else None


class ManualRunSerializer(serializers.Serializer):
    trigger_type = serializers.ChoiceField(choices=TriggerType.choices, required=False)
    payload = serializers.DictField(required=False, default=dict)


class WebhookSubscriptionSerializer(serializers.ModelSerializer):
    secret_hint = serializers.ReadOnlyField()

    class Meta:
        model = WebhookSubscription
        fields = ("id", "event_type", "url", "enabled", "secret_hint", "created_at", "updated_at")
        read_only_fields = ("created_at", "updated_at")


class WebhookSubscriptionCreateSerializer(WebhookSubscriptionSerializer):
    """Only the creation response carries the full secret."""
    secret = serializers.ReadOnlyField()

    class Meta(WebhookSubscriptionSerializer.Meta):
        fields = WebhookSubscriptionSerializer.Meta.fields + ("secret",)


class EventSerializer(serializers.ModelSerializer):
    class Meta:
        model = Event
        fields = ("id", "type", "payload", "status", "attempts", "next_run_at", "last_error",
                  "created_at", "updated_at")
        read_only_fields = fields
