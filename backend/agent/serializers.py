from rest_framework import serializers
from .models import AIInstruction, AIExecutionLog


class AIExecutionLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AIExecutionLog
        fields = ['id', 'action_type', 'entity_type', 'entity_id', 'details', 'created_at']


class AIInstructionSerializer(serializers.ModelSerializer):
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, allow_null=True)
    message = serializers.SerializerMethodField()

    class Meta:
        model = AIInstruction
        fields = ['id', 'instruction', 'instruction_type', 'action', 'status', 'message', 'result',
                  'error_message', 'affected_count', 'executed_at', 'created_by', 'created_by_username',
                  'created_at']

    def get_message(self, obj):
        return (obj.result or {}).get('message')


class AIInstructionDetailSerializer(AIInstructionSerializer):
    execution_logs = AIExecutionLogSerializer(many=True, read_only=True)

    class Meta(AIInstructionSerializer.Meta):
        fields = AIInstructionSerializer.Meta.fields + ['execution_logs']


class InstructionRequestSerializer(serializers.Serializer):
    instruction = serializers.CharField(max_length=2000, trim_whitespace=True)
