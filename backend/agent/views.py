from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from backend.core.permissions import IsSupervisor
from .models import AIInstruction
from .runner import run_instruction
from .serializers import AIInstructionSerializer, AIInstructionDetailSerializer, InstructionRequestSerializer


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsSupervisor])
def instruction_list_create(request):
    """Instruction history (newest first) or run a new instruction"""
    if request.method == 'GET':
        queryset = AIInstruction.objects.select_related('created_by')
        for param in ('instruction_type', 'status', 'action'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        try:
            limit = max(int(request.query_params.get('limit', 50)), 1)
        except ValueError:
            return Response({'error': 'limit must be an integer.'}, status=status.HTTP_400_BAD_REQUEST)
        return Response(AIInstructionSerializer(queryset[:limit], many=True).data)

    serializer = InstructionRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    instruction = run_instruction(serializer.validated_data['instruction'], request.user)
    if instruction.status == 'failed':
        return Response(
            {'error': instruction.error_message, 'instruction_id': instruction.id},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return Response({
        'success': True,
        'message': instruction.result.get('message'),
        'action': instruction.action,
        'affected_count': instruction.affected_count,
        'instruction_id': instruction.id,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsSupervisor])
def instruction_detail(request, pk):
    """One instruction with its execution logs"""
    instruction = get_object_or_404(AIInstruction.objects.prefetch_related('execution_logs'), pk=pk)
    return Response(AIInstructionDetailSerializer(instruction).data)
