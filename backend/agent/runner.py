"""Execute a console instruction and record its outcome"""
import logging

from django.db import transaction
from django.utils import timezone

from .actions import HANDLERS
from .intents import parse_instruction
from .models import AIInstruction

logger = logging.getLogger(__name__)


def run_instruction(text, user):
    """
    Parse and execute ``text``.

    The instruction row is created as processing and ends completed, or
    failed with the error message when the handler raises.
    """
    action, params = parse_instruction(text)
    instruction = AIInstruction.objects.create(
        instruction=text,
        instruction_type='custom',
        action=action,
        status='processing',
        created_by=user,
    )
    logger.info(f"Processing instruction {instruction.id} as {action} {params}")

    try:
        with transaction.atomic():
            message, affected_count = HANDLERS[action](instruction, params, user)
    except Exception as e:
        logger.error(f"Instruction {instruction.id} failed: {str(e)}")
        instruction.status = 'failed'
        instruction.error_message = str(e)
        instruction.executed_at = timezone.now()
        instruction.result = {'actions': [{'action': action, 'params': params}]}
        instruction.save(update_fields=['status', 'error_message', 'executed_at', 'result'])
        return instruction

    instruction.status = 'completed'
    instruction.executed_at = timezone.now()
    instruction.affected_count = affected_count
    instruction.result = {'message': message, 'actions': [{'action': action, 'params': params}]}
    instruction.save(update_fields=['status', 'executed_at', 'affected_count', 'result'])
    return instruction
