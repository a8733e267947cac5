"""
Domain events logging helpers.

Provides structured event logging for record lifecycle operations.
"""
from typing import Dict, Optional
from .logging import get_sanitized_logger, sanitize_dict

logger = get_sanitized_logger(__name__)


def log_domain_event(
    event_name: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    entity_ids: Optional[Dict[str, str]] = None,
    result: str = 'success',
    **extra_fields
):
    """
    Log a domain event with structured data.

    Args:
        event_name: Name of the event (e.g., 'record_verified', 'correction_requested')
        entity_type: Type of entity (e.g., 'MedicalRecord', 'CorrectionRequest')
        entity_id: ID of primary entity
        entity_ids: Dictionary of related entity IDs
        result: Result of operation (success, failure, blocked, ...)
        **extra_fields: Additional fields to log (will be sanitized)

    Example:
        log_domain_event(
            'record_verified',
            entity_type='MedicalRecord',
            entity_id=str(record.id),
            entity_ids={'patient_id': str(record.patient_id)},
            from_state='pending_verification',
            to_state='verified',
        )
    """
    event_data = {
        'event': event_name,
        'result': result,
    }

    if entity_type:
        event_data['entity_type'] = entity_type

    if entity_id:
        event_data['entity_id'] = entity_id

    if entity_ids:
        event_data.update(entity_ids)

    event_data.update(sanitize_dict(extra_fields))

    if result in ['failure', 'error']:
        logger.error(f'Domain event: {event_name}', extra=event_data)
    elif result in ['warning', 'blocked', 'conflict']:
        logger.warning(f'Domain event: {event_name}', extra=event_data)
    else:
        logger.info(f'Domain event: {event_name}', extra=event_data)


def log_record_transition(record, operation, from_state, to_state, actor, **extra):
    """Log a medical record state transition."""
    log_domain_event(
        f'record_{operation}',
        entity_type='MedicalRecord',
        entity_id=str(record.id),
        entity_ids={
            'patient_id': str(record.patient_id),
            'doctor_id': str(record.doctor_id),
            'actor_id': str(actor.id),
        },
        from_state=from_state,
        to_state=to_state,
        row_version=record.row_version,
        **extra
    )


def log_correction_transition(correction, operation, from_state, to_state, actor, **extra):
    """Log a correction request state transition."""
    log_domain_event(
        f'correction_{operation}',
        entity_type='CorrectionRequest',
        entity_id=str(correction.id),
        entity_ids={
            'record_id': str(correction.record_id),
            'patient_id': str(correction.patient_id),
            'doctor_id': str(correction.doctor_id),
            'actor_id': str(actor.id),
        },
        from_state=from_state,
        to_state=to_state,
        **extra
    )


def log_operation_blocked(operation, error, actor=None, **entity_ids):
    """Log a lifecycle operation refused by a precondition."""
    log_domain_event(
        f'{operation}_blocked',
        entity_ids={k: str(v) for k, v in entity_ids.items() if v is not None},
        result='blocked',
        error_code=getattr(error, 'code', error.__class__.__name__),
        error_message=str(error),
        actor_id=str(actor.id) if actor is not None else None,
    )
